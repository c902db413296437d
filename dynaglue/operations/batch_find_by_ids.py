"""
Bulk fetch of documents by ``_id`` across collections and tables.

Unlike transact_find_by_ids() the reads are independent: there is no
snapshot, and DynamoDB may leave part of the batch unprocessed. Those
parts come back as descriptors for the caller to resubmit.

Invariants:
    - Between 1 and 100 descriptors, checked before any backend call
    - Every document found is returned under its collection name
    - Nothing is retried here
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from ..backend.base import MAX_BATCH_GET_ITEMS, Request
from ..base.layout import CollectionLayout
from ..base.wrapper import TYPE_ATTRIBUTE, primary_key_for, unwrap
from ..context import Context
from ..errors import InternalProcessingException, InvalidFindDescriptorException
from ..log import debug_dynamo
from .batch_utils import parse_key
from .transact_find_by_ids import FindByIdDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchFindByIdsResponse:
    """Result of batch_find_by_ids().

    Attributes:
        documents_by_collection: Found documents, keyed by collection name
        unprocessed_descriptors: Descriptors to submit again
    """

    documents_by_collection: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    unprocessed_descriptors: List[FindByIdDescriptor] = field(default_factory=list)


def create_batch_find_request(
    context: Context,
    descriptors: Sequence[FindByIdDescriptor],
    consistent_read_table_names: Iterable[str] = (),
) -> Tuple[Request, Dict[str, CollectionLayout]]:
    """Build the BatchGetItem request.

    Returns:
        ``(request, layouts)``; ``layouts`` maps each table to the layout
        needed to read its unprocessed keys

    Raises:
        InvalidFindDescriptorException: If there are no descriptors or
            more than 100
        CollectionNotFoundException: If a collection is unknown, or its
            variant does not match whether ``root_id`` was given
    """
    if len(descriptors) == 0:
        raise InvalidFindDescriptorException("At least one find descriptor must be specified", 0)
    if len(descriptors) > MAX_BATCH_GET_ITEMS:
        raise InvalidFindDescriptorException(
            f"No more than {MAX_BATCH_GET_ITEMS} find descriptors can be specified to batch_find_by_ids",
            len(descriptors),
        )

    consistent = set(consistent_read_table_names)
    layouts: Dict[str, CollectionLayout] = {}
    request_items: Dict[str, Dict[str, Any]] = {}
    for descriptor in descriptors:
        if descriptor.root_id is not None:
            collection = context.get_child_collection(descriptor.collection)
        else:
            collection = context.get_root_collection(descriptor.collection)
        table_name = collection.layout.table_name
        layouts[table_name] = collection.layout
        keys_and_attributes = request_items.setdefault(
            table_name, {"Keys": [], "ConsistentRead": table_name in consistent}
        )
        keys_and_attributes["Keys"].append(primary_key_for(collection, descriptor.id, descriptor.root_id))
    return {"RequestItems": request_items}, layouts


async def batch_find_by_ids(
    context: Context,
    descriptors: Sequence[FindByIdDescriptor],
    consistent_read_table_names: Iterable[str] = (),
) -> BatchFindByIdsResponse:
    """Fetch up to 100 documents, possibly from several tables.

    Args:
        context: The context
        descriptors: Documents to fetch; each ``_id`` at most once
        consistent_read_table_names: Tables to read with strong consistency

    Returns:
        Found documents by collection, plus any unprocessed descriptors

    Raises:
        InvalidFindDescriptorException: If the descriptor count is out of range
        InternalProcessingException: If an unprocessed key cannot be mapped
            back to a descriptor
    """
    request, layouts = create_batch_find_request(context, descriptors, consistent_read_table_names)
    debug_dynamo("BatchGetItem", request)
    response = await context.backend.batch_get_item(request)

    documents_by_collection: Dict[str, List[Dict[str, Any]]] = {}
    for items in (response.get("Responses") or {}).values():
        for item in items:
            collection = context.get_collection(item[TYPE_ATTRIBUTE])
            documents_by_collection.setdefault(collection.name, []).append(unwrap(item))

    unprocessed: List[FindByIdDescriptor] = []
    for table_name, keys_and_attributes in (response.get("UnprocessedKeys") or {}).items():
        layout = layouts.get(table_name)
        if layout is None:
            raise InternalProcessingException(
                f"Could not find table mapping for {table_name} while parsing UnprocessedKeys",
                table_name,
            )
        unprocessed.extend(parse_key(layout, key) for key in keys_and_attributes.get("Keys") or [])

    logger.debug(
        "Batch find completed",
        extra={
            "requested": len(descriptors),
            "found": sum(len(documents) for documents in documents_by_collection.values()),
            "unprocessed": len(unprocessed),
        },
    )
    return BatchFindByIdsResponse(documents_by_collection, unprocessed)
