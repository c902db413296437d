"""
Bulk replace and delete across collections and tables.

batch_replace_delete() sends up to 25 unconditional writes in one
BatchWriteItem call. Each write is applied on its own (there is no
transaction), and DynamoDB may leave some unprocessed; those come back as
descriptors for the caller to resubmit.

Invariants:
    - Between 1 and 25 descriptors, checked before any backend call
    - Every descriptor is translated before anything is sent
    - Replaces store the same envelope as replace()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ..backend.base import MAX_BATCH_WRITE_ITEMS, Request
from ..base.layout import CollectionLayout
from ..base.wrapper import TYPE_ATTRIBUTE, primary_key_for, to_wrapped, unwrap
from ..context import Context
from ..errors import InternalProcessingException, InvalidBatchReplaceDeleteDescriptorException
from ..log import debug_dynamo
from .batch_utils import parse_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchReplaceDescriptor:
    """Insert or replace ``replace_item`` in a collection."""

    collection: str
    replace_item: Mapping[str, Any]


@dataclass(frozen=True)
class BatchDeleteDescriptor:
    """Delete a document; ``root_id`` is set only for child collections."""

    collection: str
    id: str
    root_id: Optional[str] = None


BatchReplaceDeleteDescriptor = Union[BatchReplaceDescriptor, BatchDeleteDescriptor]


@dataclass(frozen=True)
class BatchReplaceDeleteResponse:
    """Result of batch_replace_delete().

    Attributes:
        unprocessed_descriptors: Writes to submit again
    """

    unprocessed_descriptors: List[BatchReplaceDeleteDescriptor] = field(default_factory=list)


def create_batch_write_request(
    context: Context,
    descriptors: Sequence[BatchReplaceDeleteDescriptor],
) -> Tuple[Request, Dict[str, CollectionLayout]]:
    """Build the BatchWriteItem request.

    Returns:
        ``(request, layouts)``; ``layouts`` maps each table to the layout
        needed to read its unprocessed items

    Raises:
        InvalidBatchReplaceDeleteDescriptorException: If the batch size is
            out of range, or a delete has a parent id where it must not
            (or lacks one where it must)
        CollectionNotFoundException: If a collection is unknown
        InvalidIdException, InvalidParentIdException,
        InvalidIndexedFieldValueException: If a document cannot be wrapped
    """
    if not 1 <= len(descriptors) <= MAX_BATCH_WRITE_ITEMS:
        raise InvalidBatchReplaceDeleteDescriptorException(
            f"Between 1 and {MAX_BATCH_WRITE_ITEMS} replace or delete descriptors must be specified, "
            f"got {len(descriptors)}"
        )

    layouts: Dict[str, CollectionLayout] = {}
    request_items: Dict[str, List[Dict[str, Any]]] = {}
    for descriptor in descriptors:
        collection = context.get_collection(descriptor.collection)
        if isinstance(descriptor, BatchReplaceDescriptor):
            write = {"PutRequest": {"Item": to_wrapped(collection, descriptor.replace_item)}}
        elif isinstance(descriptor, BatchDeleteDescriptor):
            if collection.is_child and descriptor.root_id is None:
                raise InvalidBatchReplaceDeleteDescriptorException(
                    "BatchDeleteDescriptor must specify root_id for child collections",
                    descriptor.collection,
                    descriptor.id,
                )
            if not collection.is_child and descriptor.root_id is not None:
                raise InvalidBatchReplaceDeleteDescriptorException(
                    "BatchDeleteDescriptor must not specify root_id for root collections",
                    descriptor.collection,
                    descriptor.id,
                )
            write = {"DeleteRequest": {"Key": primary_key_for(collection, descriptor.id, descriptor.root_id)}}
        else:
            raise InvalidBatchReplaceDeleteDescriptorException(f"Unknown batch descriptor {descriptor!r}")

        table_name = collection.layout.table_name
        layouts[table_name] = collection.layout
        request_items.setdefault(table_name, []).append(write)
    return {"RequestItems": request_items}, layouts


def _unprocessed_descriptor(layout: CollectionLayout, write: Mapping[str, Any]) -> BatchReplaceDeleteDescriptor:
    if "PutRequest" in write:
        item = write["PutRequest"]["Item"]
        return BatchReplaceDescriptor(item[TYPE_ATTRIBUTE], unwrap(item))
    if "DeleteRequest" in write:
        key = parse_key(layout, write["DeleteRequest"]["Key"])
        return BatchDeleteDescriptor(key.collection, key.id, key.root_id)
    raise InternalProcessingException(f"Unknown unprocessed item {write!r}", layout.table_name)


async def batch_replace_delete(
    context: Context,
    descriptors: Sequence[BatchReplaceDeleteDescriptor],
) -> BatchReplaceDeleteResponse:
    """Replace and delete up to 25 documents in one call.

    Args:
        context: The context
        descriptors: Writes to apply; each document at most once

    Returns:
        Any writes DynamoDB left unprocessed

    Raises:
        InvalidBatchReplaceDeleteDescriptorException: If a descriptor is
            invalid or the batch size is out of range
    """
    request, layouts = create_batch_write_request(context, descriptors)
    debug_dynamo("BatchWriteItem", request)
    response = await context.backend.batch_write_item(request)

    unprocessed: List[BatchReplaceDeleteDescriptor] = []
    for table_name, writes in (response.get("UnprocessedItems") or {}).items():
        layout = layouts.get(table_name)
        if layout is None:
            raise InternalProcessingException(
                f"Could not find table mapping for {table_name} while parsing UnprocessedItems",
                table_name,
            )
        unprocessed.extend(_unprocessed_descriptor(layout, write) for write in writes)

    logger.debug(
        "Batch write completed",
        extra={"requested": len(descriptors), "unprocessed": len(unprocessed)},
    )
    return BatchReplaceDeleteResponse(unprocessed)
