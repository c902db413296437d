"""
Transactional multi-document fetch.

Invariants:
    - Between 1 and 25 descriptors, checked before any backend call
    - Results are in descriptor order, None where nothing is stored
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from ..backend.base import MAX_TRANSACT_GET_ITEMS, BackendError, BackendErrorCode, Request
from ..base.wrapper import primary_key_for, unwrap
from ..context import Context
from ..errors import InvalidFindDescriptorException, TransactionCanceledException
from ..log import debug_dynamo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FindByIdDescriptor:
    """A document to fetch with transact_find_by_ids().

    Attributes:
        collection: Collection name
        id: Document ``_id``
        root_id: Parent ``_id``; set only for child collections
    """

    collection: str
    id: str
    root_id: Optional[str] = None


def create_transact_find_request(context: Context, descriptors: Sequence[FindByIdDescriptor]) -> Request:
    """Build the TransactGetItems request.

    Raises:
        InvalidFindDescriptorException: If there are no descriptors or
            more than 25
        CollectionNotFoundException: If a collection is unknown, or its
            variant does not match whether ``root_id`` was given
    """
    if len(descriptors) == 0:
        raise InvalidFindDescriptorException("At least one find descriptor must be specified", 0)
    if len(descriptors) > MAX_TRANSACT_GET_ITEMS:
        raise InvalidFindDescriptorException(
            f"No more than {MAX_TRANSACT_GET_ITEMS} find descriptors can be specified to transact_find_by_ids",
            len(descriptors),
        )

    items = []
    for descriptor in descriptors:
        if descriptor.root_id is not None:
            collection = context.get_child_collection(descriptor.collection)
        else:
            collection = context.get_root_collection(descriptor.collection)
        items.append(
            {
                "Get": {
                    "TableName": collection.layout.table_name,
                    "Key": primary_key_for(collection, descriptor.id, descriptor.root_id),
                }
            }
        )
    return {"TransactItems": items}


async def transact_find_by_ids(
    context: Context,
    descriptors: Sequence[FindByIdDescriptor],
) -> List[Optional[Dict[str, Any]]]:
    """Fetch up to 25 documents in one consistent read.

    Args:
        context: The context
        descriptors: Documents to fetch

    Returns:
        One entry per descriptor, in order; None for a missing document

    Raises:
        InvalidFindDescriptorException: If the descriptor count is out of range
        TransactionCanceledException: If the backend cancelled the read
    """
    request = create_transact_find_request(context, descriptors)
    debug_dynamo("TransactGetItems", request)
    try:
        response = await context.backend.transact_get_items(request)
    except BackendError as e:
        if e.code == BackendErrorCode.TRANSACTION_CANCELED:
            raise TransactionCanceledException(
                "The transactional read was canceled",
                e.cancellation_reasons,
            ) from e
        raise

    results: List[Optional[Dict[str, Any]]] = []
    for entry in response.get("Responses") or []:
        item = entry.get("Item")
        results.append(unwrap(item) if item is not None else None)
    results.extend([None] * (len(descriptors) - len(results)))
    logger.debug(
        "Transactional find completed",
        extra={"requested": len(descriptors), "found": sum(r is not None for r in results)},
    )
    return results
