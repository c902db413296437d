"""
Document operations.

Each operation resolves its collection from the context, builds one
backend request with the key assembly and wrapping code, and sends it.
find_children() pages with a Query; the batch and transaction operations
address several documents in one call.
The ``create_*`` builders are pure and are reused by the transaction
coordinator.

Invariants:
    - Validation errors are raised before any backend call
    - No operation retries
"""

from .batch_find_by_ids import BatchFindByIdsResponse, batch_find_by_ids, create_batch_find_request
from .batch_replace_delete import (
    BatchDeleteDescriptor,
    BatchReplaceDeleteDescriptor,
    BatchReplaceDeleteResponse,
    BatchReplaceDescriptor,
    batch_replace_delete,
    create_batch_write_request,
)
from .delete_by_id import create_delete_by_id_request, delete_by_id
from .delete_child_by_id import create_delete_child_by_id_request, delete_child_by_id
from .find_by_id import find_by_id, find_child_by_id
from .find_children import FindChildrenResults, find_children
from .insert import insert
from .replace import create_replace_request, replace
from .transact_find_by_ids import FindByIdDescriptor, create_transact_find_request, transact_find_by_ids
from .transact_write import (
    TransactionDeleteChildRequest,
    TransactionDeleteRequest,
    TransactionReplaceRequest,
    TransactionState,
    TransactionWrite,
    TransactionWriteRequest,
    WriteKind,
    create_transaction_items,
    derive_idempotency_token,
    map_transaction_error,
    transaction_write,
)
from .update_by_id import Updates, create_update_request, update_by_id
from .update_child_by_id import update_child_by_id

__all__ = [
    # Single-item
    "insert",
    "replace",
    "create_replace_request",
    "delete_by_id",
    "create_delete_by_id_request",
    "delete_child_by_id",
    "create_delete_child_by_id_request",
    "find_by_id",
    "find_child_by_id",
    "update_by_id",
    "update_child_by_id",
    "create_update_request",
    "Updates",
    # Queries
    "find_children",
    "FindChildrenResults",
    # Batch
    "batch_find_by_ids",
    "create_batch_find_request",
    "BatchFindByIdsResponse",
    "batch_replace_delete",
    "create_batch_write_request",
    "BatchReplaceDescriptor",
    "BatchDeleteDescriptor",
    "BatchReplaceDeleteDescriptor",
    "BatchReplaceDeleteResponse",
    # Transactional
    "FindByIdDescriptor",
    "create_transact_find_request",
    "transact_find_by_ids",
    "TransactionWrite",
    "TransactionState",
    "TransactionWriteRequest",
    "TransactionReplaceRequest",
    "TransactionDeleteRequest",
    "TransactionDeleteChildRequest",
    "WriteKind",
    "create_transaction_items",
    "derive_idempotency_token",
    "map_transaction_error",
    "transaction_write",
]
