"""
dynaglue - document collections over a single DynamoDB table.

This library provides:
- Collections (root and child) with unique ``_id`` values
- Secondary access patterns packed into shared index attributes
- Conditional single-document writes, partial updates and transactional
  multi-document writes with a precise error taxonomy
- Paged listing of child documents and bulk (batch) reads and writes

Example:
    >>> from dynaglue import (
    ...     AccessPattern, CollectionLayout, PrimaryIndexLayout,
    ...     RootCollection, SecondaryIndexLayout, create_context, replace,
    ... )
    >>>
    >>> layout = CollectionLayout(
    ...     table_name="global",
    ...     primary_key=PrimaryIndexLayout(partition_key="id", sort_key="collection"),
    ...     find_keys=(SecondaryIndexLayout("gs1", "gs1p", "gs1s"),),
    ... )
    >>> locations = RootCollection(
    ...     name="locations",
    ...     layout=layout,
    ...     access_patterns=(AccessPattern("gs1", ["country"], ["city"]),),
    ... )
    >>>
    >>> async with AioDynamoBackend() as backend:
    ...     context = create_context(backend, [locations])
    ...     await replace(context, "locations", {"country": "AU", "city": "Sydney"})

Invariants:
    - Every stored key starts with its collection name
    - Validation errors are raised before any backend call
    - Transactions apply every write or none

Version: 2.1.0
"""

from ._version import __version__
from .backend import (
    AioDynamoBackend,
    BackendError,
    BackendErrorCode,
    DynamoBackend,
    InMemoryDynamoBackend,
)
from .base import (
    SEPARATOR,
    AccessPattern,
    AccessPatternOptions,
    ChildCollection,
    CollectionDefinition,
    CollectionLayout,
    KeyKind,
    PrimaryIndexLayout,
    RootCollection,
    SecondaryIndexLayout,
    assemble_indexed_value,
    construct_key_value,
    find_matching_path,
    is_subset_of_key_path,
    new_id,
    to_wrapped,
    unwrap,
)
from .conditions import CompositeCondition
from .config import DynaglueConfig, DynamoConfig, ObservabilityConfig
from .context import Context, create_context
from .errors import (
    CollectionNotFoundException,
    ConditionFailedException,
    ConfigurationException,
    ConflictException,
    DynaglueError,
    IdempotentParameterMismatchException,
    InternalProcessingException,
    InvalidArgumentException,
    InvalidBatchReplaceDeleteDescriptorException,
    InvalidCompositeConditionException,
    InvalidFindDescriptorException,
    InvalidIdException,
    InvalidIndexedFieldValueException,
    InvalidParentIdException,
    InvalidUpdatesException,
    TransactionCanceledException,
    TransactionConflictException,
    TransactionInProgressException,
    TransactionValidationException,
)
from .log import setup_logging
from .operations import (
    BatchDeleteDescriptor,
    BatchFindByIdsResponse,
    BatchReplaceDeleteResponse,
    BatchReplaceDescriptor,
    FindByIdDescriptor,
    FindChildrenResults,
    TransactionDeleteChildRequest,
    TransactionDeleteRequest,
    TransactionReplaceRequest,
    TransactionState,
    TransactionWrite,
    TransactionWriteRequest,
    batch_find_by_ids,
    batch_replace_delete,
    delete_by_id,
    delete_child_by_id,
    find_by_id,
    find_child_by_id,
    find_children,
    insert,
    replace,
    transact_find_by_ids,
    transaction_write,
    update_by_id,
    update_child_by_id,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "DynaglueConfig",
    "DynamoConfig",
    "ObservabilityConfig",
    "setup_logging",
    # Collections
    "SEPARATOR",
    "PrimaryIndexLayout",
    "SecondaryIndexLayout",
    "CollectionLayout",
    "AccessPattern",
    "AccessPatternOptions",
    "RootCollection",
    "ChildCollection",
    "CollectionDefinition",
    "KeyKind",
    "new_id",
    # Keys and wrapping
    "assemble_indexed_value",
    "construct_key_value",
    "is_subset_of_key_path",
    "find_matching_path",
    "to_wrapped",
    "unwrap",
    # Context and backends
    "Context",
    "create_context",
    "DynamoBackend",
    "AioDynamoBackend",
    "InMemoryDynamoBackend",
    "BackendError",
    "BackendErrorCode",
    # Operations
    "CompositeCondition",
    "insert",
    "replace",
    "delete_by_id",
    "delete_child_by_id",
    "find_by_id",
    "find_child_by_id",
    "update_by_id",
    "update_child_by_id",
    "find_children",
    "FindChildrenResults",
    "FindByIdDescriptor",
    "transact_find_by_ids",
    "TransactionWrite",
    "TransactionState",
    "TransactionWriteRequest",
    "TransactionReplaceRequest",
    "TransactionDeleteRequest",
    "TransactionDeleteChildRequest",
    "transaction_write",
    "batch_find_by_ids",
    "BatchFindByIdsResponse",
    "batch_replace_delete",
    "BatchReplaceDescriptor",
    "BatchDeleteDescriptor",
    "BatchReplaceDeleteResponse",
    # Errors
    "DynaglueError",
    "ConfigurationException",
    "CollectionNotFoundException",
    "InvalidIdException",
    "InvalidIndexedFieldValueException",
    "InvalidParentIdException",
    "InvalidFindDescriptorException",
    "InvalidArgumentException",
    "InvalidCompositeConditionException",
    "InvalidUpdatesException",
    "InvalidBatchReplaceDeleteDescriptorException",
    "ConflictException",
    "ConditionFailedException",
    "TransactionValidationException",
    "TransactionCanceledException",
    "TransactionConflictException",
    "IdempotentParameterMismatchException",
    "TransactionInProgressException",
    "InternalProcessingException",
]
