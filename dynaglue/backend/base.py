"""
Backend protocol and error codes.

This module defines the DynamoBackend protocol that every backend
implements, and the closed set of backend error codes the operations
understand.

Requests and responses have the shape of the DynamoDB API (``TableName``,
``Key``, ``Item``, ``ConditionExpression``, ``TransactItems``...) but carry
plain Python values: marshalling to and from the attribute-value wire
format is the adapter's job.

Invariants:
    - Adapters decode the wire error name once, into BackendErrorCode
    - An error whose name is not a BackendErrorCode is re-raised unchanged
    - Backends never retry; a failed call surfaces immediately

How to change safely:
    - Protocol changes require updating every implementation
    - A new error code needs a mapping in the operations that can see it
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

Request = Dict[str, Any]
Response = Dict[str, Any]

MAX_TRANSACT_GET_ITEMS = 25
MAX_TRANSACT_WRITE_ITEMS = 100
MAX_BATCH_GET_ITEMS = 100
MAX_BATCH_WRITE_ITEMS = 25


class BackendErrorCode(Enum):
    """Error names reported by DynamoDB that operations act on."""

    CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"
    VALIDATION = "ValidationException"
    TRANSACTION_CANCELED = "TransactionCanceledException"
    TRANSACTION_CONFLICT = "TransactionConflictException"
    IDEMPOTENT_PARAMETER_MISMATCH = "IdempotentParameterMismatchException"
    TRANSACTION_IN_PROGRESS = "TransactionInProgressException"
    RESOURCE_NOT_FOUND = "ResourceNotFoundException"
    PROVISIONED_THROUGHPUT_EXCEEDED = "ProvisionedThroughputExceededException"
    REQUEST_LIMIT_EXCEEDED = "RequestLimitExceeded"
    ITEM_COLLECTION_SIZE_LIMIT_EXCEEDED = "ItemCollectionSizeLimitExceededException"
    INTERNAL_SERVER_ERROR = "InternalServerError"

    @classmethod
    def decode(cls, name: str) -> Optional[BackendErrorCode]:
        """Return the code for a wire error name, or None if unknown."""
        try:
            return cls(name)
        except ValueError:
            return None


class BackendError(Exception):
    """A recognised error reported by the backend.

    Attributes:
        code: The decoded error code
        message: Backend-supplied message
        cancellation_reasons: For cancelled transactions, one entry per
            item in submission order (``{"Code": ..., "Message": ...}``)
    """

    def __init__(
        self,
        code: BackendErrorCode,
        message: str = "",
        cancellation_reasons: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        super().__init__(f"{code.value}: {message}" if message else code.value)
        self.code = code
        self.message = message
        self.cancellation_reasons = cancellation_reasons


@runtime_checkable
class DynamoBackend(Protocol):
    """Protocol for DynamoDB backends.

    Each method takes the request of the matching DynamoDB API call and
    returns its response, with native Python values.

    Raises (all methods):
        BackendError: For a recognised backend failure
    """

    async def put_item(self, request: Request) -> Response:
        """PutItem; ``Attributes`` holds the old item when ReturnValues=ALL_OLD."""
        ...

    async def delete_item(self, request: Request) -> Response:
        """DeleteItem; ``Attributes`` holds the old item when ReturnValues=ALL_OLD."""
        ...

    async def get_item(self, request: Request) -> Response:
        """GetItem; ``Item`` is absent when nothing is stored under the key."""
        ...

    async def update_item(self, request: Request) -> Response:
        """UpdateItem; ``Attributes`` holds the item as selected by ReturnValues."""
        ...

    async def query(self, request: Request) -> Response:
        """Query; ``Items`` in key order, ``LastEvaluatedKey`` while more may follow."""
        ...

    async def batch_get_item(self, request: Request) -> Response:
        """BatchGetItem; ``Responses`` and ``UnprocessedKeys`` keyed by table."""
        ...

    async def batch_write_item(self, request: Request) -> Response:
        """BatchWriteItem; ``UnprocessedItems`` keyed by table."""
        ...

    async def transact_get_items(self, request: Request) -> Response:
        """TransactGetItems; ``Responses`` is parallel to ``TransactItems``."""
        ...

    async def transact_write_items(self, request: Request) -> Response:
        """TransactWriteItems; all items commit or none do."""
        ...
