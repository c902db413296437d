"""
DynamoDB backends.

This package provides:
- DynamoBackend: protocol every backend implements
- BackendError / BackendErrorCode: decoded backend failures
- AioDynamoBackend: aiobotocore-based DynamoDB client
- InMemoryDynamoBackend: in-memory tables for tests

Invariants:
    - Backends speak DynamoDB request/response shapes with native values
    - Backends own no retry policy
"""

from .base import (
    MAX_TRANSACT_GET_ITEMS,
    MAX_TRANSACT_WRITE_ITEMS,
    BackendError,
    BackendErrorCode,
    DynamoBackend,
)
from .dynamodb import AioDynamoBackend
from .memory import InMemoryDynamoBackend, InMemoryTable

__all__ = [
    "MAX_TRANSACT_GET_ITEMS",
    "MAX_TRANSACT_WRITE_ITEMS",
    "BackendError",
    "BackendErrorCode",
    "DynamoBackend",
    "AioDynamoBackend",
    "InMemoryDynamoBackend",
    "InMemoryTable",
]
