"""
Error types for dynaglue.

This module defines every exception raised by the library:
- DynaglueError: Base exception
- Configuration and lookup errors (ConfigurationException,
  CollectionNotFoundException)
- Validation errors raised before any backend call (InvalidIdException,
  InvalidIndexedFieldValueException, InvalidParentIdException,
  InvalidFindDescriptorException, InvalidArgumentException,
  InvalidCompositeConditionException, InvalidUpdatesException,
  InvalidBatchReplaceDeleteDescriptorException)
- Backend outcomes (ConflictException, ConditionFailedException and the
  five transaction failure classes)
- InternalProcessingException for backend responses that cannot be
  mapped back to documents

Invariants:
    - All errors inherit from DynaglueError
    - Every error carries a stable ``code`` and a ``details`` dict
    - Validation errors never follow a backend call

How to change safely:
    - Never change an existing ``code`` value, callers match on it
    - New backend outcomes need a BackendErrorCode entry first
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


class DynaglueError(Exception):
    """Base exception for all dynaglue errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "DYNAGLUE_ERROR"
        self.details = details or {}


class ConfigurationException(DynaglueError):
    """Collection, layout or access pattern configuration is invalid.

    Raised while building collection definitions or a context.
    """

    def __init__(self, message: str, collection: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="CONFIGURATION_ERROR",
            details={"collection": collection},
        )
        self.collection = collection


class CollectionNotFoundException(DynaglueError):
    """The collection is unknown, or not of the variant the call needs."""

    def __init__(self, collection: str) -> None:
        super().__init__(
            f"Collection not found: '{collection}'",
            code="COLLECTION_NOT_FOUND",
            details={"collection": collection},
        )
        self.collection = collection


class InvalidIdException(DynaglueError):
    """A document was supplied with an ``_id`` that is not a string."""

    def __init__(self, id: Any) -> None:
        super().__init__(
            "The provided document has an invalid ID",
            code="INVALID_ID",
            details={"id": id},
        )
        self.id = id


class InvalidIndexedFieldValueException(DynaglueError):
    """An indexed field is missing where required, or has an unsupported shape.

    Attributes:
        collection: Collection being written
        key_path: The offending key path
    """

    def __init__(
        self,
        message: str,
        collection: str,
        key_path: Sequence[str],
    ) -> None:
        super().__init__(
            message,
            code="INVALID_INDEXED_FIELD_VALUE",
            details={"collection": collection, "key_path": list(key_path)},
        )
        self.collection = collection
        self.key_path = list(key_path)


class InvalidParentIdException(DynaglueError):
    """A child document has a missing or non-string parent identifier."""

    def __init__(
        self,
        parent_id: Any,
        collection: str,
        parent_collection: str,
    ) -> None:
        super().__init__(
            "The provided document has a missing parent ID or it is the incorrect type",
            code="INVALID_PARENT_ID",
            details={
                "parent_id": parent_id,
                "collection": collection,
                "parent_collection": parent_collection,
            },
        )
        self.parent_id = parent_id
        self.collection = collection
        self.parent_collection = parent_collection


class InvalidFindDescriptorException(DynaglueError):
    """Too few or too many items were given to a bounded operation."""

    def __init__(self, message: str, count: Optional[int] = None) -> None:
        super().__init__(
            message,
            code="INVALID_FIND_DESCRIPTOR",
            details={"count": count},
        )
        self.count = count


class InvalidArgumentException(DynaglueError):
    """A call was structurally malformed (e.g. an empty transaction)."""

    def __init__(self, message: str, argument: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="INVALID_ARGUMENT",
            details={"argument": argument},
        )
        self.argument = argument


class InvalidCompositeConditionException(DynaglueError):
    """A condition tree could not be compiled.

    The parse path points at the offending element, e.g.
    ``{ $and: [...@1:{ age: `` for the second clause of an ``$and``.
    """

    def __init__(self, message: str, parse_path: Sequence[Any]) -> None:
        printed = "".join(_print_parse_element(e) for e in parse_path)
        super().__init__(
            f"Condition parse exception: {message} at {printed}",
            code="INVALID_COMPOSITE_CONDITION",
            details={"parse_path": list(parse_path)},
        )
        self.parse_path = list(parse_path)


def _print_parse_element(element: Any) -> str:
    if isinstance(element, int):
        return "[" if element == 0 else f"[...@{element}:"
    return f"{{ {element}: "


class InvalidUpdatesException(DynaglueError):
    """A partial update is empty, overlaps itself or would break a key.

    Attributes:
        collection: Collection being updated
        update_path: The offending update path, when there is one
    """

    def __init__(self, message: str, collection: str, update_path: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="INVALID_UPDATES",
            details={"collection": collection, "update_path": update_path},
        )
        self.collection = collection
        self.update_path = update_path


class InvalidBatchReplaceDeleteDescriptorException(DynaglueError):
    """A batch write descriptor is malformed or the batch has the wrong size."""

    def __init__(self, message: str, collection: Optional[str] = None, id: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="INVALID_BATCH_REPLACE_DELETE_DESCRIPTOR",
            details={"collection": collection, "id": id},
        )
        self.collection = collection
        self.id = id


class ConflictException(DynaglueError):
    """insert() was called with an ``_id`` that already exists."""

    def __init__(self, message: str, id: str) -> None:
        super().__init__(message, code="CONFLICT", details={"id": id})
        self.id = id


class ConditionFailedException(DynaglueError):
    """The condition attached to a single-item write was not satisfied."""

    def __init__(self, message: str, collection: str, id: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="CONDITION_FAILED",
            details={"collection": collection, "id": id},
        )
        self.collection = collection
        self.id = id


class TransactionValidationException(DynaglueError):
    """The transaction addressed the same item more than once."""

    def __init__(self, message: str, idempotency_token: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="TRANSACTION_VALIDATION",
            details={"idempotency_token": idempotency_token},
        )
        self.idempotency_token = idempotency_token


class TransactionCanceledException(DynaglueError):
    """The backend could not satisfy every item of the transaction.

    Attributes:
        cancellation_reasons: One entry per transaction item, in submission
            order, each a dict with ``Code`` and optionally ``Message``
    """

    def __init__(
        self,
        message: str,
        cancellation_reasons: Optional[List[Dict[str, Any]]] = None,
        idempotency_token: Optional[str] = None,
    ) -> None:
        reasons = list(cancellation_reasons or [])
        super().__init__(
            message,
            code="TRANSACTION_CANCELED",
            details={
                "cancellation_reasons": reasons,
                "idempotency_token": idempotency_token,
            },
        )
        self.cancellation_reasons = reasons
        self.idempotency_token = idempotency_token


class TransactionConflictException(DynaglueError):
    """Another transaction holds a conflicting lock on an addressed item."""

    def __init__(self, message: str, idempotency_token: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="TRANSACTION_CONFLICT",
            details={"idempotency_token": idempotency_token},
        )
        self.idempotency_token = idempotency_token


class IdempotentParameterMismatchException(DynaglueError):
    """An idempotency token was reused with a different set of items."""

    def __init__(self, message: str, idempotency_token: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="IDEMPOTENT_PARAMETER_MISMATCH",
            details={"idempotency_token": idempotency_token},
        )
        self.idempotency_token = idempotency_token


class TransactionInProgressException(DynaglueError):
    """The original submission for this idempotency token has not finished."""

    def __init__(self, message: str, idempotency_token: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="TRANSACTION_IN_PROGRESS",
            details={"idempotency_token": idempotency_token},
        )
        self.idempotency_token = idempotency_token


class InternalProcessingException(DynaglueError):
    """A backend response could not be mapped back onto the collections.

    Only raised when a table holds keys this context did not write.
    """

    def __init__(self, message: str, table: Optional[str] = None) -> None:
        super().__init__(message, code="INTERNAL_PROCESSING", details={"table": table})
        self.table = table
