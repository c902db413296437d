"""
Transactional writes across collections.

TransactionWrite collects replace/delete/delete-child requests and commits
them as one TransactWriteItems call: every write is applied or none is.

    >>> tx = TransactionWrite(context)
    >>> tx.replace("users", {"_id": "42", "name": "Ann"})
    >>> tx.delete_child("addresses", "home", "42")
    >>> await tx.commit()

State moves IDLE -> BUILDING (first request added) -> SUBMITTED (sent to
the backend) -> COMMITTED or REJECTED.

Invariants:
    - Between 1 and 100 requests per transaction, checked before any
      backend call
    - Every request is translated to a backend item before anything is
      sent; a translation error sends nothing
    - Without a caller token, the ClientRequestToken is derived from the
      items, so an identical resubmission replays instead of re-applying
    - Backend failures are mapped once, in map_transaction_error(); unknown
      failures propagate unchanged

How to change safely:
    - New request kinds need a WriteKind member and a branch in
      create_transaction_item()
    - Changing token derivation breaks replay of in-flight retries; only do
      it alongside a release note
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from ..backend.base import MAX_TRANSACT_WRITE_ITEMS, BackendError, BackendErrorCode, Request
from ..conditions import CompositeCondition
from ..context import Context
from ..errors import (
    IdempotentParameterMismatchException,
    InvalidArgumentException,
    InvalidFindDescriptorException,
    TransactionCanceledException,
    TransactionConflictException,
    TransactionInProgressException,
    TransactionValidationException,
)
from ..log import debug_dynamo
from .delete_by_id import create_delete_by_id_request
from .delete_child_by_id import create_delete_child_by_id_request
from .replace import create_replace_request

logger = logging.getLogger(__name__)


class WriteKind(Enum):
    """Tag of a transaction write request."""

    REPLACE = "replace"
    DELETE = "delete"
    DELETE_CHILD = "delete_child"


class TransactionState(Enum):
    """Lifecycle of a TransactionWrite."""

    IDLE = "idle"
    BUILDING = "building"
    SUBMITTED = "submitted"
    COMMITTED = "committed"
    REJECTED = "rejected"


@dataclass(frozen=True)
class TransactionReplaceRequest:
    """Insert or replace ``value`` in a collection."""

    collection_name: str
    value: Mapping[str, Any]
    condition: Optional[CompositeCondition] = None
    kind: WriteKind = field(default=WriteKind.REPLACE, init=False)


@dataclass(frozen=True)
class TransactionDeleteRequest:
    """Delete a root document."""

    collection_name: str
    id: str
    condition: Optional[CompositeCondition] = None
    kind: WriteKind = field(default=WriteKind.DELETE, init=False)


@dataclass(frozen=True)
class TransactionDeleteChildRequest:
    """Delete a child document."""

    collection_name: str
    id: str
    root_object_id: str
    condition: Optional[CompositeCondition] = None
    kind: WriteKind = field(default=WriteKind.DELETE_CHILD, init=False)


TransactionWriteRequest = Union[
    TransactionReplaceRequest,
    TransactionDeleteRequest,
    TransactionDeleteChildRequest,
]


def create_transaction_item(context: Context, request: TransactionWriteRequest) -> Dict[str, Request]:
    """Translate one write request into a TransactWriteItems entry.

    Raises:
        InvalidArgumentException: If the request kind is unknown
    """
    kind = getattr(request, "kind", None)
    if kind == WriteKind.REPLACE:
        put, _ = create_replace_request(context, request.collection_name, request.value, request.condition)
        return {"Put": put}
    elif kind == WriteKind.DELETE:
        return {
            "Delete": create_delete_by_id_request(
                context, request.collection_name, request.id, request.condition
            )
        }
    elif kind == WriteKind.DELETE_CHILD:
        return {
            "Delete": create_delete_child_by_id_request(
                context,
                request.collection_name,
                request.id,
                request.root_object_id,
                request.condition,
            )
        }
    raise InvalidArgumentException(f"Unknown transaction write request: {request!r}", "requests")


def create_transaction_items(
    context: Context,
    requests: Sequence[TransactionWriteRequest],
) -> List[Dict[str, Request]]:
    """Translate every request, enforcing the transaction size limits.

    Raises:
        InvalidArgumentException: If there are no requests
        InvalidFindDescriptorException: If there are more than 100 requests
    """
    if len(requests) == 0:
        raise InvalidArgumentException("At least one request should be provided", "requests")
    if len(requests) > MAX_TRANSACT_WRITE_ITEMS:
        raise InvalidFindDescriptorException(
            f"No more than {MAX_TRANSACT_WRITE_ITEMS} requests can be specified to transaction_write",
            len(requests),
        )
    return [create_transaction_item(context, request) for request in requests]


def _canonical_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=repr)
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    return repr(value)


def derive_idempotency_token(items: Sequence[Mapping[str, Any]]) -> str:
    """Derive a ClientRequestToken from transaction items.

    The token is the base64 MD5 digest of the items' canonical JSON
    encoding (sorted keys, no whitespace).
    """
    canonical = json.dumps(items, sort_keys=True, separators=(",", ":"), default=_canonical_default)
    digest = hashlib.md5(canonical.encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


def map_transaction_error(err: BackendError, idempotency_token: Optional[str]) -> Exception:
    """Map a backend failure of TransactWriteItems to a domain error.

    Returns ``err`` itself for codes with no transaction meaning.
    """
    if err.code == BackendErrorCode.VALIDATION:
        return TransactionValidationException(
            f"Multiple operations are included for same item id: {err.message}",
            idempotency_token,
        )
    if err.code == BackendErrorCode.TRANSACTION_CANCELED:
        return TransactionCanceledException(
            "The entire transaction request was canceled",
            err.cancellation_reasons,
            idempotency_token,
        )
    if err.code == BackendErrorCode.TRANSACTION_CONFLICT:
        return TransactionConflictException(
            "Another transaction or request is in progress for one of the requested items",
            idempotency_token,
        )
    if err.code == BackendErrorCode.IDEMPOTENT_PARAMETER_MISMATCH:
        return IdempotentParameterMismatchException(
            "Another transaction or request was made with the same client token",
            idempotency_token,
        )
    if err.code == BackendErrorCode.TRANSACTION_IN_PROGRESS:
        return TransactionInProgressException(
            "The transaction with this client token is still in progress",
            idempotency_token,
        )
    return err


class TransactionWrite:
    """Atomic multi-document write builder.

    Attributes:
        state: Current TransactionState
        idempotency_token: Token sent with the commit (derived at commit
            time when not supplied)

    Example:
        >>> tx = TransactionWrite(context, idempotency_token="order-1234")
        >>> await tx.replace("orders", order).delete("carts", cart_id).commit()
    """

    def __init__(
        self,
        context: Context,
        *,
        idempotency_token: Optional[str] = None,
        return_consumed_capacity: Optional[str] = None,
        return_item_collection_metrics: Optional[str] = None,
    ) -> None:
        """Initialize an empty transaction.

        Args:
            context: The context
            idempotency_token: Optional ClientRequestToken
            return_consumed_capacity: INDEXES, TOTAL or NONE
            return_item_collection_metrics: SIZE or NONE
        """
        self._context = context
        self.idempotency_token = idempotency_token
        self._return_consumed_capacity = return_consumed_capacity
        self._return_item_collection_metrics = return_item_collection_metrics
        self._requests: List[TransactionWriteRequest] = []
        self.state = TransactionState.IDLE

    @property
    def requests(self) -> List[TransactionWriteRequest]:
        """Requests added so far."""
        return list(self._requests)

    def add(self, request: TransactionWriteRequest) -> TransactionWrite:
        """Add a request.

        Returns:
            Self for chaining

        Raises:
            InvalidArgumentException: If the transaction was already committed
        """
        if self.state not in (TransactionState.IDLE, TransactionState.BUILDING):
            raise InvalidArgumentException(
                f"Cannot add requests to a transaction in state {self.state.value}", "requests"
            )
        self._requests.append(request)
        self.state = TransactionState.BUILDING
        return self

    def replace(
        self,
        collection_name: str,
        value: Mapping[str, Any],
        condition: Optional[CompositeCondition] = None,
    ) -> TransactionWrite:
        """Add an insert-or-replace of ``value``."""
        return self.add(TransactionReplaceRequest(collection_name, value, condition))

    def delete(
        self,
        collection_name: str,
        id: str,
        condition: Optional[CompositeCondition] = None,
    ) -> TransactionWrite:
        """Add a delete of a root document."""
        return self.add(TransactionDeleteRequest(collection_name, id, condition))

    def delete_child(
        self,
        collection_name: str,
        id: str,
        root_object_id: str,
        condition: Optional[CompositeCondition] = None,
    ) -> TransactionWrite:
        """Add a delete of a child document."""
        return self.add(TransactionDeleteChildRequest(collection_name, id, root_object_id, condition))

    async def commit(self) -> None:
        """Submit every request as one atomic transaction.

        Raises:
            InvalidArgumentException: If there are no requests, or the
                transaction was already submitted
            InvalidFindDescriptorException: If there are more than 100 requests
            TransactionValidationException: If two requests address the
                same item
            TransactionCanceledException: If any condition failed; carries
                one cancellation reason per request
            TransactionConflictException: If another transaction holds a
                conflicting lock
            IdempotentParameterMismatchException: If the token was used for
                a different set of writes
            TransactionInProgressException: If the first submission with
                this token has not finished
        """
        if self.state not in (TransactionState.IDLE, TransactionState.BUILDING):
            raise InvalidArgumentException(
                f"Cannot commit a transaction in state {self.state.value}", "requests"
            )
        self.state = TransactionState.BUILDING
        try:
            items = create_transaction_items(self._context, self._requests)
        except Exception:
            self.state = TransactionState.REJECTED
            raise

        if self.idempotency_token is None:
            self.idempotency_token = derive_idempotency_token(items)
        request: Request = {
            "TransactItems": items,
            "ClientRequestToken": self.idempotency_token,
        }
        if self._return_consumed_capacity is not None:
            request["ReturnConsumedCapacity"] = self._return_consumed_capacity
        if self._return_item_collection_metrics is not None:
            request["ReturnItemCollectionMetrics"] = self._return_item_collection_metrics

        debug_dynamo("TransactWriteItems", request)
        self.state = TransactionState.SUBMITTED
        try:
            await self._context.backend.transact_write_items(request)
        except BackendError as e:
            self.state = TransactionState.REJECTED
            mapped = map_transaction_error(e, self.idempotency_token)
            logger.warning(
                "Transaction rejected",
                extra={
                    "error_code": e.code.value,
                    "items": len(items),
                    "idempotency_token": self.idempotency_token,
                },
            )
            if mapped is e:
                raise
            raise mapped from e
        except Exception:
            self.state = TransactionState.REJECTED
            raise

        self.state = TransactionState.COMMITTED
        logger.debug(
            "Transaction committed",
            extra={"items": len(items), "idempotency_token": self.idempotency_token},
        )


async def transaction_write(
    context: Context,
    requests: Sequence[TransactionWriteRequest],
    *,
    idempotency_token: Optional[str] = None,
    return_consumed_capacity: Optional[str] = None,
    return_item_collection_metrics: Optional[str] = None,
) -> None:
    """Write up to 100 requests atomically.

    See TransactionWrite.commit() for the errors raised.
    """
    transaction = TransactionWrite(
        context,
        idempotency_token=idempotency_token,
        return_consumed_capacity=return_consumed_capacity,
        return_item_collection_metrics=return_item_collection_metrics,
    )
    for request in requests:
        transaction.add(request)
    await transaction.commit()
