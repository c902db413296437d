"""
Integration tests for transactional writes over the in-memory backend.

Tests cover:
- Atomic commit and state transitions
- Cancellation with per-item reasons
- Idempotency token replay and mismatch
- Error mapping for backend failures
"""

import pytest

from dynaglue import (
    BackendError,
    BackendErrorCode,
    IdempotentParameterMismatchException,
    InMemoryDynamoBackend,
    InvalidArgumentException,
    InvalidFindDescriptorException,
    InvalidParentIdException,
    TransactionCanceledException,
    TransactionConflictException,
    TransactionDeleteChildRequest,
    TransactionDeleteRequest,
    TransactionInProgressException,
    TransactionReplaceRequest,
    TransactionState,
    TransactionValidationException,
    TransactionWrite,
    create_context,
    find_by_id,
    find_child_by_id,
    replace,
    transaction_write,
)


class FailingBackend(InMemoryDynamoBackend):
    """In-memory backend whose transactions fail with a fixed error."""

    def __init__(self, error):
        super().__init__()
        self.error = error

    async def transact_write_items(self, request):
        self.calls.append(("transact_write_items", request))
        raise self.error


class TestCommit:
    """Tests for successful commits."""

    @pytest.mark.asyncio
    async def test_commit_applies_every_write(self, context):
        """Replaces and deletes across collections are applied together."""
        await replace(context, "users", {"_id": "old"})
        await replace(context, "addresses", {"_id": "home", "userId": "1"})

        tx = TransactionWrite(context)
        tx.replace("users", {"_id": "1", "name": "Ann"})
        tx.replace("locations", {"_id": "syd", "country": "AU", "state": "NSW", "city": "Sydney"})
        tx.delete("users", "old")
        tx.delete_child("addresses", "home", "1")
        await tx.commit()

        assert tx.state == TransactionState.COMMITTED
        assert await find_by_id(context, "users", "1") == {"_id": "1", "name": "Ann"}
        assert (await find_by_id(context, "locations", "syd"))["city"] == "Sydney"
        assert await find_by_id(context, "users", "old") is None
        assert await find_child_by_id(context, "addresses", "home", "1") is None

    @pytest.mark.asyncio
    async def test_index_keys_written(self, context, backend):
        """Transactional replaces store the same envelope as replace()."""
        await transaction_write(
            context,
            [TransactionReplaceRequest("locations", {"_id": "au", "country": "AU"})],
        )
        (item,) = backend.items("global")
        assert item["gs1p"] == "locations|-|AU"
        assert "gs1s" not in item

    @pytest.mark.asyncio
    async def test_request_shape(self, context, backend):
        """The backend gets one request with a token and the options."""
        await transaction_write(
            context,
            [TransactionDeleteRequest("users", "1"), TransactionDeleteChildRequest("addresses", "a", "1")],
            return_consumed_capacity="TOTAL",
            return_item_collection_metrics="SIZE",
        )
        operation, request = backend.calls[-1]
        assert operation == "transact_write_items"
        assert len(request["TransactItems"]) == 2
        assert request["ClientRequestToken"]
        assert request["ReturnConsumedCapacity"] == "TOTAL"
        assert request["ReturnItemCollectionMetrics"] == "SIZE"

    @pytest.mark.asyncio
    async def test_explicit_token(self, context, backend):
        """A caller-supplied token is sent as is."""
        tx = TransactionWrite(context, idempotency_token="order-1")
        await tx.delete("users", "1").commit()
        assert backend.calls[-1][1]["ClientRequestToken"] == "order-1"
        assert tx.idempotency_token == "order-1"


class TestCancellation:
    """Tests for cancelled transactions."""

    @pytest.mark.asyncio
    async def test_nothing_applied(self, context, backend):
        """A failed condition cancels every write and reports per-item reasons."""
        await replace(context, "users", {"_id": "2", "name": "Bob"})

        tx = (
            TransactionWrite(context)
            .replace("users", {"_id": "1", "name": "Ann"})
            .replace("users", {"_id": "2", "name": "Robert"}, {"_id": {"$exists": False}})
        )
        with pytest.raises(TransactionCanceledException) as exc_info:
            await tx.commit()

        assert tx.state == TransactionState.REJECTED
        reasons = exc_info.value.cancellation_reasons
        assert [reason["Code"] for reason in reasons] == ["None", "ConditionalCheckFailed"]
        assert exc_info.value.idempotency_token == tx.idempotency_token
        assert await find_by_id(context, "users", "1") is None
        assert (await find_by_id(context, "users", "2"))["name"] == "Bob"

    @pytest.mark.asyncio
    async def test_duplicate_item(self, context):
        """Two writes to one document are a validation error."""
        with pytest.raises(TransactionValidationException):
            await transaction_write(
                context,
                [
                    TransactionReplaceRequest("users", {"_id": "1"}),
                    TransactionDeleteRequest("users", "1"),
                ],
            )
        assert await find_by_id(context, "users", "1") is None

    @pytest.mark.asyncio
    async def test_no_commit_after_rejection(self, context):
        """A rejected transaction cannot be reused."""
        tx = TransactionWrite(context).replace("users", {"_id": "1"}).delete("users", "1")
        with pytest.raises(TransactionValidationException):
            await tx.commit()
        with pytest.raises(InvalidArgumentException):
            tx.delete("users", "2")
        with pytest.raises(InvalidArgumentException):
            await tx.commit()


class TestIdempotency:
    """Tests for idempotency tokens."""

    @pytest.mark.asyncio
    async def test_explicit_token_replay(self, context, backend):
        """Resubmitting with the same token and writes is a no-op."""
        requests = [TransactionReplaceRequest("users", {"_id": "1"}, {"_id": {"$exists": False}})]
        await transaction_write(context, requests, idempotency_token="t1")
        await transaction_write(context, requests, idempotency_token="t1")
        assert len(backend.items("global")) == 1

    @pytest.mark.asyncio
    async def test_derived_token_replay(self, context, backend):
        """Identical writes derive the same token and replay."""
        requests = [TransactionReplaceRequest("users", {"_id": "1"}, {"_id": {"$exists": False}})]
        first = TransactionWrite(context).add(requests[0])
        second = TransactionWrite(context).add(requests[0])

        await first.commit()
        await second.commit()

        assert first.idempotency_token == second.idempotency_token
        assert second.state == TransactionState.COMMITTED

    @pytest.mark.asyncio
    async def test_token_mismatch(self, context):
        """Reusing a token for different writes is rejected."""
        await transaction_write(context, [TransactionDeleteRequest("users", "1")], idempotency_token="t1")
        with pytest.raises(IdempotentParameterMismatchException) as exc_info:
            await transaction_write(context, [TransactionDeleteRequest("users", "2")], idempotency_token="t1")
        assert exc_info.value.idempotency_token == "t1"


class TestLimits:
    """Transaction size limits are checked before any backend call."""

    @pytest.mark.asyncio
    async def test_empty(self, context, backend):
        """Empty transactions are rejected."""
        tx = TransactionWrite(context)
        with pytest.raises(InvalidArgumentException):
            await tx.commit()
        assert tx.state == TransactionState.REJECTED
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_too_many(self, context, backend):
        """More than 100 writes are rejected."""
        requests = [TransactionDeleteRequest("users", str(n)) for n in range(101)]
        with pytest.raises(InvalidFindDescriptorException):
            await transaction_write(context, requests)
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_translation_error_sends_nothing(self, context, backend):
        """A request that cannot be translated stops the whole transaction."""
        tx = TransactionWrite(context).delete("users", "1").replace("addresses", {"_id": "home"})
        with pytest.raises(InvalidParentIdException):
            await tx.commit()
        assert tx.state == TransactionState.REJECTED
        assert backend.calls == []


class TestErrorMapping:
    """Backend failures map to transaction errors."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "code,expected",
        [
            (BackendErrorCode.TRANSACTION_CONFLICT, TransactionConflictException),
            (BackendErrorCode.TRANSACTION_IN_PROGRESS, TransactionInProgressException),
        ],
    )
    async def test_mapped(self, users, code, expected):
        """Conflict and in-progress errors are mapped."""
        backend = FailingBackend(BackendError(code, "busy"))
        context = create_context(backend, [users])
        tx = TransactionWrite(context).delete("users", "1")

        with pytest.raises(expected) as exc_info:
            await tx.commit()
        assert isinstance(exc_info.value.__cause__, BackendError)
        assert tx.state == TransactionState.REJECTED

    @pytest.mark.asyncio
    async def test_unmapped_passes_through(self, users):
        """Other backend errors propagate unchanged."""
        error = BackendError(BackendErrorCode.PROVISIONED_THROUGHPUT_EXCEEDED, "slow down")
        context = create_context(FailingBackend(error), [users])

        with pytest.raises(BackendError) as exc_info:
            await TransactionWrite(context).delete("users", "1").commit()
        assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_other_exceptions_pass_through(self, users):
        """Exceptions that are not backend errors propagate unchanged."""
        context = create_context(FailingBackend(TimeoutError()), [users])
        tx = TransactionWrite(context).delete("users", "1")

        with pytest.raises(TimeoutError):
            await tx.commit()
        assert tx.state == TransactionState.REJECTED
