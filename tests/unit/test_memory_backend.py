"""
Unit tests for the in-memory DynamoDB backend.

Tests cover:
- Single-item put/get/delete with conditions and ReturnValues
- Key validation and unknown tables
- Transaction limits, atomicity and cancellation reasons
- Idempotency token replay and mismatch
- Update expressions, queries and batch reads and writes
"""

import pytest
import pytest_asyncio

from dynaglue.backend.base import BackendError, BackendErrorCode, DynamoBackend
from dynaglue.backend.memory import InMemoryDynamoBackend

TABLE = "global"


def item(id, **attributes):
    return {"id": id, "collection": id, **attributes}


def key(id):
    return {"id": id, "collection": id}


def put(id, **attributes):
    return {"Put": {"TableName": TABLE, "Item": item(id, **attributes)}}


class TestSingleItem:
    """Tests for put_item, get_item and delete_item."""

    @pytest.fixture
    def backend(self):
        backend = InMemoryDynamoBackend()
        backend.create_table(TABLE, "id", "collection")
        return backend

    def test_implements_protocol(self, backend):
        """The backend satisfies DynamoBackend."""
        assert isinstance(backend, DynamoBackend)

    @pytest.mark.asyncio
    async def test_put_then_get(self, backend):
        """Stored items are returned by key."""
        await backend.put_item({"TableName": TABLE, "Item": item("a", n=1)})
        response = await backend.get_item({"TableName": TABLE, "Key": key("a")})
        assert response == {"Item": item("a", n=1)}

    @pytest.mark.asyncio
    async def test_get_missing(self, backend):
        """Missing items give an empty response."""
        assert await backend.get_item({"TableName": TABLE, "Key": key("a")}) == {}

    @pytest.mark.asyncio
    async def test_items_are_copied(self, backend):
        """Neither the request nor the response aliases stored state."""
        stored = item("a", tags=["x"])
        await backend.put_item({"TableName": TABLE, "Item": stored})
        stored["tags"].append("y")
        response = await backend.get_item({"TableName": TABLE, "Key": key("a")})
        response["Item"]["tags"].append("z")
        assert backend.items(TABLE) == [item("a", tags=["x"])]

    @pytest.mark.asyncio
    async def test_put_returns_old_values(self, backend):
        """ReturnValues=ALL_OLD returns the replaced item."""
        await backend.put_item({"TableName": TABLE, "Item": item("a", n=1)})
        response = await backend.put_item(
            {"TableName": TABLE, "Item": item("a", n=2), "ReturnValues": "ALL_OLD"}
        )
        assert response == {"Attributes": item("a", n=1)}

    @pytest.mark.asyncio
    async def test_conditional_put(self, backend):
        """A failed condition raises CONDITIONAL_CHECK_FAILED and writes nothing."""
        request = {
            "TableName": TABLE,
            "Item": item("a", n=1),
            "ConditionExpression": "attribute_not_exists(#pk)",
            "ExpressionAttributeNames": {"#pk": "id"},
        }
        await backend.put_item(request)
        with pytest.raises(BackendError) as exc_info:
            await backend.put_item({**request, "Item": item("a", n=2)})
        assert exc_info.value.code == BackendErrorCode.CONDITIONAL_CHECK_FAILED
        assert backend.items(TABLE) == [item("a", n=1)]

    @pytest.mark.asyncio
    async def test_delete(self, backend):
        """Deletes remove the item and can return it."""
        await backend.put_item({"TableName": TABLE, "Item": item("a")})
        response = await backend.delete_item({"TableName": TABLE, "Key": key("a"), "ReturnValues": "ALL_OLD"})
        assert response == {"Attributes": item("a")}
        assert backend.items(TABLE) == []
        assert await backend.delete_item({"TableName": TABLE, "Key": key("a"), "ReturnValues": "ALL_OLD"}) == {}

    @pytest.mark.asyncio
    async def test_unknown_table(self, backend):
        """Unknown tables raise RESOURCE_NOT_FOUND."""
        with pytest.raises(BackendError) as exc_info:
            await backend.get_item({"TableName": "nope", "Key": key("a")})
        assert exc_info.value.code == BackendErrorCode.RESOURCE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_key_must_match_schema(self, backend):
        """Keys must have exactly the key attributes, as strings."""
        with pytest.raises(BackendError) as exc_info:
            await backend.get_item({"TableName": TABLE, "Key": {"id": "a"}})
        assert exc_info.value.code == BackendErrorCode.VALIDATION
        with pytest.raises(BackendError):
            await backend.put_item({"TableName": TABLE, "Item": {"id": "a", "collection": 1}})

    @pytest.mark.asyncio
    async def test_calls_recorded(self, backend):
        """Every request is recorded."""
        await backend.get_item({"TableName": TABLE, "Key": key("a")})
        assert backend.calls == [("get_item", {"TableName": TABLE, "Key": key("a")})]


class TestTransactions:
    """Tests for transact_write_items and transact_get_items."""

    @pytest.fixture
    def backend(self):
        backend = InMemoryDynamoBackend()
        backend.create_table(TABLE, "id", "collection")
        return backend

    @pytest.mark.asyncio
    async def test_write_applies_all(self, backend):
        """Puts and deletes are applied together."""
        await backend.put_item({"TableName": TABLE, "Item": item("old")})
        await backend.transact_write_items(
            {
                "TransactItems": [
                    put("a"),
                    put("b"),
                    {"Delete": {"TableName": TABLE, "Key": key("old")}},
                ]
            }
        )
        assert sorted(i["id"] for i in backend.items(TABLE)) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_failed_condition_cancels_everything(self, backend):
        """One failed condition cancels the whole transaction with per-item reasons."""
        await backend.put_item({"TableName": TABLE, "Item": item("b", n=1)})
        guarded = put("b", n=2)
        guarded["Put"]["ConditionExpression"] = "attribute_not_exists(id)"

        with pytest.raises(BackendError) as exc_info:
            await backend.transact_write_items({"TransactItems": [put("a"), guarded]})

        error = exc_info.value
        assert error.code == BackendErrorCode.TRANSACTION_CANCELED
        assert [reason["Code"] for reason in error.cancellation_reasons] == ["None", "ConditionalCheckFailed"]
        assert backend.items(TABLE) == [item("b", n=1)]

    @pytest.mark.asyncio
    async def test_cancellation_reason_with_item(self, backend):
        """ReturnValuesOnConditionCheckFailure=ALL_OLD puts the item in the reason."""
        await backend.put_item({"TableName": TABLE, "Item": item("b", n=1)})
        guarded = put("b")
        guarded["Put"]["ConditionExpression"] = "attribute_not_exists(id)"
        guarded["Put"]["ReturnValuesOnConditionCheckFailure"] = "ALL_OLD"

        with pytest.raises(BackendError) as exc_info:
            await backend.transact_write_items({"TransactItems": [guarded]})
        assert exc_info.value.cancellation_reasons[0]["Item"] == item("b", n=1)

    @pytest.mark.asyncio
    async def test_duplicate_item(self, backend):
        """Two actions on one item are a validation error."""
        with pytest.raises(BackendError) as exc_info:
            await backend.transact_write_items(
                {"TransactItems": [put("a"), {"Delete": {"TableName": TABLE, "Key": key("a")}}]}
            )
        assert exc_info.value.code == BackendErrorCode.VALIDATION
        assert backend.items(TABLE) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [0, 101])
    async def test_write_limits(self, backend, count):
        """Transactions take 1 to 100 items."""
        with pytest.raises(BackendError) as exc_info:
            await backend.transact_write_items({"TransactItems": [put(f"i{n}") for n in range(count)]})
        assert exc_info.value.code == BackendErrorCode.VALIDATION

    @pytest.mark.asyncio
    async def test_hundred_items(self, backend):
        """100 items is allowed."""
        await backend.transact_write_items({"TransactItems": [put(f"i{n}") for n in range(100)]})
        assert len(backend.items(TABLE)) == 100

    @pytest.mark.asyncio
    async def test_token_replay(self, backend):
        """The same items and token are applied once."""
        guarded = put("a")
        guarded["Put"]["ConditionExpression"] = "attribute_not_exists(id)"
        request = {"TransactItems": [guarded], "ClientRequestToken": "t1"}

        await backend.transact_write_items(request)
        await backend.transact_write_items(request)
        assert backend.items(TABLE) == [item("a")]

    @pytest.mark.asyncio
    async def test_token_mismatch(self, backend):
        """Reusing a token for different items is rejected."""
        await backend.transact_write_items({"TransactItems": [put("a")], "ClientRequestToken": "t1"})
        with pytest.raises(BackendError) as exc_info:
            await backend.transact_write_items({"TransactItems": [put("b")], "ClientRequestToken": "t1"})
        assert exc_info.value.code == BackendErrorCode.IDEMPOTENT_PARAMETER_MISMATCH

    @pytest.mark.asyncio
    async def test_token_expires(self):
        """Tokens are forgotten after the idempotency window."""
        backend = InMemoryDynamoBackend(idempotency_window=-1.0)
        backend.create_table(TABLE, "id", "collection")
        await backend.transact_write_items({"TransactItems": [put("a")], "ClientRequestToken": "t1"})
        await backend.transact_write_items({"TransactItems": [put("b")], "ClientRequestToken": "t1"})
        assert len(backend.items(TABLE)) == 2

    @pytest.mark.asyncio
    async def test_get_items_in_order(self, backend):
        """transact_get_items answers in request order, empty for misses."""
        await backend.put_item({"TableName": TABLE, "Item": item("a")})
        response = await backend.transact_get_items(
            {
                "TransactItems": [
                    {"Get": {"TableName": TABLE, "Key": key("missing")}},
                    {"Get": {"TableName": TABLE, "Key": key("a")}},
                ]
            }
        )
        assert response == {"Responses": [{}, {"Item": item("a")}]}

    @pytest.mark.asyncio
    async def test_get_limit(self, backend):
        """transact_get_items takes at most 25 items."""
        with pytest.raises(BackendError) as exc_info:
            await backend.transact_get_items(
                {"TransactItems": [{"Get": {"TableName": TABLE, "Key": key(f"i{n}")}} for n in range(26)]}
            )
        assert exc_info.value.code == BackendErrorCode.VALIDATION


def child(parent, id, **attributes):
    return {"id": parent, "collection": id, **attributes}


class TestUpdateItem:
    """Tests for update_item."""

    @pytest.fixture
    def backend(self):
        backend = InMemoryDynamoBackend()
        backend.create_table(TABLE, "id", "collection")
        return backend

    @pytest.mark.asyncio
    async def test_returns_new_values(self, backend):
        """ReturnValues=ALL_NEW returns the whole updated item."""
        await backend.put_item({"TableName": TABLE, "Item": item("a", n=1, m=2)})
        response = await backend.update_item(
            {
                "TableName": TABLE,
                "Key": key("a"),
                "UpdateExpression": "SET #n = :n REMOVE #m",
                "ExpressionAttributeNames": {"#n": "n", "#m": "m"},
                "ExpressionAttributeValues": {":n": 5},
                "ReturnValues": "ALL_NEW",
            }
        )
        assert response == {"Attributes": item("a", n=5)}
        assert backend.items(TABLE) == [item("a", n=5)]

    @pytest.mark.asyncio
    async def test_creates_missing_item(self, backend):
        """Top-level SETs on a missing key create the item."""
        await backend.update_item(
            {"TableName": TABLE, "Key": key("a"), "UpdateExpression": "SET n = :n", "ExpressionAttributeValues": {":n": 1}}
        )
        assert backend.items(TABLE) == [item("a", n=1)]

    @pytest.mark.asyncio
    async def test_nested_set_on_missing_item(self, backend):
        """A nested SET on a missing item is a validation error."""
        with pytest.raises(BackendError) as exc_info:
            await backend.update_item(
                {
                    "TableName": TABLE,
                    "Key": key("a"),
                    "UpdateExpression": "SET #v.#n = :n",
                    "ExpressionAttributeNames": {"#v": "value", "#n": "name"},
                    "ExpressionAttributeValues": {":n": "Ann"},
                }
            )
        assert exc_info.value.code == BackendErrorCode.VALIDATION
        assert backend.items(TABLE) == []

    @pytest.mark.asyncio
    async def test_condition_failure(self, backend):
        """A failed condition leaves the item unchanged."""
        await backend.put_item({"TableName": TABLE, "Item": item("a", n=1)})
        with pytest.raises(BackendError) as exc_info:
            await backend.update_item(
                {
                    "TableName": TABLE,
                    "Key": key("a"),
                    "UpdateExpression": "SET n = :n",
                    "ConditionExpression": "n = :expected",
                    "ExpressionAttributeValues": {":n": 2, ":expected": 3},
                }
            )
        assert exc_info.value.code == BackendErrorCode.CONDITIONAL_CHECK_FAILED
        assert backend.items(TABLE) == [item("a", n=1)]

    @pytest.mark.asyncio
    async def test_key_cannot_change(self, backend):
        """Updating a key attribute is rejected."""
        await backend.put_item({"TableName": TABLE, "Item": item("a")})
        with pytest.raises(BackendError) as exc_info:
            await backend.update_item(
                {
                    "TableName": TABLE,
                    "Key": key("a"),
                    "UpdateExpression": "SET collection = :c",
                    "ExpressionAttributeValues": {":c": "b"},
                }
            )
        assert exc_info.value.code == BackendErrorCode.VALIDATION
        assert backend.items(TABLE) == [item("a")]


class TestQuery:
    """Tests for query."""

    @pytest_asyncio.fixture
    async def backend(self):
        backend = InMemoryDynamoBackend()
        backend.create_table(TABLE, "id", "collection")
        for id in ["c|-|1", "c|-|2", "c|-|3", "other|-|1"]:
            await backend.put_item({"TableName": TABLE, "Item": child("p", id, n=int(id[-1]))})
        await backend.put_item({"TableName": TABLE, "Item": child("q", "c|-|9", n=9)})
        return backend

    def query(self, **extra):
        return {
            "TableName": TABLE,
            "KeyConditionExpression": "#pk = :pk AND begins_with(#sk, :prefix)",
            "ExpressionAttributeNames": {"#pk": "id", "#sk": "collection"},
            "ExpressionAttributeValues": {":pk": "p", ":prefix": "c|-|"},
            **extra,
        }

    @pytest.mark.asyncio
    async def test_key_condition(self, backend):
        """Only items under the partition and sort key prefix match, in key order."""
        response = await backend.query(self.query())
        assert [i["collection"] for i in response["Items"]] == ["c|-|1", "c|-|2", "c|-|3"]
        assert response["Count"] == 3
        assert "LastEvaluatedKey" not in response

    @pytest.mark.asyncio
    async def test_backwards(self, backend):
        """ScanIndexForward=False reverses the order."""
        response = await backend.query(self.query(ScanIndexForward=False))
        assert [i["collection"] for i in response["Items"]] == ["c|-|3", "c|-|2", "c|-|1"]

    @pytest.mark.asyncio
    async def test_paging(self, backend):
        """Limit pages through the matches with LastEvaluatedKey."""
        first = await backend.query(self.query(Limit=2))
        assert [i["collection"] for i in first["Items"]] == ["c|-|1", "c|-|2"]
        assert first["LastEvaluatedKey"] == {"id": "p", "collection": "c|-|2"}

        second = await backend.query(self.query(Limit=2, ExclusiveStartKey=first["LastEvaluatedKey"]))
        assert [i["collection"] for i in second["Items"]] == ["c|-|3"]
        assert "LastEvaluatedKey" not in second

    @pytest.mark.asyncio
    async def test_filter_after_limit(self, backend):
        """FilterExpression drops items after Limit is applied."""
        request = self.query(Limit=2, FilterExpression="#n > :min")
        request["ExpressionAttributeNames"] = {**request["ExpressionAttributeNames"], "#n": "n"}
        request["ExpressionAttributeValues"] = {**request["ExpressionAttributeValues"], ":min": 1}
        response = await backend.query(request)
        assert [i["collection"] for i in response["Items"]] == ["c|-|2"]
        assert response["ScannedCount"] == 2
        assert response["LastEvaluatedKey"] == {"id": "p", "collection": "c|-|2"}

    @pytest.mark.asyncio
    async def test_secondary_index_rejected(self, backend):
        """Queries on a secondary index are a validation error."""
        with pytest.raises(BackendError) as exc_info:
            await backend.query(self.query(IndexName="gs1"))
        assert exc_info.value.code == BackendErrorCode.VALIDATION


class TestBatch:
    """Tests for batch_get_item and batch_write_item."""

    @pytest.fixture
    def backend(self):
        backend = InMemoryDynamoBackend()
        backend.create_table(TABLE, "id", "collection")
        return backend

    @pytest.mark.asyncio
    async def test_get(self, backend):
        """Found items are returned per table; misses are left out."""
        await backend.put_item({"TableName": TABLE, "Item": item("a", n=1)})
        response = await backend.batch_get_item({"RequestItems": {TABLE: {"Keys": [key("a"), key("missing")]}}})
        assert response == {"Responses": {TABLE: [item("a", n=1)]}, "UnprocessedKeys": {}}

    @pytest.mark.asyncio
    async def test_get_duplicates(self, backend):
        """The same key twice is a validation error."""
        with pytest.raises(BackendError) as exc_info:
            await backend.batch_get_item({"RequestItems": {TABLE: {"Keys": [key("a"), key("a")]}}})
        assert exc_info.value.code == BackendErrorCode.VALIDATION

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [0, 101])
    async def test_get_limits(self, backend, count):
        """Batch reads take 1 to 100 keys."""
        with pytest.raises(BackendError) as exc_info:
            await backend.batch_get_item({"RequestItems": {TABLE: {"Keys": [key(f"i{n}") for n in range(count)]}}})
        assert exc_info.value.code == BackendErrorCode.VALIDATION

    @pytest.mark.asyncio
    async def test_write(self, backend):
        """Puts and deletes are applied."""
        await backend.put_item({"TableName": TABLE, "Item": item("old")})
        response = await backend.batch_write_item(
            {
                "RequestItems": {
                    TABLE: [
                        {"PutRequest": {"Item": item("a", n=1)}},
                        {"DeleteRequest": {"Key": key("old")}},
                    ]
                }
            }
        )
        assert response == {"UnprocessedItems": {}}
        assert backend.items(TABLE) == [item("a", n=1)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [0, 26])
    async def test_write_limits(self, backend, count):
        """Batch writes take 1 to 25 requests."""
        with pytest.raises(BackendError) as exc_info:
            await backend.batch_write_item(
                {"RequestItems": {TABLE: [{"PutRequest": {"Item": item(f"i{n}")}} for n in range(count)]}}
            )
        assert exc_info.value.code == BackendErrorCode.VALIDATION
        assert backend.items(TABLE) == []

    @pytest.mark.asyncio
    async def test_write_duplicates(self, backend):
        """A put and a delete of the same key are rejected."""
        with pytest.raises(BackendError) as exc_info:
            await backend.batch_write_item(
                {"RequestItems": {TABLE: [{"PutRequest": {"Item": item("a")}}, {"DeleteRequest": {"Key": key("a")}}]}}
            )
        assert exc_info.value.code == BackendErrorCode.VALIDATION
