"""
In-memory DynamoDB backend for testing.

This module provides a DynamoBackend that keeps tables in process memory,
for:
- Unit and integration tests
- Local development without DynamoDB Local

It behaves like DynamoDB where the operations depend on it: condition
and update expressions are evaluated, queries page through the primary
index, batch and transaction item limits are enforced, transactions are
all-or-nothing with per-item cancellation reasons and idempotency tokens
are honoured. Batch calls always process every item.

Invariants:
    - All data is lost on process exit
    - Stored items and returned items are deep copies; callers can never
      alias stored state
    - Writes are serialised with an asyncio lock
    - A transaction either applies every item or none of them

How to change safely:
    - This is test code, but tests rely on it matching DynamoDB; check new
      behaviour against DynamoDB Local before adding it
    - Keep the interface identical to the DynamoBackend protocol
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..base.layout import CollectionLayout
from .base import (
    MAX_BATCH_GET_ITEMS,
    MAX_BATCH_WRITE_ITEMS,
    MAX_TRANSACT_GET_ITEMS,
    MAX_TRANSACT_WRITE_ITEMS,
    BackendError,
    BackendErrorCode,
    Request,
    Response,
)
from .evaluator import ExpressionError, apply_update, evaluate_condition

logger = logging.getLogger(__name__)

IDEMPOTENCY_WINDOW_SECONDS = 600.0

ItemKey = Tuple[Any, ...]


@dataclass
class InMemoryTable:
    """One table: key schema plus items keyed by primary key values."""

    name: str
    partition_key: str
    sort_key: Optional[str] = None
    items: Dict[ItemKey, Dict[str, Any]] = field(default_factory=dict)

    @property
    def key_attributes(self) -> Tuple[str, ...]:
        if self.sort_key:
            return (self.partition_key, self.sort_key)
        return (self.partition_key,)

    def key_of(self, attributes: Dict[str, Any], exact: bool) -> ItemKey:
        """Extract the primary key of an item or Key map.

        Raises:
            BackendError: If a key attribute is missing or not a string, or
                (when ``exact``) extra attributes are present
        """
        if exact and set(attributes) != set(self.key_attributes):
            raise BackendError(
                BackendErrorCode.VALIDATION,
                "The provided key element does not match the schema",
            )
        values = []
        for attribute in self.key_attributes:
            value = attributes.get(attribute)
            if not isinstance(value, str) or value == "":
                raise BackendError(
                    BackendErrorCode.VALIDATION,
                    f"One or more parameter values were invalid: missing or invalid key {attribute}",
                )
            values.append(value)
        return tuple(values)


@dataclass
class _IdempotencyRecord:
    fingerprint: str
    recorded_at: float


class InMemoryDynamoBackend:
    """In-memory implementation of DynamoBackend.

    Tables must be created before use, either directly or from a layout.

    Attributes:
        calls: Every request received, as ``(operation, request)`` pairs

    Example:
        >>> backend = InMemoryDynamoBackend()
        >>> backend.create_table_for_layout(layout)
        >>> await backend.put_item({"TableName": "global", "Item": {...}})
    """

    def __init__(self, idempotency_window: float = IDEMPOTENCY_WINDOW_SECONDS) -> None:
        """Initialize an empty backend.

        Args:
            idempotency_window: Seconds a transaction token is remembered
        """
        self.idempotency_window = idempotency_window
        self.calls: List[Tuple[str, Request]] = []
        self._tables: Dict[str, InMemoryTable] = {}
        self._tokens: Dict[str, _IdempotencyRecord] = {}
        self._lock = asyncio.Lock()

    def create_table(self, table_name: str, partition_key: str, sort_key: Optional[str] = None) -> InMemoryTable:
        """Create (or return the existing) table."""
        table = self._tables.get(table_name)
        if table is None:
            table = InMemoryTable(table_name, partition_key, sort_key)
            self._tables[table_name] = table
            logger.debug(
                "Created in-memory table",
                extra={"table": table_name, "partition_key": partition_key, "sort_key": sort_key},
            )
        return table

    def create_table_for_layout(self, layout: CollectionLayout) -> InMemoryTable:
        """Create the table a collection layout describes."""
        return self.create_table(
            layout.table_name,
            layout.primary_key.partition_key,
            layout.primary_key.sort_key,
        )

    def items(self, table_name: str) -> List[Dict[str, Any]]:
        """Return copies of every item stored in a table."""
        return [copy.deepcopy(item) for item in self._table(table_name).items.values()]

    async def put_item(self, request: Request) -> Response:
        self.calls.append(("put_item", request))
        table = self._table(request["TableName"])
        item = copy.deepcopy(request["Item"])
        key = table.key_of(item, exact=False)
        async with self._lock:
            existing = table.items.get(key)
            self._check_condition(request, existing)
            table.items[key] = item
        return self._return_values(request, existing)

    async def delete_item(self, request: Request) -> Response:
        self.calls.append(("delete_item", request))
        table = self._table(request["TableName"])
        key = table.key_of(request["Key"], exact=True)
        async with self._lock:
            existing = table.items.get(key)
            self._check_condition(request, existing)
            table.items.pop(key, None)
        return self._return_values(request, existing)

    async def get_item(self, request: Request) -> Response:
        self.calls.append(("get_item", request))
        table = self._table(request["TableName"])
        item = table.items.get(table.key_of(request["Key"], exact=True))
        if item is None:
            return {}
        return {"Item": copy.deepcopy(item)}

    async def update_item(self, request: Request) -> Response:
        self.calls.append(("update_item", request))
        table = self._table(request["TableName"])
        key = table.key_of(request["Key"], exact=True)
        async with self._lock:
            existing = table.items.get(key)
            self._check_condition(request, existing)
            try:
                updated = apply_update(
                    request["UpdateExpression"],
                    request.get("ExpressionAttributeNames"),
                    request.get("ExpressionAttributeValues"),
                    existing if existing is not None else request["Key"],
                )
            except ExpressionError as e:
                raise BackendError(BackendErrorCode.VALIDATION, f"Invalid UpdateExpression: {e}") from e
            if table.key_of(updated, exact=False) != key:
                raise BackendError(
                    BackendErrorCode.VALIDATION,
                    "One or more parameter values were invalid: cannot update attribute that is part of the key",
                )
            table.items[key] = updated

        return_values = request.get("ReturnValues")
        if return_values == "ALL_NEW":
            return {"Attributes": copy.deepcopy(updated)}
        return self._return_values(request, existing)

    async def query(self, request: Request) -> Response:
        """Query the table's primary index.

        ``LastEvaluatedKey`` is only returned when ``Limit`` stopped the
        query before the last matching item.
        """
        self.calls.append(("query", request))
        table = self._table(request["TableName"])
        if request.get("IndexName"):
            raise BackendError(BackendErrorCode.VALIDATION, "In-memory tables have no secondary indexes")

        names = request.get("ExpressionAttributeNames")
        values = request.get("ExpressionAttributeValues")
        forward = request.get("ScanIndexForward", True)
        matching = []
        for key in sorted(table.items, reverse=not forward):
            item = table.items[key]
            if self._evaluate_expression(request["KeyConditionExpression"], names, values, item):
                matching.append((key, item))

        start = request.get("ExclusiveStartKey")
        if start is not None:
            start_key = table.key_of(start, exact=True)
            matching = [(key, item) for key, item in matching if (key > start_key if forward else key < start_key)]

        limit = request.get("Limit")
        evaluated = matching if limit is None else matching[:limit]
        filter_expression = request.get("FilterExpression")
        items = [
            copy.deepcopy(item)
            for _, item in evaluated
            if filter_expression is None or self._evaluate_expression(filter_expression, names, values, item)
        ]

        response: Response = {"Items": items, "Count": len(items), "ScannedCount": len(evaluated)}
        if len(evaluated) < len(matching):
            last = evaluated[-1][1]
            response["LastEvaluatedKey"] = {name: last[name] for name in table.key_attributes}
        return response

    async def batch_get_item(self, request: Request) -> Response:
        self.calls.append(("batch_get_item", request))
        request_items = request.get("RequestItems") or {}
        addressed = []
        for table_name, keys_and_attributes in request_items.items():
            table = self._table(table_name)
            for key in keys_and_attributes.get("Keys") or []:
                addressed.append((table, table.key_of(key, exact=True)))
        self._check_item_count(addressed, MAX_BATCH_GET_ITEMS)
        self._check_unique(addressed, "Provided list of item keys contains duplicates")

        responses: Dict[str, List[Dict[str, Any]]] = {table_name: [] for table_name in request_items}
        for table, key in addressed:
            item = table.items.get(key)
            if item is not None:
                responses[table.name].append(copy.deepcopy(item))
        return {"Responses": responses, "UnprocessedKeys": {}}

    async def batch_write_item(self, request: Request) -> Response:
        self.calls.append(("batch_write_item", request))
        request_items = request.get("RequestItems") or {}
        writes = []
        for table_name, write_requests in request_items.items():
            table = self._table(table_name)
            for write_request in write_requests:
                if "PutRequest" in write_request:
                    item = write_request["PutRequest"]["Item"]
                    writes.append((table, table.key_of(item, exact=False), item))
                elif "DeleteRequest" in write_request:
                    writes.append((table, table.key_of(write_request["DeleteRequest"]["Key"], exact=True), None))
                else:
                    raise BackendError(BackendErrorCode.VALIDATION, "Each write request must be a put or a delete")
        self._check_item_count(writes, MAX_BATCH_WRITE_ITEMS)
        self._check_unique([(table, key) for table, key, _ in writes], "Provided list of item keys contains duplicates")

        async with self._lock:
            for table, key, item in writes:
                if item is None:
                    table.items.pop(key, None)
                else:
                    table.items[key] = copy.deepcopy(item)
        return {"UnprocessedItems": {}}

    async def transact_get_items(self, request: Request) -> Response:
        self.calls.append(("transact_get_items", request))
        entries = request.get("TransactItems") or []
        self._check_item_count(entries, MAX_TRANSACT_GET_ITEMS)

        addressed = []
        for entry in entries:
            get = entry.get("Get")
            if get is None:
                raise BackendError(BackendErrorCode.VALIDATION, "TransactGetItems supports only Get actions")
            table = self._table(get["TableName"])
            addressed.append((table, table.key_of(get["Key"], exact=True)))
        self._check_unique(addressed)

        responses = []
        for table, key in addressed:
            item = table.items.get(key)
            responses.append({"Item": copy.deepcopy(item)} if item is not None else {})
        return {"Responses": responses}

    async def transact_write_items(self, request: Request) -> Response:
        self.calls.append(("transact_write_items", request))
        entries = request.get("TransactItems") or []
        self._check_item_count(entries, MAX_TRANSACT_WRITE_ITEMS)

        actions = []
        for entry in entries:
            if len(entry) != 1:
                raise BackendError(BackendErrorCode.VALIDATION, "Each transaction item must have exactly one action")
            ((action, body),) = entry.items()
            if action not in ("Put", "Delete", "ConditionCheck"):
                raise BackendError(BackendErrorCode.VALIDATION, f"Unsupported transaction action {action}")
            table = self._table(body["TableName"])
            if action == "Put":
                key = table.key_of(body["Item"], exact=False)
            else:
                key = table.key_of(body["Key"], exact=True)
            actions.append((action, body, table, key))
        self._check_unique([(table, key) for _, _, table, key in actions])

        token = request.get("ClientRequestToken")
        async with self._lock:
            if token is not None and self._replayed(token, entries):
                logger.debug("Replayed idempotent transaction", extra={"token": token})
                return {}

            reasons = []
            failed = False
            for action, body, table, key in actions:
                existing = table.items.get(key)
                if "ConditionExpression" in body and not self._evaluate(body, existing):
                    failed = True
                    reason: Dict[str, Any] = {
                        "Code": "ConditionalCheckFailed",
                        "Message": "The conditional request failed",
                    }
                    if body.get("ReturnValuesOnConditionCheckFailure") == "ALL_OLD" and existing is not None:
                        reason["Item"] = copy.deepcopy(existing)
                    reasons.append(reason)
                else:
                    reasons.append({"Code": "None"})

            if failed:
                summary = ", ".join(reason["Code"] for reason in reasons)
                raise BackendError(
                    BackendErrorCode.TRANSACTION_CANCELED,
                    f"Transaction cancelled, please refer cancellation reasons for specific reasons [{summary}]",
                    reasons,
                )

            for action, body, table, key in actions:
                if action == "Put":
                    table.items[key] = copy.deepcopy(body["Item"])
                elif action == "Delete":
                    table.items.pop(key, None)

            if token is not None:
                self._tokens[token] = _IdempotencyRecord(_fingerprint(entries), time.monotonic())
        return {}

    def _table(self, table_name: str) -> InMemoryTable:
        table = self._tables.get(table_name)
        if table is None:
            raise BackendError(BackendErrorCode.RESOURCE_NOT_FOUND, f"Requested resource not found: {table_name}")
        return table

    @staticmethod
    def _check_item_count(entries: List[Any], maximum: int) -> None:
        if not 1 <= len(entries) <= maximum:
            raise BackendError(
                BackendErrorCode.VALIDATION,
                f"Member must have length between 1 and {maximum}, got {len(entries)}",
            )

    @staticmethod
    def _check_unique(
        addressed: List[Tuple[InMemoryTable, ItemKey]],
        message: str = "Transaction request cannot include multiple operations on one item",
    ) -> None:
        seen = set()
        for table, key in addressed:
            if (table.name, key) in seen:
                raise BackendError(BackendErrorCode.VALIDATION, message)
            seen.add((table.name, key))

    def _replayed(self, token: str, entries: List[Any]) -> bool:
        now = time.monotonic()
        record = self._tokens.get(token)
        if record is None or now - record.recorded_at > self.idempotency_window:
            return False
        if record.fingerprint != _fingerprint(entries):
            raise BackendError(
                BackendErrorCode.IDEMPOTENT_PARAMETER_MISMATCH,
                "The request uses the same client token as a previous, but non-identical request",
            )
        return True

    @classmethod
    def _evaluate(cls, request: Request, item: Optional[Dict[str, Any]]) -> bool:
        return cls._evaluate_expression(
            request["ConditionExpression"],
            request.get("ExpressionAttributeNames"),
            request.get("ExpressionAttributeValues"),
            item,
        )

    @staticmethod
    def _evaluate_expression(
        expression: str,
        names: Optional[Dict[str, str]],
        values: Optional[Dict[str, Any]],
        item: Optional[Dict[str, Any]],
    ) -> bool:
        try:
            return evaluate_condition(expression, names, values, item)
        except ExpressionError as e:
            raise BackendError(BackendErrorCode.VALIDATION, f"Invalid expression {expression!r}: {e}") from e

    def _check_condition(self, request: Request, existing: Optional[Dict[str, Any]]) -> None:
        if "ConditionExpression" in request and not self._evaluate(request, existing):
            raise BackendError(BackendErrorCode.CONDITIONAL_CHECK_FAILED, "The conditional request failed")

    @staticmethod
    def _return_values(request: Request, existing: Optional[Dict[str, Any]]) -> Response:
        if request.get("ReturnValues") == "ALL_OLD" and existing is not None:
            return {"Attributes": copy.deepcopy(existing)}
        return {}


def _fingerprint(entries: List[Any]) -> str:
    return json.dumps(entries, sort_keys=True, default=str)
