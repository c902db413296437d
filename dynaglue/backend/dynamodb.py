"""
DynamoDB backend using aiobotocore.

The adapter translates between the native-value requests the operations
build and the DynamoDB attribute-value wire format, and decodes client
errors into BackendError.

Invariants:
    - floats are sent as Decimal and numbers come back as int (integral)
      or float, so documents round-trip without Decimal leaking out
    - Error names are decoded exactly once, here
    - Unknown client errors propagate as the original ClientError
    - The adapter never retries

How to change safely:
    - Test against DynamoDB Local (DYNAGLUE_LOCAL_DYNAMODB_ENDPOINT) before
      relying on a new request shape
    - Keep marshalling symmetric: anything serialised must deserialise to
      an equal native value
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from aiobotocore.session import get_session
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import ClientError

from ..config import DynamoConfig
from .base import BackendError, BackendErrorCode, Request, Response

logger = logging.getLogger(__name__)

_TRANSACT_ACTIONS = ("Put", "Delete", "Update", "ConditionCheck", "Get")
_MARSHALLED_FIELDS = ("Key", "Item", "ExpressionAttributeValues", "ExclusiveStartKey")


def to_dynamo_value(value: Any) -> Any:
    """Replace floats with Decimals, recursively."""
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_dynamo_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_dynamo_value(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return {to_dynamo_value(v) for v in value}
    return value


def from_dynamo_value(value: Any) -> Any:
    """Replace Decimals with int or float, recursively."""
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    if isinstance(value, dict):
        return {k: from_dynamo_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_dynamo_value(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return {from_dynamo_value(v) for v in value}
    return value


class AioDynamoBackend:
    """DynamoBackend implementation over an aiobotocore DynamoDB client.

    Attributes:
        config: DynamoDB configuration

    Example:
        >>> async with AioDynamoBackend(DynamoConfig.from_env()) as backend:
        ...     context = create_context(backend, [users])
        ...     await replace(context, "users", {"name": "Ann"})
    """

    def __init__(self, config: Optional[DynamoConfig] = None, client: Any = None) -> None:
        """Initialize the backend.

        Args:
            config: DynamoDB configuration (loaded from env if not provided)
            client: An already-open DynamoDB client to use instead of
                creating one in connect()
        """
        self.config = config or DynamoConfig.from_env()
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()
        self._session = None
        self._client_ctx = None
        self._client = client

    @property
    def is_connected(self) -> bool:
        """Whether a client is available."""
        return self._client is not None

    async def connect(self) -> None:
        """Create the aiobotocore session and DynamoDB client."""
        if self._client is not None:
            return

        self._session = get_session()
        client_config: Dict[str, Any] = {"region_name": self.config.region}
        if self.config.endpoint_url:
            client_config["endpoint_url"] = self.config.endpoint_url

        self._client_ctx = self._session.create_client("dynamodb", **client_config)
        self._client = await self._client_ctx.__aenter__()
        logger.info(
            "Connected to DynamoDB",
            extra={
                "region": self.config.region,
                "endpoint": self.config.endpoint_url or "AWS",
            },
        )

    async def close(self) -> None:
        """Close the client if this backend created it."""
        if self._client_ctx is not None:
            try:
                await self._client_ctx.__aexit__(None, None, None)
            except Exception as e:
                logger.warning(f"Error closing DynamoDB client: {e}")
            self._client = None
        self._client_ctx = None
        self._session = None
        logger.info("DynamoDB connection closed")

    async def __aenter__(self) -> AioDynamoBackend:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.close()

    async def put_item(self, request: Request) -> Response:
        response = await self._call("put_item", self._serialize_request(request))
        return self._deserialize_response(response)

    async def delete_item(self, request: Request) -> Response:
        response = await self._call("delete_item", self._serialize_request(request))
        return self._deserialize_response(response)

    async def get_item(self, request: Request) -> Response:
        response = await self._call("get_item", self._serialize_request(request))
        return self._deserialize_response(response)

    async def update_item(self, request: Request) -> Response:
        response = await self._call("update_item", self._serialize_request(request))
        return self._deserialize_response(response)

    async def query(self, request: Request) -> Response:
        response = await self._call("query", self._serialize_request(request))
        return self._deserialize_response(response)

    async def batch_get_item(self, request: Request) -> Response:
        serialized = dict(request)
        serialized["RequestItems"] = self._convert_keys_and_attributes(
            request.get("RequestItems", {}), self._serialize_map
        )
        response = await self._call("batch_get_item", serialized)
        return {
            "Responses": {
                table_name: [self._deserialize_map(item) for item in items]
                for table_name, items in (response.get("Responses") or {}).items()
            },
            "UnprocessedKeys": self._convert_keys_and_attributes(
                response.get("UnprocessedKeys") or {}, self._deserialize_map
            ),
        }

    async def batch_write_item(self, request: Request) -> Response:
        serialized = dict(request)
        serialized["RequestItems"] = self._convert_write_requests(
            request.get("RequestItems", {}), self._serialize_map
        )
        response = await self._call("batch_write_item", serialized)
        return {
            "UnprocessedItems": self._convert_write_requests(
                response.get("UnprocessedItems") or {}, self._deserialize_map
            ),
        }

    async def transact_get_items(self, request: Request) -> Response:
        response = await self._call("transact_get_items", self._serialize_transaction(request))
        result = dict(response)
        result["Responses"] = [self._deserialize_response(entry) for entry in response.get("Responses", [])]
        return result

    async def transact_write_items(self, request: Request) -> Response:
        await self._call("transact_write_items", self._serialize_transaction(request))
        return {}

    async def _call(self, method: str, request: Request) -> Dict[str, Any]:
        if self._client is None:
            raise RuntimeError("Not connected to DynamoDB; call connect() first")
        try:
            return await asyncio.wait_for(
                getattr(self._client, method)(**request),
                timeout=self.config.request_timeout,
            )
        except ClientError as e:
            raise self._decode_error(e) from e

    def _decode_error(self, err: ClientError) -> Exception:
        error = err.response.get("Error", {})
        code = BackendErrorCode.decode(str(error.get("Code", "")))
        if code is None:
            return err

        reasons: Optional[List[Dict[str, Any]]] = None
        if code == BackendErrorCode.TRANSACTION_CANCELED:
            reasons = [self._deserialize_response(reason) for reason in err.response.get("CancellationReasons") or []]
        logger.debug(
            "DynamoDB request failed",
            extra={"error_code": code.value, "error_message": error.get("Message", "")},
        )
        return BackendError(code, str(error.get("Message", "")), reasons)

    def _serialize_map(self, values: Dict[str, Any]) -> Dict[str, Any]:
        return {name: self._serializer.serialize(to_dynamo_value(value)) for name, value in values.items()}

    def _serialize_request(self, request: Request) -> Request:
        serialized = dict(request)
        for field_name in _MARSHALLED_FIELDS:
            if field_name in serialized:
                serialized[field_name] = self._serialize_map(serialized[field_name])
        return serialized

    def _serialize_transaction(self, request: Request) -> Request:
        serialized = dict(request)
        items = []
        for entry in request.get("TransactItems", []):
            items.append(
                {
                    action: self._serialize_request(body) if action in _TRANSACT_ACTIONS else body
                    for action, body in entry.items()
                }
            )
        serialized["TransactItems"] = items
        return serialized

    @staticmethod
    def _convert_keys_and_attributes(
        request_items: Dict[str, Any], convert: Callable[[Dict[str, Any]], Dict[str, Any]]
    ) -> Dict[str, Any]:
        return {
            table_name: {**keys_and_attributes, "Keys": [convert(key) for key in keys_and_attributes.get("Keys", [])]}
            for table_name, keys_and_attributes in request_items.items()
        }

    @staticmethod
    def _convert_write_requests(
        request_items: Dict[str, Any], convert: Callable[[Dict[str, Any]], Dict[str, Any]]
    ) -> Dict[str, Any]:
        converted = {}
        for table_name, write_requests in request_items.items():
            entries = []
            for write_request in write_requests:
                entry = {}
                for action, body in write_request.items():
                    field_name = "Item" if action == "PutRequest" else "Key"
                    entry[action] = {**body, field_name: convert(body[field_name])}
                entries.append(entry)
            converted[table_name] = entries
        return converted

    def _deserialize_map(self, values: Dict[str, Any]) -> Dict[str, Any]:
        return {
            name: from_dynamo_value(self._deserializer.deserialize(value))
            for name, value in values.items()
        }

    def _deserialize_response(self, response: Dict[str, Any]) -> Response:
        result = {k: v for k, v in response.items() if k != "ResponseMetadata"}
        for field_name in ("Item", "Attributes", "LastEvaluatedKey"):
            if result.get(field_name) is not None:
                result[field_name] = self._deserialize_map(result[field_name])
        if result.get("Items") is not None:
            result["Items"] = [self._deserialize_map(item) for item in result["Items"]]
        return result
