"""Insert a document that must not already exist."""

from __future__ import annotations

from typing import Any, Dict, Mapping

from ..backend.base import BackendError, BackendErrorCode, Request
from ..base.wrapper import ID_FIELD, to_wrapped
from ..context import Context
from ..errors import ConflictException
from ..log import debug_dynamo


async def insert(context: Context, collection_name: str, value: Mapping[str, Any]) -> Dict[str, Any]:
    """Insert a document, generating an ``_id`` when none is given.

    Args:
        context: The context
        collection_name: Target collection
        value: The document

    Returns:
        The stored document, including its ``_id``

    Raises:
        ConflictException: If a document with the same key already exists
    """
    collection = context.get_collection(collection_name)
    wrapped = to_wrapped(collection, value)
    request: Request = {
        "TableName": collection.layout.table_name,
        "Item": wrapped,
        "ReturnValues": "NONE",
        "ConditionExpression": "attribute_not_exists(#partitionKey)",
        "ExpressionAttributeNames": {"#partitionKey": collection.layout.primary_key.partition_key},
    }
    debug_dynamo("PutItem", request)
    try:
        await context.backend.put_item(request)
    except BackendError as e:
        if e.code == BackendErrorCode.CONDITIONAL_CHECK_FAILED:
            raise ConflictException(
                "An item with this _id already exists",
                wrapped["value"][ID_FIELD],
            ) from e
        raise
    return wrapped["value"]
