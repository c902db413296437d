"""Delete a root document by ``_id``."""

from __future__ import annotations

from typing import Any, Dict, Optional

from ..backend.base import BackendError, BackendErrorCode, Request
from ..base.wrapper import primary_key_for, unwrap
from ..conditions import CompositeCondition, build_condition_expression
from ..context import Context
from ..errors import ConditionFailedException
from ..log import debug_dynamo


def create_delete_by_id_request(
    context: Context,
    collection_name: str,
    id: str,
    condition: Optional[CompositeCondition] = None,
) -> Request:
    """Build the DeleteItem request for a root document.

    The request carries no ReturnValues so it can also be used as a
    transaction ``Delete``.

    Raises:
        CollectionNotFoundException: If no root collection has this name
        InvalidIdException: If ``id`` is not a string
    """
    collection = context.get_root_collection(collection_name)
    request: Request = {
        "TableName": collection.layout.table_name,
        "Key": primary_key_for(collection, id),
    }
    compiled = build_condition_expression(condition)
    if compiled is not None:
        compiled.apply(request)
    return request


async def execute_delete(
    context: Context,
    collection_name: str,
    id: str,
    request: Request,
) -> Optional[Dict[str, Any]]:
    """Send a delete request and unwrap the old item."""
    request = {**request, "ReturnValues": "ALL_OLD"}
    debug_dynamo("DeleteItem", request)
    try:
        response = await context.backend.delete_item(request)
    except BackendError as e:
        if e.code == BackendErrorCode.CONDITIONAL_CHECK_FAILED:
            raise ConditionFailedException(
                "The condition on the delete request was not satisfied",
                collection_name,
                id,
            ) from e
        raise
    attributes = response.get("Attributes")
    if attributes is None:
        return None
    return unwrap(attributes)


async def delete_by_id(
    context: Context,
    collection_name: str,
    id: str,
    condition: Optional[CompositeCondition] = None,
) -> Optional[Dict[str, Any]]:
    """Delete a root document.

    Returns:
        The deleted document as it was stored, or None if it did not exist

    Raises:
        ConditionFailedException: If ``condition`` was not satisfied
    """
    request = create_delete_by_id_request(context, collection_name, id, condition)
    return await execute_delete(context, collection_name, id, request)
