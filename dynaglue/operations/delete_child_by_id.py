"""Delete a child document by its ``_id`` and its parent's ``_id``."""

from __future__ import annotations

from typing import Any, Dict, Optional

from ..backend.base import Request
from ..base.wrapper import primary_key_for
from ..conditions import CompositeCondition, build_condition_expression
from ..context import Context
from .delete_by_id import execute_delete


def create_delete_child_by_id_request(
    context: Context,
    collection_name: str,
    id: str,
    root_object_id: str,
    condition: Optional[CompositeCondition] = None,
) -> Request:
    """Build the DeleteItem request for a child document.

    Raises:
        CollectionNotFoundException: If no child collection has this name
        InvalidIdException: If ``id`` is not a string
        InvalidParentIdException: If ``root_object_id`` is not a string
    """
    collection = context.get_child_collection(collection_name)
    request: Request = {
        "TableName": collection.layout.table_name,
        "Key": primary_key_for(collection, id, root_object_id),
    }
    compiled = build_condition_expression(condition)
    if compiled is not None:
        compiled.apply(request)
    return request


async def delete_child_by_id(
    context: Context,
    collection_name: str,
    id: str,
    root_object_id: str,
    condition: Optional[CompositeCondition] = None,
) -> Optional[Dict[str, Any]]:
    """Delete a child document.

    Returns:
        The deleted document as it was stored, or None if it did not exist

    Raises:
        ConditionFailedException: If ``condition`` was not satisfied
    """
    request = create_delete_child_by_id_request(context, collection_name, id, root_object_id, condition)
    return await execute_delete(context, collection_name, id, request)
