"""Partially update a child document by its ``_id`` and its parent's ``_id``."""

from __future__ import annotations

from typing import Any, Dict, Optional

from ..base.wrapper import primary_key_for
from ..conditions import CompositeCondition
from ..context import Context
from .update_by_id import Updates, execute_update


async def update_child_by_id(
    context: Context,
    collection_name: str,
    id: str,
    root_object_id: str,
    updates: Updates,
    condition: Optional[CompositeCondition] = None,
) -> Dict[str, Any]:
    """Update part of a child document.

    The parent reference cannot be updated; move a child by replacing it
    under its new parent and deleting the old one.

    Returns:
        The updated document in its entirety

    Raises:
        CollectionNotFoundException: If no child collection has this name
        InvalidParentIdException: If ``root_object_id`` is not a string
        InvalidUpdatesException: If the updates are invalid
        ConditionFailedException: If ``condition`` was not satisfied
    """
    collection = context.get_child_collection(collection_name)
    key = primary_key_for(collection, id, root_object_id)
    return await execute_update(context, collection, id, key, updates, condition)
