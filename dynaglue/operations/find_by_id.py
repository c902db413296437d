"""Fetch single documents by ``_id``."""

from __future__ import annotations

from typing import Any, Dict, Optional

from ..backend.base import Request
from ..base.collection import CollectionDefinition
from ..base.wrapper import primary_key_for, unwrap
from ..context import Context
from ..log import debug_dynamo


async def _get(
    context: Context,
    collection: CollectionDefinition,
    key: Dict[str, str],
    consistent_read: bool,
) -> Optional[Dict[str, Any]]:
    request: Request = {
        "TableName": collection.layout.table_name,
        "Key": key,
        "ConsistentRead": consistent_read,
    }
    debug_dynamo("GetItem", request)
    response = await context.backend.get_item(request)
    item = response.get("Item")
    if item is None:
        return None
    return unwrap(item)


async def find_by_id(
    context: Context,
    collection_name: str,
    id: str,
    consistent_read: bool = False,
) -> Optional[Dict[str, Any]]:
    """Fetch a root document, or None if it does not exist.

    Raises:
        CollectionNotFoundException: If no root collection has this name
    """
    collection = context.get_root_collection(collection_name)
    return await _get(context, collection, primary_key_for(collection, id), consistent_read)


async def find_child_by_id(
    context: Context,
    collection_name: str,
    id: str,
    root_object_id: str,
    consistent_read: bool = False,
) -> Optional[Dict[str, Any]]:
    """Fetch a child document, or None if it does not exist.

    Raises:
        CollectionNotFoundException: If no child collection has this name
    """
    collection = context.get_child_collection(collection_name)
    key = primary_key_for(collection, id, root_object_id)
    return await _get(context, collection, key, consistent_read)
