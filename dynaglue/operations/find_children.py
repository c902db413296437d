"""
Paged listing of the children of one root document.

Children live in their parent's partition with sort keys that start with
the child collection name, so one Query on the primary index finds them:

    >>> page = await find_children(context, "addresses", "42", limit=10)
    >>> while page.next_token is not None:
    ...     page = await find_children(context, "addresses", "42", page.next_token, limit=10)

Invariants:
    - Only documents of the named child collection are returned, never the
      parent or children of other collections
    - ``next_token`` is None once the last page has been read
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..backend.base import Request
from ..base.keys import assemble_primary_key_value
from ..base.wrapper import unwrap
from ..conditions import CompositeCondition, NameMapper, ValueMapper, compile_condition
from ..context import Context
from ..errors import InvalidParentIdException
from ..log import debug_dynamo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FindChildrenResults:
    """One page of find_children() results.

    Attributes:
        items: Child documents in sort key order
        next_token: Pass to the next call to continue; None on the last page
    """

    items: List[Dict[str, Any]] = field(default_factory=list)
    next_token: Optional[Dict[str, Any]] = None


async def find_children(
    context: Context,
    child_collection_name: str,
    root_object_id: str,
    next_token: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    scan_forward: bool = True,
    filter: Optional[CompositeCondition] = None,
) -> FindChildrenResults:
    """Find the children of a root document, one page at a time.

    Args:
        context: The context
        child_collection_name: Child collection to list
        root_object_id: ``_id`` of the parent document
        next_token: Token from the previous page, None for the first
        limit: Maximum number of documents to evaluate for this page
        scan_forward: False to page in descending ``_id`` order
        filter: Optional condition the returned documents must satisfy;
            applied after ``limit``, so a page may hold fewer documents

    Returns:
        The page of documents and the token for the next one

    Raises:
        CollectionNotFoundException: If no child collection has this name
        InvalidParentIdException: If ``root_object_id`` is not a string
        InvalidCompositeConditionException: If ``filter`` is malformed
    """
    collection = context.get_child_collection(child_collection_name)
    if not isinstance(root_object_id, str):
        raise InvalidParentIdException(root_object_id, collection.name, collection.parent_collection_name)

    separator = collection.separator
    primary_key = collection.layout.primary_key
    name_mapper = NameMapper()
    value_mapper = ValueMapper()
    parent_key = assemble_primary_key_value(collection.parent_collection_name, root_object_id, separator)
    child_prefix = assemble_primary_key_value(collection.name, "", separator)
    key_condition = (
        f"{name_mapper.map(primary_key.partition_key)} = {value_mapper.map(parent_key)} "
        f"AND begins_with({name_mapper.map(primary_key.sort_key)}, {value_mapper.map(child_prefix)})"
    )

    request: Request = {
        "TableName": collection.layout.table_name,
        "KeyConditionExpression": key_condition,
        "ScanIndexForward": scan_forward,
    }
    if filter is not None:
        request["FilterExpression"] = compile_condition(filter, name_mapper, value_mapper)
    request["ExpressionAttributeNames"] = name_mapper.get()
    request["ExpressionAttributeValues"] = value_mapper.get()
    if next_token is not None:
        request["ExclusiveStartKey"] = next_token
    if limit is not None:
        request["Limit"] = limit

    debug_dynamo("Query", request)
    response = await context.backend.query(request)
    items = [unwrap(item) for item in response.get("Items") or []]
    logger.debug(
        "Found children",
        extra={"collection": collection.name, "root_object_id": root_object_id, "count": len(items)},
    )
    return FindChildrenResults(items, response.get("LastEvaluatedKey"))
