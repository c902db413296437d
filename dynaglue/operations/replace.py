"""Insert-or-replace a document."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Tuple

from ..backend.base import BackendError, BackendErrorCode, Request
from ..base.wrapper import ID_FIELD, WrappedDocument, to_wrapped
from ..conditions import CompositeCondition, build_condition_expression
from ..context import Context
from ..errors import ConditionFailedException
from ..log import debug_dynamo


def create_replace_request(
    context: Context,
    collection_name: str,
    value: Mapping[str, Any],
    condition: Optional[CompositeCondition] = None,
) -> Tuple[Request, WrappedDocument]:
    """Build the PutItem request that stores ``value``.

    Returns:
        ``(request, wrapped)``; the request carries no ReturnValues so it
        can also be used as a transaction ``Put``

    Raises:
        CollectionNotFoundException: If the collection is unknown
        InvalidIdException, InvalidParentIdException,
        InvalidIndexedFieldValueException: If the document cannot be wrapped
        InvalidCompositeConditionException: If the condition is malformed
    """
    collection = context.get_collection(collection_name)
    wrapped = to_wrapped(collection, value)
    request: Request = {
        "TableName": collection.layout.table_name,
        "Item": wrapped,
    }
    compiled = build_condition_expression(condition)
    if compiled is not None:
        compiled.apply(request)
    return request, wrapped


async def replace(
    context: Context,
    collection_name: str,
    value: Mapping[str, Any],
    condition: Optional[CompositeCondition] = None,
) -> Dict[str, Any]:
    """Insert or replace a document.

    Unlike insert(), no existence check is made unless ``condition`` asks
    for one; whatever is stored under the same ``_id`` is replaced.

    Args:
        context: The context
        collection_name: Target collection
        value: The document; an ``_id`` is generated when absent
        condition: Optional condition on the currently stored value

    Returns:
        The stored document, including its ``_id``

    Raises:
        ConditionFailedException: If ``condition`` was not satisfied
    """
    request, wrapped = create_replace_request(context, collection_name, value, condition)
    request["ReturnValues"] = "NONE"
    debug_dynamo("PutItem", request)
    try:
        await context.backend.put_item(request)
    except BackendError as e:
        if e.code == BackendErrorCode.CONDITIONAL_CHECK_FAILED:
            raise ConditionFailedException(
                "The condition on the replace request was not satisfied",
                collection_name,
                wrapped["value"][ID_FIELD],
            ) from e
        raise
    return wrapped["value"]
