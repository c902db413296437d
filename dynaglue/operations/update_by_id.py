"""
Partial updates of stored documents.

update_by_id() sets values at dotted paths inside a stored root document
with a single UpdateItem call, without reading the document first:

    >>> await update_by_id(context, "users", "42", {"profile.name": "Ann"})

When an update touches a path that an index key or the TTL attribute is
built from, that attribute is rebuilt in the same call.

Invariants:
    - Updates may not touch ``_id`` or a child's parent reference; the
      primary key never changes
    - An index key touched by the update is rebuilt only from values in
      the update, so every one of its value paths must be covered
    - Required paths touched by the update must get a non-empty value
    - An index value that becomes absent is removed (sparse indexing)

How to change safely:
    - Key rendering goes through construct_key_value(); never assemble
      index values here
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..backend.base import BackendError, BackendErrorCode, Request
from ..base.collection import CollectionDefinition
from ..base.key_path import KeyPath, describe_key_path, find_matching_path, get_path, is_subset_of_key_path, to_key_path
from ..base.keys import construct_key_value
from ..base.wrapper import ID_FIELD, primary_key_for, unwrap
from ..conditions import CompositeCondition, NameMapper, ValueMapper, compile_condition, map_key_path
from ..context import Context
from ..errors import ConditionFailedException, InvalidUpdatesException
from ..log import debug_dynamo

logger = logging.getLogger(__name__)

Updates = Mapping[str, Any]


def extract_update_key_paths(collection: CollectionDefinition, updates: Updates) -> Dict[KeyPath, str]:
    """Map each update path to its key path.

    Raises:
        InvalidUpdatesException: If there are no updates, a path is empty
            or overlaps another, or a path touches ``_id`` or the parent
            reference
    """
    if not updates:
        raise InvalidUpdatesException(
            "There must be at least one update path in the updates object",
            collection.name,
        )

    key_paths: Dict[KeyPath, str] = {}
    for update_path in updates:
        if not isinstance(update_path, str) or any(part == "" for part in update_path.split(".")):
            raise InvalidUpdatesException(
                f"Invalid update path {update_path!r}",
                collection.name,
                str(update_path),
            )
        key_paths[to_key_path(update_path)] = update_path

    protected = [(ID_FIELD,)]
    if collection.is_child:
        protected.append(collection.foreign_key_path)
    paths = list(key_paths)
    for index, key_path in enumerate(paths):
        for protected_path in protected:
            if is_subset_of_key_path(key_path, protected_path) or is_subset_of_key_path(protected_path, key_path):
                raise InvalidUpdatesException(
                    f"Update path {key_paths[key_path]} would change {describe_key_path(protected_path)}, "
                    "which is part of the primary key",
                    collection.name,
                    key_paths[key_path],
                )
        for other in paths[index + 1 :]:
            if is_subset_of_key_path(key_path, other) or is_subset_of_key_path(other, key_path):
                raise InvalidUpdatesException(
                    f"Update paths {key_paths[key_path]} and {key_paths[other]} overlap",
                    collection.name,
                    key_paths[key_path],
                )
    return key_paths


def _value_for_update_path(updates: Updates, update_path: str, matching_path: KeyPath, key_path: KeyPath) -> Any:
    value = updates[update_path]
    remainder = key_path[len(matching_path) :]
    if remainder:
        return get_path(value, remainder)
    return value


def _set_path(document: Dict[str, Any], key_path: KeyPath, value: Any) -> None:
    current = document
    for element in key_path[:-1]:
        current = current.setdefault(str(element), {})
    current[str(key_path[-1])] = value


def create_index_updates(
    collection: CollectionDefinition,
    updates: Updates,
    update_key_paths: Mapping[KeyPath, str],
) -> Tuple[Dict[str, Any], List[str]]:
    """Rebuild the index and TTL attributes that depend on updated paths.

    Returns:
        ``(set_values, removed)``: attribute values to set, and attributes
        whose value became absent

    Raises:
        InvalidUpdatesException: If an affected key is only partly covered
            by the update
        InvalidIndexedFieldValueException: If a required path is set to an
            empty value, or a value cannot be packed into a key
    """
    set_values: Dict[str, Any] = {}
    removed: List[str] = []
    for extract_key in collection.wrapper_extract_keys:
        matches = [find_matching_path(update_key_paths, value_path) for value_path in extract_key.value_paths]
        if all(match is None for match in matches):
            continue
        if any(match is None for match in matches):
            described = ", ".join(describe_key_path(path) for path in extract_key.value_paths)
            raise InvalidUpdatesException(
                f"all values are required for {extract_key.kind.value} key {extract_key.key} "
                f"with key paths {{{described}}}",
                collection.name,
            )

        partial: Dict[str, Any] = {}
        for value_path, match in zip(extract_key.value_paths, matches):
            _set_path(partial, value_path, _value_for_update_path(updates, update_key_paths[match], match, value_path))
        required_paths = []
        for required_path in extract_key.required_paths or ():
            match = find_matching_path(update_key_paths, required_path)
            if match is not None:
                _set_path(
                    partial,
                    required_path,
                    _value_for_update_path(updates, update_key_paths[match], match, required_path),
                )
                required_paths.append(required_path)

        value = construct_key_value(
            extract_key.kind,
            collection.name,
            collection.separator,
            extract_key.value_paths,
            extract_key.options,
            partial,
            required_paths,
        )
        if value is None:
            removed.append(extract_key.key)
        else:
            set_values[extract_key.key] = value
    return set_values, removed


def create_update_request(
    collection: CollectionDefinition,
    key: Dict[str, str],
    updates: Updates,
    condition: Optional[CompositeCondition] = None,
) -> Request:
    """Build the UpdateItem request for a stored document.

    Raises:
        InvalidUpdatesException: If the updates are invalid or incomplete
        InvalidIndexedFieldValueException: If an updated index value is invalid
        InvalidCompositeConditionException: If the condition is malformed
    """
    update_key_paths = extract_update_key_paths(collection, updates)
    index_values, removed = create_index_updates(collection, updates, update_key_paths)

    name_mapper = NameMapper()
    value_mapper = ValueMapper()
    set_actions = [
        f"{map_key_path(update_path, name_mapper)} = {value_mapper.map(updates[update_path])}"
        for update_path in update_key_paths.values()
    ]
    set_actions.extend(
        f"{name_mapper.map(attribute)} = {value_mapper.map(value)}" for attribute, value in index_values.items()
    )
    update_expression = "SET " + ", ".join(set_actions)
    if removed:
        update_expression += " REMOVE " + ", ".join(name_mapper.map(attribute) for attribute in removed)

    request: Request = {
        "TableName": collection.layout.table_name,
        "Key": key,
        "UpdateExpression": update_expression,
        "ReturnValues": "ALL_NEW",
    }
    if condition is not None:
        request["ConditionExpression"] = compile_condition(condition, name_mapper, value_mapper)
    request["ExpressionAttributeNames"] = name_mapper.get()
    request["ExpressionAttributeValues"] = value_mapper.get()
    return request


async def execute_update(
    context: Context,
    collection: CollectionDefinition,
    id: str,
    key: Dict[str, str],
    updates: Updates,
    condition: Optional[CompositeCondition] = None,
) -> Dict[str, Any]:
    """Send an update and unwrap the updated document."""
    request = create_update_request(collection, key, updates, condition)
    debug_dynamo("UpdateItem", request)
    try:
        response = await context.backend.update_item(request)
    except BackendError as e:
        if e.code == BackendErrorCode.CONDITIONAL_CHECK_FAILED:
            raise ConditionFailedException(
                "The condition on the update request was not satisfied",
                collection.name,
                id,
            ) from e
        raise
    logger.debug(
        "Updated document",
        extra={"collection": collection.name, "id": id, "paths": sorted(updates)},
    )
    return unwrap(response["Attributes"])


async def update_by_id(
    context: Context,
    collection_name: str,
    id: str,
    updates: Updates,
    condition: Optional[CompositeCondition] = None,
) -> Dict[str, Any]:
    """Update part of a root document.

    Keys of ``updates`` are dotted paths into the document; each value
    replaces whatever is stored at its path. If an updated path is used by
    an access pattern, give every value path of that key in the same call.

    Args:
        context: The context
        collection_name: Root collection
        id: ``_id`` of the document
        updates: Path to new value
        condition: Optional condition on the stored value

    Returns:
        The updated document in its entirety

    Raises:
        CollectionNotFoundException: If no root collection has this name
        InvalidUpdatesException: If the updates are invalid or incomplete
        ConditionFailedException: If ``condition`` was not satisfied
        BackendError: With code VALIDATION when no document is stored
            under ``id``
    """
    collection = context.get_root_collection(collection_name)
    return await execute_update(context, collection, id, primary_key_for(collection, id), updates, condition)
