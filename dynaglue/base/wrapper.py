"""
Document wrapping: the storage envelope around a user document.

A wrapped document is what is written to the table:

    {
        <partition key attr>: "users|-|42",
        <sort key attr>: "users|-|42",
        <index attrs...>: "users|-|AU",
        "value": {"_id": "42", ...},
        "type": "users",
    }

Child documents are stored in their parent's partition: the partition key
is built from the parent collection and parent ``_id``, the sort key from
the child collection and its own ``_id``.

Invariants:
    - ``value["_id"]`` always equals the identifier in the primary key
    - The caller's document is never mutated
    - Index attributes whose value is absent are left out of the envelope
      (sparse indexing)
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Dict, Optional

from ..errors import InvalidIdException, InvalidParentIdException
from .collection import CollectionDefinition
from .key_path import get_path
from .keys import assemble_primary_key_value, construct_key_value

WrappedDocument = Dict[str, Any]

ID_FIELD = "_id"
VALUE_ATTRIBUTE = "value"
TYPE_ATTRIBUTE = "type"


def resolve_identifier(collection: CollectionDefinition, document: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a shallow copy of ``document`` with a string ``_id``.

    Raises:
        InvalidIdException: If a supplied ``_id`` is not a string
    """
    if ID_FIELD in document:
        identifier = document[ID_FIELD]
        if not isinstance(identifier, str):
            raise InvalidIdException(identifier)
        return dict(document)
    return {**document, ID_FIELD: collection.id_generator()}


def to_wrapped(collection: CollectionDefinition, document: Mapping[str, Any]) -> WrappedDocument:
    """Generate the stored form of a document for a collection.

    Args:
        collection: Resolved collection definition
        document: The user document

    Returns:
        The wrapped document

    Raises:
        InvalidIdException: If ``_id`` is present but not a string
        InvalidParentIdException: If a child document lacks its parent ``_id``
        InvalidIndexedFieldValueException: If an indexed value is invalid
    """
    value = resolve_identifier(collection, document)
    identifier = value[ID_FIELD]
    separator = collection.separator
    primary_key = collection.layout.primary_key

    if collection.is_child:
        parent_id = get_path(value, collection.foreign_key_path)
        if not isinstance(parent_id, str):
            raise InvalidParentIdException(
                parent_id,
                collection.name,
                collection.parent_collection_name,
            )
        partition_value = assemble_primary_key_value(
            collection.parent_collection_name, parent_id, separator
        )
        sort_value = assemble_primary_key_value(collection.name, identifier, separator)
    else:
        partition_value = sort_value = assemble_primary_key_value(
            collection.name, identifier, separator
        )

    wrapped: WrappedDocument = {
        primary_key.partition_key: partition_value,
        primary_key.sort_key: sort_value,
    }
    for extract_key in collection.wrapper_extract_keys:
        key_value = construct_key_value(
            extract_key.kind,
            collection.name,
            separator,
            extract_key.value_paths,
            extract_key.options,
            value,
            extract_key.required_paths,
        )
        if key_value is not None:
            wrapped[extract_key.key] = key_value

    wrapped[VALUE_ATTRIBUTE] = value
    wrapped[TYPE_ATTRIBUTE] = collection.name
    return wrapped


def unwrap(wrapped: Mapping[str, Any]) -> Dict[str, Any]:
    """Return the user document held in a wrapped document (not a copy)."""
    return wrapped[VALUE_ATTRIBUTE]


def primary_key_for(
    collection: CollectionDefinition,
    id: str,
    parent_id: Optional[str] = None,
) -> Dict[str, str]:
    """Build the primary key of a stored document from its identifiers.

    Args:
        collection: Resolved collection definition
        id: The document ``_id``
        parent_id: The parent ``_id``; required for child collections

    Returns:
        ``{partition_key_attr: ..., sort_key_attr: ...}``

    Raises:
        InvalidIdException: If ``id`` is not a string
        InvalidParentIdException: If a child key has no string parent id
    """
    if not isinstance(id, str):
        raise InvalidIdException(id)
    separator = collection.separator
    primary_key = collection.layout.primary_key
    sort_value = assemble_primary_key_value(collection.name, id, separator)
    if collection.is_child:
        if not isinstance(parent_id, str):
            raise InvalidParentIdException(parent_id, collection.name, collection.parent_collection_name)
        partition_value = assemble_primary_key_value(collection.parent_collection_name, parent_id, separator)
    else:
        partition_value = sort_value
    return {primary_key.partition_key: partition_value, primary_key.sort_key: sort_value}
