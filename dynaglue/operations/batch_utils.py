"""Mapping stored primary keys back to document identifiers."""

from __future__ import annotations

from typing import Any, Mapping

from ..base.layout import CollectionLayout
from ..errors import InternalProcessingException
from .transact_find_by_ids import FindByIdDescriptor


def parse_key(layout: CollectionLayout, key: Mapping[str, Any]) -> FindByIdDescriptor:
    """Disassemble a primary key into collection, ``_id`` and parent ``_id``.

    Batch calls report unprocessed work as raw keys grouped by table; this
    turns them back into descriptors the caller can resubmit. Root keys
    repeat the same value in both key attributes, child keys carry the
    parent in the partition key.

    Raises:
        InternalProcessingException: If the key was not written by dynaglue
    """
    primary_key = layout.primary_key
    partition_value = key.get(primary_key.partition_key)
    sort_value = key.get(primary_key.sort_key)
    if not isinstance(partition_value, str) or not isinstance(sort_value, str):
        raise InternalProcessingException(
            f"Key {key!r} does not have string values for the primary key of table {layout.table_name}",
            layout.table_name,
        )

    collection_name, found, id = sort_value.partition(layout.separator)
    if not found:
        raise InternalProcessingException(
            f"Sort key {sort_value!r} in table {layout.table_name} has no collection prefix",
            layout.table_name,
        )
    if partition_value == sort_value:
        return FindByIdDescriptor(collection_name, id)

    _, found, parent_id = partition_value.partition(layout.separator)
    if not found:
        raise InternalProcessingException(
            f"Partition key {partition_value!r} in table {layout.table_name} has no collection prefix",
            layout.table_name,
        )
    return FindByIdDescriptor(collection_name, id, parent_id)
