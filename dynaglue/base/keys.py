"""
Key assembly: deriving partition, sort and TTL values from documents.

Every stored key is self-describing: the owning collection name followed by
the extracted values, joined by the layout separator (``|-|`` by default).
For a ``locations`` collection indexed on ``country`` the partition key of
an Australian location is ``locations|-|AU``.

Invariants:
    - Assembly is deterministic and side-effect free
    - Values keep their declared positions; an absent value renders as an
      empty segment instead of being skipped
    - A sort key whose values are all absent is itself absent (the row is
      left out of that index), while a partition key falls back to the bare
      collection name so the row stays addressable
    - Normalisers transform values only; they never change presence

How to change safely:
    - Any change to the rendered form changes stored keys; existing rows
      would no longer be found under the new keys
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Sequence, Union

from ..errors import InvalidIndexedFieldValueException
from .access_pattern import AccessPatternOptions
from .collection import KeyKind
from .key_path import KeyPath, describe_key_path, get_path
from .layout import SEPARATOR

IndexedValue = Optional[str]

_ABSENT = object()


def assemble_primary_key_value(collection_name: str, id: str, separator: str = SEPARATOR) -> str:
    """Assemble an ``_id`` into its primary key form, e.g. ``users|-|42``."""
    return f"{collection_name}{separator}{id}"


def assemble_indexed_value(
    kind: Union[KeyKind, str],
    collection_name: str,
    values: Sequence[Any],
    separator: str = SEPARATOR,
) -> IndexedValue:
    """Assemble already-extracted values into an index key value.

    Args:
        kind: ``partition`` or ``sort``
        collection_name: Owning collection, always the first segment
        values: One entry per declared key path, None where absent. Non-string
            scalars are rendered as by render_key_segment, anything else as an
            empty segment
        separator: Segment separator

    Returns:
        The key string, or None for an all-absent sort key
    """
    kind = KeyKind(kind)
    if len(values) == 0:
        return collection_name
    if all(value is None for value in values):
        return collection_name if kind == KeyKind.PARTITION else None
    segments = [_render_assembled(value) for value in values]
    return separator.join([collection_name, *segments])


def transform_ttl_value(value: Any) -> Optional[int]:
    """Convert a point in time to whole epoch seconds, rounded up.

    Accepts datetimes (naive ones are taken as UTC), dates, epoch
    milliseconds and ISO 8601 strings. Anything else yields None.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return math.ceil(value.timestamp())
    if isinstance(value, date):
        return math.ceil(datetime(value.year, value.month, value.day, tzinfo=timezone.utc).timestamp())
    if isinstance(value, Decimal) and not value.is_finite():
        return None
    if isinstance(value, (int, Decimal)):
        return math.ceil(Decimal(value) / 1000)
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return math.ceil(value / 1000)
    if isinstance(value, str):
        parsed = _parse_iso8601(value)
        if parsed is not None:
            return transform_ttl_value(parsed)
    return None


def _parse_iso8601(value: str) -> Optional[datetime]:
    text = value.strip()
    if not text or not text[0].isdigit():
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def render_key_segment(value: Any) -> Optional[str]:
    """Render a scalar document value as a key segment.

    Returns None for values that have no scalar string form.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, Decimal)):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return None


def _render_assembled(value: Any) -> str:
    rendered = render_key_segment(value)
    return "" if rendered is None else rendered


def _is_empty(value: Any) -> bool:
    return value is _ABSENT or value is None or (isinstance(value, str) and value == "")


def construct_key_value(
    kind: Union[KeyKind, str],
    collection_name: str,
    separator: str,
    value_paths: Sequence[KeyPath],
    options: Optional[AccessPatternOptions],
    document: Mapping[str, Any],
    required_paths: Optional[Sequence[KeyPath]] = None,
) -> Union[IndexedValue, int]:
    """Build the value of one index attribute from a document.

    Args:
        kind: Partition, sort or TTL
        collection_name: Owning collection
        separator: Segment separator
        value_paths: Key paths to extract, in order
        options: Normalisation options
        document: The (identifier-augmented) document
        required_paths: Paths that must hold a non-empty value

    Returns:
        The key string, epoch seconds for TTL keys, or None when absent

    Raises:
        InvalidIndexedFieldValueException: If a required path is missing,
            None or empty, or a value path holds a non-scalar value
    """
    kind = KeyKind(kind)
    for required_path in required_paths or ():
        if _is_empty(get_path(document, required_path, _ABSENT)):
            raise InvalidIndexedFieldValueException(
                f"Required indexed value at path {describe_key_path(required_path)} "
                f"is missing or empty for collection {collection_name}",
                collection_name,
                required_path,
            )

    if kind == KeyKind.TTL:
        if not value_paths:
            return None
        return transform_ttl_value(get_path(document, value_paths[0]))

    normalizer = options.string_normalizer if options else None
    values: list[Optional[str]] = []
    for value_path in value_paths:
        extracted = get_path(document, value_path)
        if extracted is None:
            values.append(None)
            continue
        rendered = render_key_segment(extracted)
        if rendered is None:
            raise InvalidIndexedFieldValueException(
                f"Indexed value at path {describe_key_path(value_path)} was not a scalar "
                f"value for collection {collection_name}",
                collection_name,
                value_path,
            )
        if normalizer is not None and isinstance(extracted, str) and extracted:
            rendered = normalizer(value_path, rendered)
            if rendered is None:
                rendered = ""
        values.append(rendered)

    return assemble_indexed_value(kind, collection_name, values, separator)
