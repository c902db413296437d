"""
Key paths: addressing nested locations inside a document.

A key path is an ordered tuple of accessors. String accessors index into
mappings, integer accessors (or all-digit strings) index into sequences.
For example ``description.title[0]`` is ``("description", "title", 0)``.

Invariants:
    - Key paths compare structurally (tuple equality)
    - Resolution never raises, a missing step yields the default
    - The empty path is a prefix of every path
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Iterable, Optional, Tuple, Union

PathElement = Union[str, int]
KeyPath = Tuple[PathElement, ...]


def to_key_path(path: Union[str, Iterable[PathElement]]) -> KeyPath:
    """Coerce a dotted string or an iterable of accessors to a KeyPath."""
    if isinstance(path, str):
        return tuple(path.split(".")) if path else ()
    return tuple(path)


def describe_key_path(path: Iterable[PathElement]) -> str:
    """Render a key path for messages, e.g. ``address.lines.0``."""
    return ".".join(str(element) for element in path)


def get_path(document: Any, path: Iterable[PathElement], default: Any = None) -> Any:
    """Walk ``document`` along ``path``.

    Args:
        document: Mapping/sequence/scalar value tree
        path: Accessors to follow
        default: Returned when any step is missing

    Returns:
        The value found, or ``default``
    """
    current = document
    for element in path:
        if isinstance(current, Mapping):
            key = element if isinstance(element, str) else str(element)
            if key not in current:
                return default
            current = current[key]
        elif isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
            index = _as_index(element)
            if index is None or not -len(current) <= index < len(current):
                return default
            current = current[index]
        else:
            return default
    return current


def _as_index(element: PathElement) -> Optional[int]:
    if isinstance(element, bool):
        return None
    if isinstance(element, int):
        return element
    if element.isdigit():
        return int(element)
    return None


def is_subset_of_key_path(main_path: Sequence[PathElement], subset_path: Sequence[PathElement]) -> bool:
    """Whether ``subset_path`` is a structural prefix of ``main_path``."""
    if len(subset_path) > len(main_path):
        return False
    return all(main_path[index] == key for index, key in enumerate(subset_path))


def find_matching_path(
    key_paths: Iterable[Sequence[PathElement]],
    path: Sequence[PathElement],
) -> Optional[KeyPath]:
    """Return the first of ``key_paths`` that is a prefix of ``path``.

    Used to work out which declared index field a partial update touches.
    """
    for key_path in key_paths:
        if is_subset_of_key_path(path, key_path):
            return tuple(key_path)
    return None
