"""
Placeholder mappers for DynamoDB expressions.

NameMapper hands out ``#attrN`` placeholders for attribute names and
ValueMapper hands out ``:valueN`` placeholders for values; at the end each
produces the ``ExpressionAttributeNames`` / ``ExpressionAttributeValues``
map for the request. Values stay native Python values here, the backend
adapter marshals them.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class NameMapper:
    """Generates ``ExpressionAttributeNames`` entries.

    Every attribute name is escaped, so reserved words and names with
    special characters never need special handling. The same name always
    maps to the same placeholder within one mapper.
    """

    def __init__(self) -> None:
        self._current_index = 0
        self._names: Dict[str, str] = {}

    def map(self, name: str, mapped_name: Optional[str] = None) -> str:
        """Return the placeholder for ``name``, creating it if needed."""
        placeholder = self._names.get(name)
        if placeholder is None:
            if mapped_name is None:
                mapped_name = f"#attr{self._current_index}"
                self._current_index += 1
            placeholder = mapped_name
            self._names[name] = placeholder
        return placeholder

    def get(self) -> Optional[Dict[str, str]]:
        """Return placeholder -> name, or None when nothing was mapped."""
        if not self._names:
            return None
        return {placeholder: name for name, placeholder in self._names.items()}


class ValueMapper:
    """Generates ``ExpressionAttributeValues`` entries."""

    def __init__(self) -> None:
        self._current_index = 0
        self._values: Dict[str, Any] = {}

    def map(self, value: Any) -> str:
        """Store ``value`` and return its ``:valueN`` placeholder."""
        placeholder = f":value{self._current_index}"
        self._current_index += 1
        self._values[placeholder] = value
        return placeholder

    def get(self) -> Optional[Dict[str, Any]]:
        """Return placeholder -> value, or None when nothing was mapped."""
        if not self._values:
            return None
        return dict(self._values)
