"""
Access patterns: which document fields feed a secondary index.

An access pattern names a secondary index from the collection layout and
lists the key paths whose values are packed into that index's partition
and sort keys. Partition and sort key values are stored as the collection
name followed by each extracted value, joined by the layout separator.

Example:
    >>> AccessPattern(
    ...     index_name="gs1",
    ...     partition_keys=[("country",)],
    ...     sort_keys=[("state",), ("city",)],
    ...     options=AccessPatternOptions(string_normalizer=lambda path, v: v.lower()),
    ... )
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field as dataclass_field
from typing import Any, Callable, Iterable, Optional, Union

from .key_path import KeyPath, PathElement, describe_key_path, to_key_path

NormaliserFunction = Callable[[KeyPath, str], str]


@dataclass(frozen=True)
class AccessPatternOptions:
    """Options for an access pattern.

    Attributes:
        string_normalizer: Applied to every extracted string value before
            it is packed into the index, e.g. to lowercase it
    """

    string_normalizer: Optional[NormaliserFunction] = None


def to_key_paths(paths: Iterable[Union[str, Iterable[PathElement]]]) -> tuple[KeyPath, ...]:
    """Coerce a list of dotted strings / accessor sequences to KeyPaths."""
    return tuple(to_key_path(path) for path in paths)


@dataclass(frozen=True)
class AccessPattern:
    """A secondary access pattern.

    Attributes:
        index_name: Name of the index in the collection's layout
        partition_keys: Key paths packed into the index partition key
        sort_keys: Key paths packed into the index sort key. Leave as None
            when the index has no sort key; use an empty tuple when it has
            one but the pattern does not need sort values
        required_paths: Key paths that must hold a non-empty value on write
        options: Normalisation options
    """

    index_name: str
    partition_keys: tuple[KeyPath, ...]
    sort_keys: Optional[tuple[KeyPath, ...]] = None
    required_paths: Optional[tuple[KeyPath, ...]] = None
    options: AccessPatternOptions = dataclass_field(default_factory=AccessPatternOptions)

    def __post_init__(self) -> None:
        object.__setattr__(self, "partition_keys", to_key_paths(self.partition_keys))
        if self.sort_keys is not None:
            object.__setattr__(self, "sort_keys", to_key_paths(self.sort_keys))
        if self.required_paths is not None:
            object.__setattr__(self, "required_paths", to_key_paths(self.required_paths))

    def describe(self) -> str:
        """Render for configuration error messages."""
        partition = ",".join(describe_key_path(p) for p in self.partition_keys)
        sort = (
            f"sort={','.join(describe_key_path(p) for p in self.sort_keys)}"
            if self.sort_keys is not None
            else ""
        )
        return f"[access pattern index={self.index_name} partition={partition} {sort}]"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "index_name": self.index_name,
            "partition_keys": [list(p) for p in self.partition_keys],
            "sort_keys": [list(p) for p in self.sort_keys] if self.sort_keys is not None else None,
            "required_paths": (
                [list(p) for p in self.required_paths] if self.required_paths is not None else None
            ),
        }
