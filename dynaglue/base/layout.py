"""
Table layouts: how collections map onto a DynamoDB table and its indexes.

Invariants:
    - Primary and secondary key attributes are strings ('S')
    - Secondary index names are unique within a layout
    - A layout is immutable once built

How to change safely:
    - Layout changes alter stored key values; existing rows must be rewritten
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field as dataclass_field

SEPARATOR = "|-|"


@dataclass(frozen=True)
class PrimaryIndexLayout:
    """Attribute names of the table's primary key.

    Attributes:
        partition_key: Name of the partition (HASH) key attribute
        sort_key: Name of the sort (RANGE) key attribute
    """

    partition_key: str
    sort_key: str


@dataclass(frozen=True)
class SecondaryIndexLayout:
    """A global secondary index.

    Attributes:
        index_name: Name of the index
        partition_key: Index partition key attribute
        sort_key: Index sort key attribute, or None when the index has none
    """

    index_name: str
    partition_key: str
    sort_key: str | None = None


@dataclass(frozen=True)
class CollectionLayout:
    """The table a collection is stored in.

    Several collections may share one layout (single-table design); the
    collection name prefix on every key keeps them apart.

    Attributes:
        table_name: Name of the table
        primary_key: Layout of the primary key
        find_keys: Secondary indexes available to access patterns
        ttl_attribute: Attribute configured as the table's TTL attribute
        index_key_separator: Separator between key segments (default ``|-|``)
    """

    table_name: str
    primary_key: PrimaryIndexLayout
    find_keys: tuple[SecondaryIndexLayout, ...] = dataclass_field(default_factory=tuple)
    ttl_attribute: str | None = None
    index_key_separator: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "find_keys", tuple(self.find_keys))

    @property
    def separator(self) -> str:
        """The effective key separator."""
        return self.index_key_separator or SEPARATOR

    def get_find_key(self, index_name: str) -> SecondaryIndexLayout | None:
        """Get a secondary index by name."""
        for find_key in self.find_keys:
            if find_key.index_name == index_name:
                return find_key
        return None
