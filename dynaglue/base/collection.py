"""
Collections and their resolved definitions.

A collection is a named division of documents stored in a table described
by a CollectionLayout. Root collections are addressed by their own ``_id``
and may declare access patterns; child collections live in their parent's
partition and are addressed by the parent ``_id`` plus their own.

build_definition() resolves a collection into a CollectionDefinition,
deriving the ``wrapper_extract_keys`` (one key-build instruction per index
attribute) that the Document Wrapper applies on every write.

Invariants:
    - Definitions are built once at configuration time and never mutated
    - Each access pattern references exactly one secondary index, and no
      two access patterns share one
    - Pattern sort keys are declared if and only if the index has a sort key

How to change safely:
    - Validation here is the only guard against silently unindexed rows;
      keep new checks raising ConfigurationException
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from enum import Enum
from typing import Optional, Union

from ..errors import ConfigurationException
from .access_pattern import AccessPattern, AccessPatternOptions
from .key_path import KeyPath, describe_key_path, to_key_path
from .layout import CollectionLayout
from .new_id import IdGenerator, new_id

logger = logging.getLogger(__name__)


class CollectionVariant(Enum):
    """Whether a collection is independently addressed or nested in a parent."""

    ROOT = "root"
    CHILD = "child"


class KeyKind(Enum):
    """Kind of index attribute an ExtractKey builds."""

    PARTITION = "partition"
    SORT = "sort"
    TTL = "ttl"


@dataclass(frozen=True)
class RootCollection:
    """A root collection.

    Attributes:
        name: Unique collection name, used as the key prefix
        layout: Table layout
        access_patterns: Secondary access patterns
        ttl_key_path: Path of a date value to copy into the TTL attribute
        id_generator: Generator for missing ``_id`` values
    """

    name: str
    layout: CollectionLayout
    access_patterns: tuple[AccessPattern, ...] = dataclass_field(default_factory=tuple)
    ttl_key_path: Optional[KeyPath] = None
    id_generator: Optional[IdGenerator] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "access_patterns", tuple(self.access_patterns))
        if self.ttl_key_path is not None:
            object.__setattr__(self, "ttl_key_path", to_key_path(self.ttl_key_path))


@dataclass(frozen=True)
class ChildCollection:
    """A child collection.

    Attributes:
        name: Unique collection name
        layout: Table layout (normally the parent's)
        foreign_key_path: Path of the parent ``_id`` within each document
        parent_collection_name: Name of the parent root collection
        id_generator: Generator for missing ``_id`` values
    """

    name: str
    layout: CollectionLayout
    foreign_key_path: KeyPath
    parent_collection_name: str
    id_generator: Optional[IdGenerator] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "foreign_key_path", to_key_path(self.foreign_key_path))


Collection = Union[RootCollection, ChildCollection]


@dataclass(frozen=True)
class ExtractKey:
    """Instruction for building one index attribute of a wrapped document.

    Attributes:
        key: Storage attribute name
        kind: Partition, sort or TTL
        value_paths: Document paths packed into the value, in order
        required_paths: Paths that must hold a non-empty value
        options: Normalisation options
    """

    key: str
    kind: KeyKind
    value_paths: tuple[KeyPath, ...]
    required_paths: Optional[tuple[KeyPath, ...]] = None
    options: AccessPatternOptions = dataclass_field(default_factory=AccessPatternOptions)


@dataclass(frozen=True)
class CollectionDefinition:
    """A resolved collection, as used by every operation.

    Attributes:
        name: Collection name
        layout: Table layout
        variant: Root or child
        access_patterns: Root only
        wrapper_extract_keys: Root only; derived index key instructions
        foreign_key_path: Child only
        parent_collection_name: Child only
        id_generator: Identifier generator (defaults to new_id)
    """

    name: str
    layout: CollectionLayout
    variant: CollectionVariant
    access_patterns: tuple[AccessPattern, ...] = ()
    wrapper_extract_keys: tuple[ExtractKey, ...] = ()
    foreign_key_path: Optional[KeyPath] = None
    parent_collection_name: Optional[str] = None
    id_generator: IdGenerator = new_id

    @property
    def is_child(self) -> bool:
        return self.variant == CollectionVariant.CHILD

    @property
    def separator(self) -> str:
        return self.layout.separator


def build_definition(collection: Collection) -> CollectionDefinition:
    """Validate a collection and resolve it into a CollectionDefinition.

    Args:
        collection: Root or child collection

    Returns:
        The resolved definition

    Raises:
        ConfigurationException: If the collection or its layout is invalid
    """
    if not collection.name:
        raise ConfigurationException("Collection name cannot be empty")
    _validate_find_keys(collection)
    id_generator = collection.id_generator or new_id

    if isinstance(collection, ChildCollection):
        if not collection.foreign_key_path:
            raise ConfigurationException(
                f"Child collection '{collection.name}' must declare a foreign_key_path",
                collection.name,
            )
        if not collection.parent_collection_name:
            raise ConfigurationException(
                f"Child collection '{collection.name}' must declare a parent_collection_name",
                collection.name,
            )
        return CollectionDefinition(
            name=collection.name,
            layout=collection.layout,
            variant=CollectionVariant.CHILD,
            foreign_key_path=collection.foreign_key_path,
            parent_collection_name=collection.parent_collection_name,
            id_generator=id_generator,
        )

    extract_keys = build_extract_keys(collection)
    logger.debug(
        "Built collection definition",
        extra={
            "collection": collection.name,
            "table": collection.layout.table_name,
            "access_patterns": [p.to_dict() for p in collection.access_patterns],
        },
    )
    return CollectionDefinition(
        name=collection.name,
        layout=collection.layout,
        variant=CollectionVariant.ROOT,
        access_patterns=collection.access_patterns,
        wrapper_extract_keys=extract_keys,
        id_generator=id_generator,
    )


def _validate_find_keys(collection: Collection) -> None:
    seen: set[str] = set()
    for position, find_key in enumerate(collection.layout.find_keys):
        if find_key.index_name in seen:
            raise ConfigurationException(
                f"find key at index {position} has duplicate index reference {find_key.index_name}",
                collection.name,
            )
        seen.add(find_key.index_name)


def build_extract_keys(collection: RootCollection) -> tuple[ExtractKey, ...]:
    """Derive the per-index key-build instructions of a root collection.

    Required paths are attached to the key whose value paths contain them;
    any that belong to neither key are checked with the partition key.

    Raises:
        ConfigurationException: If an access pattern does not fit the layout
    """
    extract_keys: list[ExtractKey] = []
    used_indexes: set[str] = set()

    for access_pattern in collection.access_patterns:
        index_name = access_pattern.index_name
        if index_name in used_indexes:
            raise ConfigurationException(
                f"access pattern {access_pattern.describe()} refers to index in use by another pattern",
                collection.name,
            )
        used_indexes.add(index_name)

        find_key = collection.layout.get_find_key(index_name)
        if find_key is None:
            raise ConfigurationException(
                f"access pattern {access_pattern.describe()} refers to index missing from layout",
                collection.name,
            )

        sort_paths = access_pattern.sort_keys
        if sort_paths is not None and not find_key.sort_key:
            raise ConfigurationException(
                f"access pattern {access_pattern.describe()} has sort keys but index {index_name} does not",
                collection.name,
            )
        if sort_paths is None and find_key.sort_key:
            raise ConfigurationException(
                f"access pattern {access_pattern.describe()} does not have sort keys but index "
                f"{index_name} has one defined - values in this collection will not show up",
                collection.name,
            )

        required = access_pattern.required_paths
        sort_required = None
        partition_required = None
        if required is not None:
            sort_required = tuple(p for p in required if p in (sort_paths or ()))
            partition_required = tuple(p for p in required if p not in (sort_paths or ()))

        extract_keys.append(
            ExtractKey(
                key=find_key.partition_key,
                kind=KeyKind.PARTITION,
                value_paths=access_pattern.partition_keys,
                required_paths=partition_required,
                options=access_pattern.options,
            )
        )
        if sort_paths is not None and find_key.sort_key:
            extract_keys.append(
                ExtractKey(
                    key=find_key.sort_key,
                    kind=KeyKind.SORT,
                    value_paths=sort_paths,
                    required_paths=sort_required,
                    options=access_pattern.options,
                )
            )

    if collection.ttl_key_path is not None:
        if not collection.layout.ttl_attribute:
            raise ConfigurationException(
                f"Collection '{collection.name}' defines ttl_key_path="
                f"{describe_key_path(collection.ttl_key_path)} but layout has no ttl_attribute specified",
                collection.name,
            )
        extract_keys.append(
            ExtractKey(
                key=collection.layout.ttl_attribute,
                kind=KeyKind.TTL,
                value_paths=(collection.ttl_key_path,),
            )
        )

    return tuple(extract_keys)
