"""
Collection model, key assembly and document wrapping.

This package holds everything that is computed without touching the
backend:
- KeyPath helpers for walking nested documents
- Layouts, access patterns and collection definitions
- The key assembly engine (partition/sort/TTL values)
- The document wrapper (storage envelope)

Invariants:
    - Everything here is synchronous and free of shared mutable state
    - Definitions are immutable once built

How to change safely:
    - Key rendering changes invalidate stored keys; treat them as a data
      migration
"""

from .access_pattern import AccessPattern, AccessPatternOptions, NormaliserFunction
from .collection import (
    ChildCollection,
    Collection,
    CollectionDefinition,
    CollectionVariant,
    ExtractKey,
    KeyKind,
    RootCollection,
    build_definition,
    build_extract_keys,
)
from .key_path import (
    KeyPath,
    describe_key_path,
    find_matching_path,
    get_path,
    is_subset_of_key_path,
    to_key_path,
)
from .keys import (
    assemble_indexed_value,
    assemble_primary_key_value,
    construct_key_value,
    transform_ttl_value,
)
from .layout import SEPARATOR, CollectionLayout, PrimaryIndexLayout, SecondaryIndexLayout
from .new_id import IdGenerator, new_id
from .wrapper import WrappedDocument, primary_key_for, to_wrapped, unwrap

__all__ = [
    # Key paths
    "KeyPath",
    "to_key_path",
    "describe_key_path",
    "get_path",
    "is_subset_of_key_path",
    "find_matching_path",
    # Layouts and collections
    "SEPARATOR",
    "PrimaryIndexLayout",
    "SecondaryIndexLayout",
    "CollectionLayout",
    "AccessPattern",
    "AccessPatternOptions",
    "NormaliserFunction",
    "RootCollection",
    "ChildCollection",
    "Collection",
    "CollectionDefinition",
    "CollectionVariant",
    "ExtractKey",
    "KeyKind",
    "build_definition",
    "build_extract_keys",
    # Identifiers
    "IdGenerator",
    "new_id",
    # Key assembly
    "assemble_primary_key_value",
    "assemble_indexed_value",
    "construct_key_value",
    "transform_ttl_value",
    # Wrapping
    "WrappedDocument",
    "to_wrapped",
    "primary_key_for",
    "unwrap",
]
