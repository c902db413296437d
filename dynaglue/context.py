"""
Context: resolved collection definitions plus the backend handle.

A Context is built once at startup with create_context() and passed to
every operation. It owns no connection: the backend is created, opened and
closed by the caller.

Invariants:
    - Collection names are unique within a context
    - Every child collection's parent is a root collection in the same
      context, with an identical layout
    - The context is read-only after construction

How to change safely:
    - Validation belongs in create_context() or build_definition(); lookups
      must stay side-effect free so contexts can be shared across tasks

Example:
    >>> backend = InMemoryDynamoBackend()
    >>> context = create_context(backend, [users, user_addresses])
    >>> context.get_root_collection("users").name
    'users'
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Iterator, Mapping

from .backend.base import DynamoBackend
from .base.collection import Collection, CollectionDefinition, build_definition
from .errors import CollectionNotFoundException, ConfigurationException

logger = logging.getLogger(__name__)


class Context:
    """Resolved collection definitions and the backend they are stored in.

    Attributes:
        backend: Externally owned DynamoDB backend
    """

    def __init__(self, backend: DynamoBackend, definitions: Mapping[str, CollectionDefinition]) -> None:
        self.backend = backend
        self._definitions: Dict[str, CollectionDefinition] = dict(definitions)

    def __iter__(self) -> Iterator[CollectionDefinition]:
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)

    def get_collection(self, name: str) -> CollectionDefinition:
        """Look up a collection of either variant.

        Raises:
            CollectionNotFoundException: If no collection has this name
        """
        definition = self._definitions.get(name)
        if definition is None:
            raise CollectionNotFoundException(name)
        return definition

    def get_root_collection(self, name: str) -> CollectionDefinition:
        """Look up a root collection.

        Raises:
            CollectionNotFoundException: If the name is unknown or names a
                child collection
        """
        definition = self.get_collection(name)
        if definition.is_child:
            raise CollectionNotFoundException(name)
        return definition

    def get_child_collection(self, name: str) -> CollectionDefinition:
        """Look up a child collection.

        Raises:
            CollectionNotFoundException: If the name is unknown or names a
                root collection
        """
        definition = self.get_collection(name)
        if not definition.is_child:
            raise CollectionNotFoundException(name)
        return definition


def create_context(backend: DynamoBackend, collections: Iterable[Collection]) -> Context:
    """Validate collections and build a Context over ``backend``.

    Args:
        backend: The DynamoDB backend handle
        collections: Root and child collections

    Returns:
        The context

    Raises:
        ConfigurationException: If a collection is invalid, a name repeats,
            or a child collection does not match its parent
    """
    definitions: Dict[str, CollectionDefinition] = {}
    for collection in collections:
        if collection.name in definitions:
            raise ConfigurationException(
                f"Duplicate collection definition: '{collection.name}'",
                collection.name,
            )
        definitions[collection.name] = build_definition(collection)

    for definition in definitions.values():
        if not definition.is_child:
            continue
        parent = definitions.get(definition.parent_collection_name)
        if parent is None or parent.is_child:
            raise ConfigurationException(
                f"Child collection {definition.name} refers to non-existent parent "
                f"definition {definition.parent_collection_name}",
                definition.name,
            )
        if parent.layout != definition.layout:
            raise ConfigurationException(
                f"Child collection {definition.name} must have same layout as parent "
                f"definition {parent.name}",
                definition.name,
            )

    logger.info(
        "Created dynaglue context",
        extra={"collections": sorted(definitions), "backend": type(backend).__name__},
    )
    return Context(backend, definitions)
