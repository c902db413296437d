"""
Shared fixtures: a single-table layout and the collections stored in it.
"""

import pytest

from dynaglue.backend.memory import InMemoryDynamoBackend
from dynaglue.base.access_pattern import AccessPattern
from dynaglue.base.collection import ChildCollection, RootCollection
from dynaglue.base.layout import CollectionLayout, PrimaryIndexLayout, SecondaryIndexLayout
from dynaglue.context import create_context


@pytest.fixture
def layout():
    """Table layout with two sorted indexes, one unsorted index and TTL."""
    return CollectionLayout(
        table_name="global",
        primary_key=PrimaryIndexLayout(partition_key="id", sort_key="collection"),
        find_keys=(
            SecondaryIndexLayout(index_name="gs1", partition_key="gs1p", sort_key="gs1s"),
            SecondaryIndexLayout(index_name="gs2", partition_key="gs2p", sort_key="gs2s"),
            SecondaryIndexLayout(index_name="gs3", partition_key="gs3p"),
        ),
        ttl_attribute="expiresAt",
    )


@pytest.fixture
def users(layout):
    """Root collection indexed by email."""
    return RootCollection(
        name="users",
        layout=layout,
        access_patterns=(AccessPattern(index_name="gs3", partition_keys=["email"]),),
    )


@pytest.fixture
def locations(layout):
    """Root collection indexed by country, then state and city."""
    return RootCollection(
        name="locations",
        layout=layout,
        access_patterns=(
            AccessPattern(
                index_name="gs1",
                partition_keys=["country"],
                sort_keys=["state", "city"],
            ),
        ),
    )


@pytest.fixture
def addresses(layout):
    """Child collection of users."""
    return ChildCollection(
        name="addresses",
        layout=layout,
        foreign_key_path="userId",
        parent_collection_name="users",
    )


@pytest.fixture
def backend(layout):
    """In-memory backend with the global table created."""
    backend = InMemoryDynamoBackend()
    backend.create_table_for_layout(layout)
    return backend


@pytest.fixture
def context(backend, users, locations, addresses):
    """Context over the in-memory backend."""
    return create_context(backend, [users, locations, addresses])
