"""
Live test fixtures for dynaglue.

These tests need a reachable DynamoDB endpoint such as DynamoDB Local:

    docker run -p 8000:8000 amazon/dynamodb-local
    DYNAGLUE_LOCAL_DYNAMODB_ENDPOINT=http://localhost:8000 pytest tests/e2e

Each test gets its own table, deleted afterwards.
"""

import os
import uuid

import pytest
import pytest_asyncio
from aiobotocore.session import get_session

from dynaglue.backend.dynamodb import AioDynamoBackend
from dynaglue.base.layout import CollectionLayout, PrimaryIndexLayout, SecondaryIndexLayout
from dynaglue.config import DynamoConfig

ENDPOINT = os.environ.get("DYNAGLUE_LOCAL_DYNAMODB_ENDPOINT")

skip_live = pytest.mark.skip(reason="Live tests disabled. Set DYNAGLUE_LOCAL_DYNAMODB_ENDPOINT to enable.")


def pytest_collection_modifyitems(items):
    # Hooks in this conftest see every collected item, not only e2e ones
    for item in items:
        if item.get_closest_marker("live") and not ENDPOINT:
            item.add_marker(skip_live)


@pytest.fixture
def live_config() -> DynamoConfig:
    """Configuration pointing at the local endpoint."""
    return DynamoConfig(
        region=os.environ.get("AWS_REGION", "us-east-1"),
        endpoint_url=ENDPOINT,
        request_timeout=10.0,
    )


@pytest.fixture
def layout():
    """Same shape as the shared layout, on a table unique to the test."""
    return CollectionLayout(
        table_name=f"dynaglue-{uuid.uuid4().hex[:12]}",
        primary_key=PrimaryIndexLayout(partition_key="id", sort_key="collection"),
        find_keys=(
            SecondaryIndexLayout(index_name="gs1", partition_key="gs1p", sort_key="gs1s"),
            SecondaryIndexLayout(index_name="gs2", partition_key="gs2p", sort_key="gs2s"),
            SecondaryIndexLayout(index_name="gs3", partition_key="gs3p"),
        ),
        ttl_attribute="expiresAt",
    )


def _table_definition(layout: CollectionLayout) -> dict:
    attributes = {layout.primary_key.partition_key, layout.primary_key.sort_key}
    indexes = []
    for find_key in layout.find_keys:
        key_schema = [{"AttributeName": find_key.partition_key, "KeyType": "HASH"}]
        attributes.add(find_key.partition_key)
        if find_key.sort_key:
            key_schema.append({"AttributeName": find_key.sort_key, "KeyType": "RANGE"})
            attributes.add(find_key.sort_key)
        indexes.append(
            {
                "IndexName": find_key.index_name,
                "KeySchema": key_schema,
                "Projection": {"ProjectionType": "ALL"},
            }
        )
    return {
        "TableName": layout.table_name,
        "KeySchema": [
            {"AttributeName": layout.primary_key.partition_key, "KeyType": "HASH"},
            {"AttributeName": layout.primary_key.sort_key, "KeyType": "RANGE"},
        ],
        "AttributeDefinitions": [{"AttributeName": name, "AttributeType": "S"} for name in sorted(attributes)],
        "GlobalSecondaryIndexes": indexes,
        "BillingMode": "PAY_PER_REQUEST",
    }


@pytest_asyncio.fixture
async def backend(layout, live_config):
    """Live backend with the test table created."""
    session = get_session()
    async with session.create_client(
        "dynamodb",
        region_name=live_config.region,
        endpoint_url=live_config.endpoint_url,
    ) as client:
        await client.create_table(**_table_definition(layout))
        await client.get_waiter("table_exists").wait(TableName=layout.table_name)
        try:
            async with AioDynamoBackend(live_config) as backend:
                yield backend
        finally:
            await client.delete_table(TableName=layout.table_name)
