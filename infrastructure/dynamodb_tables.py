"""Script to create the webhook log DynamoDB table for LocalStack or AWS."""

import asyncio
import sys
from typing import Any

import aioboto3
from botocore.exceptions import ClientError

# (index name, partition key, sort key or None)
WEBHOOK_LOG_INDEXES = (
    ("SourceDateIndex", "source", "received_at"),
    ("EventTypeDateIndex", "event_type", "received_at"),
    ("StatusDateIndex", "status", "received_at"),
    ("SourceEventIndex", "source_event", "received_at"),
    ("DatePartitionIndex", "date_partition", "received_at"),
)


def webhook_logs_table_definition(table_name: str) -> dict[str, Any]:
    """
    Build the create_table parameters for the webhook log table.

    Args:
        table_name: Name of the table

    Returns:
        Keyword arguments for DynamoDB create_table
    """
    attribute_names = {"id", "received_at"}
    indexes = []
    for index_name, partition_key, sort_key in WEBHOOK_LOG_INDEXES:
        attribute_names.update({partition_key, sort_key})
        indexes.append(
            {
                "IndexName": index_name,
                "KeySchema": [
                    {"AttributeName": partition_key, "KeyType": "HASH"},
                    {"AttributeName": sort_key, "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            }
        )

    return {
        "TableName": table_name,
        "KeySchema": [
            {"AttributeName": "id", "KeyType": "HASH"},
            {"AttributeName": "received_at", "KeyType": "RANGE"},
        ],
        "AttributeDefinitions": [
            {"AttributeName": name, "AttributeType": "S"}
            for name in sorted(attribute_names)
        ],
        "GlobalSecondaryIndexes": indexes,
        "BillingMode": "PAY_PER_REQUEST",
    }


async def create_webhook_logs_table(dynamodb: Any, table_name: str) -> None:
    """
    Create the webhook log table and enable TTL on ``ttl``.

    Args:
        dynamodb: DynamoDB resource
        table_name: Name of the webhook log table
    """
    try:
        table = await dynamodb.create_table(**webhook_logs_table_definition(table_name))
        await table.wait_until_exists()
        print(f"✓ Created table: {table_name}")
    except ClientError as e:
        if e.response["Error"]["Code"] == "ResourceInUseException":
            print(f"→ Table already exists: {table_name}")
        else:
            raise

    try:
        await dynamodb.meta.client.update_time_to_live(
            TableName=table_name,
            TimeToLiveSpecification={"Enabled": True, "AttributeName": "ttl"},
        )
        print(f"✓ TTL enabled on {table_name}.ttl")
    except ClientError as e:
        # Raised when TTL is already enabled
        if e.response["Error"]["Code"] == "ValidationException":
            print(f"→ TTL already configured: {table_name}")
        else:
            raise


async def main() -> None:
    """Create the webhook log table."""
    from sync_webhooks.config import settings
    from sync_webhooks.repositories.base import get_dynamodb_config

    if not settings.webhook_logs_table:
        print("✗ Error: WEBHOOK_LOGS_TABLE is not set")
        sys.exit(1)

    print("Creating DynamoDB tables...")
    print(f"Region: {settings.aws_region}")
    print(f"Endpoint: {settings.dynamodb_endpoint_url or 'AWS'}")
    print()

    session = aioboto3.Session()
    async with session.resource("dynamodb", **get_dynamodb_config(settings)) as dynamodb:
        await create_webhook_logs_table(dynamodb, settings.webhook_logs_table)

    print()
    print("✓ All tables created successfully!")


if __name__ == "__main__":
    asyncio.run(main())
