"""Base repository class with common DynamoDB operations."""

from typing import Any

import aioboto3
from botocore.config import Config

from sync_webhooks.config import Settings, settings as default_settings
from sync_webhooks.logging.config import get_logger

logger = get_logger(__name__)


def get_dynamodb_config(config: Settings | None = None) -> dict[str, Any]:
    """
    Build DynamoDB resource parameters for the current environment.

    In Lambda the IAM role supplies credentials, so only the region and
    timeouts are set. For LocalStack or moto, an endpoint and explicit
    credentials are passed through.

    Args:
        config: Settings to read (defaults to the process settings)

    Returns:
        Dictionary of aioboto3 resource parameters
    """
    config = config or default_settings

    params: dict[str, Any] = {
        "region_name": config.aws_region,
        # Audit writes must not stall the webhook path
        "config": Config(
            connect_timeout=config.dynamodb_connect_timeout_seconds,
            read_timeout=config.dynamodb_read_timeout_seconds,
            retries={"max_attempts": config.dynamodb_max_attempts, "mode": "standard"},
        ),
    }

    if config.dynamodb_endpoint_url:
        params["endpoint_url"] = config.dynamodb_endpoint_url
        logger.debug(f"DynamoDB config: Using endpoint_url={config.dynamodb_endpoint_url}")

    # Lambda temporary credentials need all three values together
    if config.aws_access_key_id:
        params["aws_access_key_id"] = config.aws_access_key_id
    if config.aws_secret_access_key:
        params["aws_secret_access_key"] = config.aws_secret_access_key
    if config.aws_session_token:
        params["aws_session_token"] = config.aws_session_token

    if "aws_access_key_id" not in params:
        logger.debug("DynamoDB config: Using default credential chain")

    return params


class BaseRepository:
    """
    Base repository providing common DynamoDB operations.

    All repository methods are async and use aioboto3 for
    non-blocking database operations. The aioboto3 session is created once
    per repository; a resource is opened per call so each Lambda
    invocation's event loop owns its own connections.
    """

    def __init__(
        self,
        table_name: str,
        config: Settings | None = None,
        session: aioboto3.Session | None = None,
    ) -> None:
        """
        Initialize repository with table name.

        Args:
            table_name: Name of the DynamoDB table
            config: Settings used for connection parameters
            session: aioboto3 session to reuse (created if None)
        """
        self.table_name = table_name
        self.config = config or default_settings
        self.session = session or aioboto3.Session()

    def _resource(self):
        return self.session.resource("dynamodb", **get_dynamodb_config(self.config))

    async def put_item(self, item: dict[str, Any]) -> None:
        """
        Put item into DynamoDB table.

        Args:
            item: Dictionary representing the item to store
        """
        async with self._resource() as dynamodb:
            table = await dynamodb.Table(self.table_name)
            await table.put_item(Item=item)

    async def get_item(self, key: dict[str, Any]) -> dict[str, Any] | None:
        """
        Get item from DynamoDB table by key.

        Args:
            key: Dictionary with partition key and optionally sort key

        Returns:
            Item dictionary or None if not found
        """
        async with self._resource() as dynamodb:
            table = await dynamodb.Table(self.table_name)
            response = await table.get_item(Key=key)
            return response.get("Item")

    async def update_item(
        self,
        key: dict[str, Any],
        update_expression: str,
        expression_values: dict[str, Any],
        expression_names: dict[str, str] | None = None,
        condition_expression: str | None = None,
    ) -> dict[str, Any]:
        """
        Update item in DynamoDB table.

        Args:
            key: Dictionary with partition key and optionally sort key
            update_expression: DynamoDB update expression
            expression_values: Values for the update expression
            expression_names: Optional attribute name mappings for reserved keywords
            condition_expression: Optional guard; a failed guard raises ClientError

        Returns:
            Updated item attributes
        """
        async with self._resource() as dynamodb:
            table = await dynamodb.Table(self.table_name)
            update_params: dict[str, Any] = {
                "Key": key,
                "UpdateExpression": update_expression,
                "ExpressionAttributeValues": expression_values,
                "ReturnValues": "ALL_NEW",
            }
            if expression_names:
                update_params["ExpressionAttributeNames"] = expression_names
            if condition_expression:
                update_params["ConditionExpression"] = condition_expression

            response = await table.update_item(**update_params)
            return response.get("Attributes", {})

    async def query(self, **query_params: Any) -> list[dict[str, Any]]:
        """
        Run a query and follow pagination to the end.

        Args:
            **query_params: Parameters for Table.query (IndexName,
                KeyConditionExpression, ExpressionAttributeValues, ...)

        Returns:
            All matching items
        """
        items: list[dict[str, Any]] = []
        async with self._resource() as dynamodb:
            table = await dynamodb.Table(self.table_name)
            while True:
                response = await table.query(**query_params)
                items.extend(response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    return items
                query_params["ExclusiveStartKey"] = last_key
