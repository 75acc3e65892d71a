"""AWS Lambda handler for the webhook receiver.

Wraps the FastAPI application with the Mangum adapter so it runs on AWS
Lambda behind API Gateway. Mangum decodes ``isBase64Encoded`` bodies and
exposes the Lambda context to the app as ``request.scope["aws.context"]``.
"""

from mangum import Mangum

from sync_webhooks.config import settings
from sync_webhooks.main import app

# Created once per container; lifespan events are not used
handler = Mangum(
    app,
    lifespan="off",
    api_gateway_base_path=settings.api_gateway_base_path,
)


def lambda_handler(event: dict, context: object) -> dict:
    """
    AWS Lambda function handler.

    Args:
        event: API Gateway event containing request details
        context: Lambda context object with runtime information

    Returns:
        API Gateway response dict with statusCode, headers, and body
    """
    return handler(event, context)
