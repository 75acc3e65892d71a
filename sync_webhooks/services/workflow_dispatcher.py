"""
GitHub Actions workflow trigger.

Calls the ``workflow_dispatch`` API for the content-sync workflow and
passes the webhook source as an input so the workflow can run only the
syncs that source affects (``pco``: Planning Center syncs, ``cloudflare``:
video sync).
"""

from enum import Enum

import httpx
from pydantic import BaseModel

from sync_webhooks.config import Settings, settings as default_settings
from sync_webhooks.logging.config import get_logger
from sync_webhooks.models.webhook_event import WebhookSource

logger = get_logger(__name__)

# GitHub answers a successful dispatch with 204 and no body
ACCEPTED_STATUS = 204


class DispatchErrorKind(str, Enum):
    """Why a dispatch failed."""

    NOT_CONFIGURED = "not_configured"
    TIMEOUT = "timeout"
    HTTP_ERROR = "http_error"
    TRANSPORT_ERROR = "transport_error"


class DispatchResult(BaseModel):
    """Outcome of one dispatch attempt."""

    success: bool
    run_id: str | None = None
    error: str | None = None
    error_kind: DispatchErrorKind | None = None
    status_code: int | None = None

    @classmethod
    def failed(
        cls,
        kind: DispatchErrorKind,
        error: str,
        status_code: int | None = None,
    ) -> "DispatchResult":
        return cls(success=False, error=error, error_kind=kind, status_code=status_code)


class WorkflowDispatcher:
    """
    Triggers exactly one workflow run per call.

    The dispatch is fire-and-forget from GitHub's side: the run starts
    asynchronously and its id is not known when the call returns.
    """

    def __init__(
        self,
        config: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the dispatcher.

        Args:
            config: Settings holding repository, token and timeouts
            client: HTTP client to use; a short-lived one is opened per
                call when None
        """
        self.config = config or default_settings
        self.client = client

    @property
    def timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            self.config.github_read_timeout_seconds,
            connect=self.config.github_connect_timeout_seconds,
        )

    def dispatch_url(self) -> str:
        return (
            f"{self.config.github_api_url.rstrip('/')}/repos/{self.config.github_repo}"
            f"/actions/workflows/{self.config.github_workflow_file}/dispatches"
        )

    async def dispatch(self, triggered_by: WebhookSource | str) -> DispatchResult:
        """
        Trigger the sync workflow.

        Args:
            triggered_by: Source tag forwarded as the workflow input

        Returns:
            DispatchResult; configuration gaps, timeouts and API errors are
            reported in the result rather than raised
        """
        source = str(getattr(triggered_by, "value", triggered_by))

        if not self.config.github_repo:
            return DispatchResult.failed(
                DispatchErrorKind.NOT_CONFIGURED, "GITHUB_REPO not configured"
            )
        if not self.config.github_pat:
            return DispatchResult.failed(
                DispatchErrorKind.NOT_CONFIGURED, "GITHUB_PAT not configured"
            )

        headers = {
            "Authorization": f"Bearer {self.config.github_pat}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": self.config.github_user_agent,
        }
        body = {
            "ref": self.config.github_ref,
            "inputs": {"triggered_by": source, "sync_source": source},
        }

        try:
            if self.client is not None:
                response = await self.client.post(
                    self.dispatch_url(), json=body, headers=headers, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(
                        self.dispatch_url(), json=body, headers=headers
                    )
        except httpx.TimeoutException as exc:
            logger.error(
                "GitHub workflow dispatch timed out",
                extra={"context": {"sync_source": source, "error": str(exc)}},
            )
            return DispatchResult.failed(
                DispatchErrorKind.TIMEOUT, f"GitHub API timeout: {exc}"
            )
        except httpx.HTTPError as exc:
            logger.error(
                "GitHub workflow dispatch failed",
                exc_info=exc,
                extra={"context": {"sync_source": source}},
            )
            return DispatchResult.failed(
                DispatchErrorKind.TRANSPORT_ERROR, f"GitHub API error: {exc}"
            )

        if response.status_code == ACCEPTED_STATUS:
            logger.info(
                "Workflow dispatch successful",
                extra={
                    "context": {
                        "sync_source": source,
                        "workflow": self.config.github_workflow_file,
                    }
                },
            )
            return DispatchResult(success=True, status_code=response.status_code)

        message = _error_message(response)
        error = f"GitHub API error: {response.status_code} - {message}"
        logger.error(
            "Workflow dispatch rejected",
            extra={
                "context": {
                    "sync_source": source,
                    "status_code": response.status_code,
                    "error": error,
                }
            },
        )
        return DispatchResult.failed(
            DispatchErrorKind.HTTP_ERROR, error, status_code=response.status_code
        )


def _error_message(response: httpx.Response) -> str:
    """GitHub's ``message`` field if the body is JSON, else the raw text."""
    try:
        data = response.json()
    except ValueError:
        return response.text
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.text
