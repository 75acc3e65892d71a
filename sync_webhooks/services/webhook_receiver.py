"""Webhook receiver: sequences audit, verification, routing and dispatch."""

from enum import Enum
from typing import Any, Iterable

from sync_webhooks.config import Settings, settings as default_settings
from sync_webhooks.exceptions import InvalidBodyError
from sync_webhooks.logging.config import get_logger
from sync_webhooks.models.webhook_event import RecordHandle, WebhookSource, WebhookStatus
from sync_webhooks.schemas.webhook import WebhookOutcome, WebhookRequest, WebhookResponse
from sync_webhooks.services.audit_log import AuditLog
from sync_webhooks.services.signature_verifier import SignatureVerifier
from sync_webhooks.services.workflow_dispatcher import WorkflowDispatcher
from sync_webhooks.utils.payload import parse_payload

logger = get_logger(__name__)

INVALID_SIGNATURE = "Invalid signature"
INTERNAL_ERROR = "Internal server error"
LOG_ONLY_RESPONSE_REASON = "{platform} webhooks are being logged only (sync runs on schedule)"
LOG_ONLY_AUDIT_REASON = "{platform} workflow trigger disabled - collecting event data"


class SourceAction(str, Enum):
    """What the receiver does with a verified webhook from a source."""

    LOG_ONLY = "log_only"
    DISPATCH = "dispatch"


class RoutingPolicy:
    """
    Per-source action table.

    Sources named as log-only are audited and acknowledged but never
    trigger a workflow; every other recognized source dispatches.
    """

    def __init__(self, log_only: Iterable[WebhookSource | str] = ()) -> None:
        self.log_only = frozenset(
            str(getattr(source, "value", source)).lower() for source in log_only
        )

    @classmethod
    def from_settings(cls, config: Settings) -> "RoutingPolicy":
        return cls(config.log_only_source_set)

    def action_for(self, source: WebhookSource) -> SourceAction:
        if source.value in self.log_only:
            return SourceAction.LOG_ONLY
        return SourceAction.DISPATCH


def _platform_label(source: WebhookSource) -> str:
    return "PCO" if source is WebhookSource.PCO else source.value.capitalize()


class WebhookReceiver:
    """
    Handles one inbound webhook from receipt to response.

    Steps: record(received) → verify → record(verified | signature_failed)
    → route by source → dispatch or log-only → record(final status).
    Collaborators are injected; nothing here keeps state between requests.
    """

    def __init__(
        self,
        verifier: SignatureVerifier | None = None,
        audit_log: AuditLog | None = None,
        dispatcher: WorkflowDispatcher | None = None,
        policy: RoutingPolicy | None = None,
        config: Settings | None = None,
    ) -> None:
        """
        Initialize WebhookReceiver.

        Args:
            verifier: SignatureVerifier (creates new if None)
            audit_log: AuditLog (creates new if None)
            dispatcher: WorkflowDispatcher (creates new if None)
            policy: RoutingPolicy (built from settings if None)
            config: Settings used for defaults
        """
        self.config = config or default_settings
        self.verifier = verifier or SignatureVerifier(config=self.config)
        self.audit_log = audit_log or AuditLog(config=self.config)
        self.dispatcher = dispatcher or WorkflowDispatcher(config=self.config)
        self.policy = policy or RoutingPolicy.from_settings(self.config)

    async def handle(self, request: WebhookRequest) -> WebhookOutcome:
        """
        Process a webhook and decide the HTTP response.

        Never raises: unexpected errors become a 500 with a generic body.

        Args:
            request: Normalized inbound webhook

        Returns:
            WebhookOutcome with status code and JSON body
        """
        log_context = {
            "source": request.source.value,
            "request_id": request.context.request_id,
        }
        try:
            return await self._process(request, log_context)
        except InvalidBodyError as exc:
            logger.warning(
                "Rejected webhook with undecodable body",
                extra={"context": {**log_context, **exc.details}},
            )
            return WebhookOutcome(status_code=exc.status_code, body={"error": exc.message})
        except Exception as exc:
            logger.error(
                f"Unexpected error handling webhook: {type(exc).__name__}",
                exc_info=exc,
                extra={"context": log_context},
            )
            return WebhookOutcome(status_code=500, body={"error": INTERNAL_ERROR})

    async def _process(
        self, request: WebhookRequest, log_context: dict[str, Any]
    ) -> WebhookOutcome:
        source = request.source

        handle = await self.audit_log.record(
            source=source,
            raw_body=request.body,
            headers=request.headers,
            context=request.context,
            status=WebhookStatus.RECEIVED,
        )
        log_id = handle.id if handle else None
        log_context["log_id"] = log_id

        logger.info(
            f"Received {source.value} webhook",
            extra={
                "context": {
                    **log_context,
                    "header_names": sorted(request.headers),
                    "body_bytes": len(request.body),
                }
            },
        )

        try:
            self._ensure_text_body(request)
        except InvalidBodyError as exc:
            await self.audit_log.update_status(
                handle, WebhookStatus.RECEIVED, {"error_message": exc.message}
            )
            raise

        result = self.verifier.check(source, request.body, request.headers)
        if not result.valid:
            await self.audit_log.update_status(
                handle,
                WebhookStatus.SIGNATURE_FAILED,
                {"error_message": INVALID_SIGNATURE, "reason": result.reason},
            )
            return WebhookOutcome(status_code=401, body={"error": INVALID_SIGNATURE})

        await self.audit_log.update_status(handle, WebhookStatus.VERIFIED)

        # Best-effort; downstream only needs the keys for logging
        payload = parse_payload(request.body)
        logger.debug(
            "Webhook payload parsed",
            extra={"context": {**log_context, "payload_keys": sorted(payload)}},
        )

        if self.policy.action_for(source) is SourceAction.LOG_ONLY:
            return await self._log_only(source, handle, log_context)
        return await self._dispatch(source, handle, log_context)

    def _ensure_text_body(self, request: WebhookRequest) -> None:
        """A body that is not UTF-8 text cannot be a JSON webhook."""
        try:
            request.body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidBodyError(
                details={"decode_error": str(exc), "body_bytes": len(request.body)}
            ) from exc

    async def _log_only(
        self,
        source: WebhookSource,
        handle: RecordHandle | None,
        log_context: dict[str, Any],
    ) -> WebhookOutcome:
        label = _platform_label(source)
        logger.info(
            f"{label} webhook logged (workflow trigger disabled - collecting event data)",
            extra={"context": log_context},
        )
        await self.audit_log.update_status(
            handle,
            WebhookStatus.LOGGED_ONLY,
            {
                "workflow_triggered": False,
                "reason": LOG_ONLY_AUDIT_REASON.format(platform=label),
            },
        )
        body = WebhookResponse(
            source=source.value,
            workflow_triggered=False,
            reason=LOG_ONLY_RESPONSE_REASON.format(platform=label),
            log_id=handle.id if handle else None,
        )
        return WebhookOutcome(status_code=200, body=body.model_dump(exclude_none=True))

    async def _dispatch(
        self,
        source: WebhookSource,
        handle: RecordHandle | None,
        log_context: dict[str, Any],
    ) -> WebhookOutcome:
        result = await self.dispatcher.dispatch(triggered_by=source)
        log_id = handle.id if handle else None

        if result.success:
            logger.info("Successfully triggered sync workflow", extra={"context": log_context})
            await self.audit_log.update_status(
                handle,
                WebhookStatus.PROCESSED,
                {"workflow_triggered": True, "workflow_run_id": result.run_id},
            )
            body = WebhookResponse(
                source=source.value, workflow_triggered=True, log_id=log_id
            )
            return WebhookOutcome(status_code=200, body=body.model_dump(exclude_none=True))

        logger.error(
            f"Failed to trigger workflow: {result.error}",
            extra={
                "context": {
                    **log_context,
                    "error_kind": result.error_kind.value if result.error_kind else None,
                }
            },
        )
        await self.audit_log.update_status(
            handle,
            WebhookStatus.WORKFLOW_FAILED,
            {"workflow_triggered": False, "error_message": result.error},
        )
        body = WebhookResponse(
            source=source.value,
            workflow_triggered=False,
            error=result.error,
            log_id=log_id,
        )
        return WebhookOutcome(status_code=500, body=body.model_dump(exclude_none=True))
