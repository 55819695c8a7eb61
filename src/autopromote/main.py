"""FastAPI application entry point for autopromote.

This module wires the GitHub App identity, the webhook handler and the
workflow runner into a FastAPI application, and provides the
``autopromote`` console script that serves it with uvicorn.

Exit codes of the console script:
- 0: graceful shutdown
- 1: missing or invalid configuration (including an unreadable private key)
- non-zero from uvicorn when the listen port cannot be bound
"""

import json
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST

from src.autopromote.config import AutopromoteSettings, ConfigurationError, load_settings
from src.autopromote.events.emitter import (
    CompositeEventEmitter,
    EventEmitter,
    LoggingEventEmitter,
)
from src.autopromote.events.metrics import MetricsEventEmitter, generate_metrics_output
from src.autopromote.github.app import GitHubApp
from src.autopromote.webhook.handler import (
    SignatureVerificationError,
    WebhookHandler,
    create_webhook_handler,
)
from src.autopromote.workflow.dispatcher import PlanDispatcher
from src.autopromote.workflow.models import WorkflowConfig
from src.autopromote.workflow.runner import ClientProvider, WorkflowRunner

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Seconds to wait for in-flight plans on shutdown
SHUTDOWN_DRAIN_SECONDS = 30.0

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def _redact_secret(value: str, visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters.

    Args:
        value: The secret value to redact.
        visible_chars: Number of characters to show at the start.

    Returns:
        Redacted string with asterisks replacing hidden characters.
    """
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(settings: AutopromoteSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info("autopromote configuration:")
    logger.info(f"  App ID: {settings.app_id}")
    logger.info(f"  Private Key Path: {settings.private_key_path}")
    logger.info(f"  Webhook Secret: {_redact_secret(settings.webhook_secret)}")
    logger.info(f"  GitHub Base URL: {settings.github_base_url}")
    logger.info(f"  Target Branch: {settings.target_branch}")
    logger.info(f"  Base Branch: {settings.base_branch}")
    logger.info(f"  Merge Method: {settings.merge_method}")
    logger.info(f"  Max Concurrent Plans: {settings.max_concurrent_plans}")
    logger.info(f"  Listen: {settings.host}:{settings.port}{settings.webhook_path}")


async def _log_identity(github_app: GitHubApp) -> None:
    """Log the name of the authenticated app.

    A failure here is not fatal: the identity lookup is informational and
    per-event failures are reported by the runner.
    """
    try:
        identity = await github_app.get_identity()
    except Exception as exc:
        logger.warning("Could not fetch GitHub App identity: %s", exc)
        return
    logger.info("Authenticated as '%s'", identity.get("name"))


def create_app(
    settings: AutopromoteSettings,
    github_app: Optional[ClientProvider] = None,
    event_emitter: Optional[EventEmitter] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Validated settings.
        github_app: Client provider to use instead of a GitHubApp built
            from ``settings`` (used by tests).
        event_emitter: Event sink; defaults to logging plus Prometheus.

    Returns:
        The configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("autopromote starting up...")

        provider = app.state.github_app
        if provider is None:
            provider = GitHubApp(
                app_id=settings.app_id,
                private_key=settings.read_private_key(),
                base_url=settings.github_base_url,
            )
            app.state.github_app = provider
        if isinstance(provider, GitHubApp):
            await _log_identity(provider)

        runner = WorkflowRunner(
            client_provider=provider,
            config=WorkflowConfig.from_settings(settings),
            event_emitter=app.state.event_emitter,
        )
        app.state.runner = runner
        app.state.dispatcher = PlanDispatcher(
            runner, max_concurrent=settings.max_concurrent_plans
        )

        logger.info(
            "Server is listening for events at: http://localhost:%s%s",
            settings.port,
            settings.webhook_path,
        )

        yield

        logger.info("autopromote shutting down...")
        await app.state.dispatcher.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
        if isinstance(provider, GitHubApp):
            await provider.close()
        await app.state.event_emitter.close()
        logger.info("autopromote shutdown complete")

    app = FastAPI(
        title="autopromote",
        description="Promotes a pushed branch through a squash-merged pull request",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.github_app = github_app
    app.state.event_emitter = event_emitter or CompositeEventEmitter(
        [LoggingEventEmitter(), MetricsEventEmitter()]
    )
    app.state.webhook_handler = create_webhook_handler(settings.webhook_secret)

    @app.get("/health")
    async def health():
        """Liveness probe endpoint."""
        return {"status": "healthy"}

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(content=generate_metrics_output(), media_type=CONTENT_TYPE_LATEST)

    app.add_api_route(settings.webhook_path, receive_webhook, methods=["POST"])

    return app


async def receive_webhook(
    request: Request,
    x_hub_signature_256: Optional[str] = Header(None),
    x_github_event: Optional[str] = Header(None),
    x_github_delivery: Optional[str] = Header(None),
):
    """GitHub webhook receiver endpoint.

    Verifies the delivery signature, answers ``ping`` deliveries, ignores
    events other than ``push`` and dispatches push events to the workflow
    runner in the background.

    Returns:
        JSON acknowledgement of the delivery.

    Raises:
        HTTPException: 401 for a bad signature, 400 for a malformed payload.
    """
    handler: WebhookHandler = request.app.state.webhook_handler
    body = await request.body()

    try:
        handler.verify_signature(body, x_hub_signature_256, delivery_id=x_github_delivery)
    except SignatureVerificationError as exc:
        logger.warning(
            "Error processing request: %s",
            exc.message,
            extra={"delivery_id": x_github_delivery, "github_event": x_github_event},
        )
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Payload is not valid JSON")

    if x_github_event == "ping":
        return {"status": "pong"}

    if x_github_event != "push":
        logger.debug("Ignoring %s event", x_github_event)
        return {"status": "ignored", "message": f"Event {x_github_event} not processed"}

    event = handler.parse_push_event(payload, delivery_id=x_github_delivery)
    if event is None:
        raise HTTPException(status_code=400, detail="Invalid push event payload")

    runner: WorkflowRunner = request.app.state.runner
    request.app.state.dispatcher.dispatch(event)

    return JSONResponse(
        status_code=202,
        content={
            "status": "accepted",
            "delivery_id": x_github_delivery,
            "triggered": runner.matches(event),
        },
    )


def main() -> None:
    """Console script entry point."""
    try:
        settings = load_settings()
        settings.read_private_key()
    except ConfigurationError as exc:
        configure_logging()
        logger.error("Startup failed: %s", exc)
        sys.exit(1)

    configure_logging(settings.log_level)
    _log_configuration(settings)

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
