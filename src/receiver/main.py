"""FastAPI application entry point for the GitHub App receiver.

This module wires the authentication pipeline and the event dispatcher into
a FastAPI application exposing:
- POST /event_handler: GitHub webhook deliveries
- GET /health: liveness probe

Configuration is read once at startup (see config.py) and handed to the
pipeline components by constructor; nothing below reads the environment
per request.
"""

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from http import HTTPStatus
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import Response

from .auth.assertion import AssertionSigner
from .auth.exchange import TokenExchanger
from .config import ReceiverSettings, get_settings
from .webhook.dispatcher import EventDispatcher, EventRoute
from .webhook.handlers import IssueOpenedHandler
from .webhook.interceptor import WEBHOOK_PATH, EventInterceptor
from .webhook.signature import SignatureVerifier

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReceiverComponents:
    """Process-wide pipeline components, built once at startup.

    Attributes:
        interceptor: Authenticates deliveries.
        dispatcher: Routes authenticated deliveries to handlers.
    """

    interceptor: EventInterceptor
    dispatcher: EventDispatcher


def _log_configuration(settings: ReceiverSettings) -> None:
    """Log configuration values with secrets redacted.

    Args:
        settings: The receiver settings to log.
    """
    logger.info("Receiver configuration:")
    logger.info(f"  GitHub API URL: {settings.github_api_url}")
    logger.info(f"  GitHub App Identifier: {settings.github_app_identifier}")
    logger.info("  GitHub Webhook Secret: <redacted>")
    logger.info("  GitHub Private Key: <redacted>")
    logger.info(
        f"  Token Exchange Timeout Seconds: {settings.github_exchange_timeout_seconds}"
    )
    logger.info(f"  API Timeout Seconds: {settings.github_api_timeout_seconds}")
    logger.info(f"  Issue Label: {settings.issue_label}")
    logger.info(f"  Host: {settings.host}")
    logger.info(f"  Port: {settings.port}")


def build_components(settings: ReceiverSettings) -> ReceiverComponents:
    """Wire the pipeline from validated settings.

    Args:
        settings: Validated receiver settings.

    Returns:
        The interceptor and dispatcher.

    Raises:
        SigningKeyError: If the App private key is unusable. This is
            fatal: the receiver cannot authenticate any delivery.
    """
    verifier = SignatureVerifier(secret=settings.github_webhook_secret)
    signer = AssertionSigner(
        issuer=settings.github_app_identifier,
        private_key=settings.github_private_key,
    )
    exchanger = TokenExchanger(
        base_url=settings.github_api_url,
        timeout=settings.github_exchange_timeout_seconds,
    )
    interceptor = EventInterceptor(
        verifier=verifier,
        signer=signer,
        exchanger=exchanger,
        api_base_url=settings.github_api_url,
        api_timeout=settings.github_api_timeout_seconds,
    )
    dispatcher = EventDispatcher(
        routes={
            "issues": EventRoute(
                actions={"opened": IssueOpenedHandler(label=settings.issue_label)},
            ),
        },
    )
    return ReceiverComponents(interceptor=interceptor, dispatcher=dispatcher)


def create_app(components: Optional[ReceiverComponents] = None) -> FastAPI:
    """Create the receiver application.

    Args:
        components: Pre-built pipeline components. When omitted, they are
                    built from environment settings during startup.

    Returns:
        The FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("GitHub App receiver starting up...")

        if getattr(app.state, "components", None) is None:
            settings = get_settings()
            logging.getLogger().setLevel(settings.log_level)
            _log_configuration(settings)
            app.state.components = build_components(settings)

        logger.info("GitHub App receiver started successfully")

        yield

        logger.info("GitHub App receiver shutdown complete")

    app = FastAPI(
        title="GitHub App Receiver",
        description="Authenticates GitHub App webhook deliveries and dispatches events",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.components = components

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.monotonic()
        response = await call_next(request)
        logger.info(
            "%s %s -> %s",
            request.method,
            request.url.path,
            response.status_code,
            extra={"duration_ms": round((time.monotonic() - start_time) * 1000, 1)},
        )
        return response

    @app.get("/health")
    async def health():
        """Liveness probe endpoint.

        Returns:
            dict: Status indicating the application is healthy.
        """
        return {"status": "healthy"}

    @app.post(WEBHOOK_PATH)
    async def event_handler(request: Request) -> Response:
        """GitHub webhook receiver endpoint.

        Runs the authentication pipeline and, only if it succeeds, the
        event dispatcher. The sender sees 401 for every authentication
        failure, without detail.

        Returns:
            Response: Empty response carrying the status code.
        """
        pipeline: Optional[ReceiverComponents] = request.app.state.components
        if pipeline is None:
            logger.error("Receiver not initialized")
            return Response(status_code=HTTPStatus.INTERNAL_SERVER_ERROR)

        # Route path, without any root_path a proxy mounts the app under.
        route_path = request.scope["route"].path
        interception = await pipeline.interceptor.process(
            route_path, request.headers, request.body
        )
        if interception.rejected:
            return Response(status_code=HTTPStatus.UNAUTHORIZED)
        if not interception.authenticated:
            logger.error(
                "Webhook delivery reached dispatch without authentication",
                extra={"state": interception.state.value},
            )
            return Response(status_code=HTTPStatus.INTERNAL_SERVER_ERROR)

        async with interception.context as context:
            status = await pipeline.dispatcher.handle(interception.request, context)

        return Response(status_code=status)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    dev_settings = get_settings()
    uvicorn.run(
        "src.receiver.main:app",
        host=dev_settings.host,
        port=dev_settings.port,
    )
