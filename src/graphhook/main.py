"""FastAPI application factory and lifespan management."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from graphhook.config import RelayConfig, settings
from graphhook.logging_config import configure_logging
from graphhook.version import __version__

# Configure logging at import time
configure_logging(log_level=settings.log_level, json_output=settings.json_logs)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the immutable relay configuration and its collaborators once."""
    from graphhook.publishing.event_grid import EventGridPublisher
    from graphhook.services.processor import NotificationProcessor

    config = RelayConfig.from_settings(settings)
    app.state.relay_config = config
    app.state.processor = NotificationProcessor(config)
    app.state.publisher = EventGridPublisher.from_config(config)

    if config.private_key is None:
        logger.warning("Private key not configured; encrypted notifications will be skipped")
    if not config.sink.configured:
        logger.warning("Event Grid topic endpoint or key not set; publishing will fail")

    logger.info(
        "graphhook started (certificate_id=%s)", config.active_certificate_id
    )
    yield
    logger.info("graphhook shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="graphhook",
        version=__version__,
        description="Relays Microsoft Graph change notifications, decrypting rich payloads, to Azure Event Grid.",
        lifespan=lifespan,
    )

    from graphhook.api.middleware.trace_id import TraceIdMiddleware
    app.add_middleware(TraceIdMiddleware)

    # Register error handlers
    from graphhook.errors.handlers import register_exception_handlers
    register_exception_handlers(app)

    # Import and mount routers
    from graphhook.api.router import api_router
    app.include_router(api_router)

    return app


app = create_app()
