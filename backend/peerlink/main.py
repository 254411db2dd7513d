"""PeerLink API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map PeerLinkError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Federation runtime built, started and stopped by the lifespan context manager

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - create_app() factory so tests can build an app around an injected httpx transport
"""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from peerlink.api.error_handlers import register_error_handlers
from peerlink.api.routes import federation, health, network
from peerlink.config import Settings, get_settings
from peerlink.infrastructure.observability import setup_logging
from peerlink.services.runtime import init_runtime

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup/shutdown lifecycle."""
        setup_logging(settings.log_level, settings.log_format)
        rt = init_runtime(settings, transport=transport)
        app.state.runtime = rt
        await rt.start()
        logger.info("PeerLink API started", extra={"domain": settings.local_domain})
        yield
        logger.info("PeerLink API shutting down")
        await rt.stop()

    app = FastAPI(title="PeerLink API", version=settings.version, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(federation.webfinger_router)
    app.include_router(federation.router)
    app.include_router(network.router)

    register_error_handlers(app)
    return app


app = create_app()
