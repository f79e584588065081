"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (logging, ledger sweeper,
database engine). Middleware, exception handlers and routers are all
registered here.
"""

import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from newtab_auth import __version__
from newtab_auth.api import api_router
from newtab_auth.api.errors import register_exception_handlers
from newtab_auth.config import settings
from newtab_auth.logging import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at
    shutdown.
    """
    configure_logging(settings.log_level, settings.log_json)
    logger.info(
        "newtab_auth.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    sweeper = None
    sweep_task = None
    if settings.ledger_sweep_interval_seconds > 0:
        from newtab_auth.services.ledger_sweeper import LedgerSweeper

        sweeper = LedgerSweeper(interval=settings.ledger_sweep_interval_seconds)
        sweep_task = asyncio.create_task(sweeper.run_loop())

    yield

    logger.info("newtab_auth.shutdown")

    if sweeper is not None:
        sweeper.stop()
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass

    from newtab_auth.db.engine import engine
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="Newtab Auth",
        description="Identity service — guest and registered tokens, refresh rotation, gateway validation",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: StripTrustHeaders → RequestId → Security → CORS → handler

    from newtab_auth.middleware.request_id import RequestIdMiddleware
    from newtab_auth.middleware.security import SecurityHeadersMiddleware
    from newtab_auth.middleware.trust_headers import StripTrustHeadersMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-User-Email", "X-User-Type", "X-Request-ID"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(StripTrustHeadersMiddleware)

    register_exception_handlers(app)
    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: newtab_auth.main:app)
app = create_app()
