"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (Redis, the email and cleanup
workers, the database engine). Middleware, CORS, exception handlers and routers
are all registered here; each concern lives in its own module.
"""

import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from homekrypto import __version__
from homekrypto.api import api_router
from homekrypto.config import settings
from homekrypto.errors import register_exception_handlers
from homekrypto.logging_config import configure_logging
from homekrypto.middleware.rate_limit import RateLimitMiddleware
from homekrypto.middleware.request_id import RequestIdMiddleware
from homekrypto.middleware.security import SecurityHeadersMiddleware
from homekrypto.notifications.notifier import EmailWorker, get_notifier
from homekrypto.redis_client import close_redis, init_redis
from homekrypto.services.cleanup_worker import CleanupWorker

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs
    at shutdown. Two background tasks run: the email worker, which
    delivers whatever request handlers queued through the notifier and
    gets a bounded drain at shutdown, and the cleanup worker.
    """
    logger.info(
        "homekrypto.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    try:
        await init_redis()
        logger.info("homekrypto.redis_connected")
    except Exception as e:
        # Redis is optional, only per-IP throttling depends on it
        logger.warning("homekrypto.redis_unavailable", error=str(e))

    email_worker = EmailWorker(get_notifier())
    email_task = asyncio.create_task(email_worker.run_loop())

    cleanup_worker = CleanupWorker(poll_interval=settings.cleanup_interval_minutes * 60)
    cleanup_task = asyncio.create_task(cleanup_worker.run_loop())

    yield

    logger.info("homekrypto.shutdown")

    cleanup_worker.stop()
    await email_worker.drain(settings.email_drain_timeout_seconds)
    email_worker.stop()
    for task in (email_task, cleanup_task):
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    await close_redis()

    from homekrypto.db.engine import engine
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    configure_logging(settings.environment, settings.debug)

    app = FastAPI(
        title="HomeKrypto API",
        description="Accounts, sessions, agent approvals and property listings",
        version=__version__,
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, hsts=settings.is_production)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        auth_rpm=settings.rate_limit_auth_rpm,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: homekrypto.main:app)
app = create_app()
