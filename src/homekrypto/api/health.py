"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running and
its dependencies are reachable. The database is required; Redis is
optional, so its absence reports "unavailable" without degrading.
"""

import structlog
from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from homekrypto import __version__
from homekrypto.db import engine as db_engine
from homekrypto.redis_client import get_redis

logger = structlog.get_logger()

router = APIRouter()


@router.get("/health")
async def health_check():
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}

    try:
        async with db_engine.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except (SQLAlchemyError, OSError) as e:
        logger.warning("health.database_error", error=str(e))
        checks["database"] = "error"

    try:
        await get_redis().ping()
        checks["redis"] = "ok"
    except RuntimeError:
        checks["redis"] = "unavailable"
    except Exception as e:
        logger.warning("health.redis_error", error=str(e))
        checks["redis"] = "error"

    status = "healthy" if checks["database"] == "ok" else "degraded"
    return {"status": status, **checks}
