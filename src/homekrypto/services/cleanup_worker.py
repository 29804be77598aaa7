"""Cleanup worker: deletes expired sessions and spent one-time tokens.

Learn: Runs as a long-lived task in the FastAPI lifespan, like the
email worker. Expired rows are already rejected on read (resolve and
validate check expires_at), so this only keeps the tables from growing;
a missed pass changes nothing about who can log in.
"""

import asyncio

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from homekrypto.db.engine import async_session_factory
from homekrypto.services.session_service import SessionService
from homekrypto.services.token_service import TokenService

logger = structlog.get_logger()


class CleanupWorker:
    """Periodically purge expired sessions and used or expired tokens.

    Usage:
        worker = CleanupWorker(poll_interval=3600)
        asyncio.create_task(worker.run_loop())
    """

    def __init__(
        self,
        poll_interval: float = 3600.0,
        session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
    ):
        self.poll_interval = poll_interval
        self.session_factory = session_factory
        self._running = False

    async def run_loop(self) -> None:
        self._running = True
        logger.info("cleanup_worker.started", poll_interval=self.poll_interval)

        while self._running:
            try:
                await self.run_once()
            except Exception:
                logger.exception("cleanup_worker.error")
            await asyncio.sleep(self.poll_interval)

    async def run_once(self) -> tuple[int, int]:
        """One pass. Returns (sessions removed, tokens removed)."""
        async with self.session_factory() as db:
            sessions = await SessionService(db).purge_expired()
            tokens = await TokenService(db).purge_stale()
            await db.commit()
        if sessions or tokens:
            logger.info("cleanup_worker.purged", sessions=sessions, tokens=tokens)
        return sessions, tokens

    def stop(self) -> None:
        self._running = False
        logger.info("cleanup_worker.stopping")
