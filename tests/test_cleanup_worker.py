"""Periodic cleanup of expired sessions and spent one-time tokens."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from homekrypto.db.models import EmailVerificationToken, PasswordResetToken, UserSession
from homekrypto.services.cleanup_worker import CleanupWorker
from homekrypto.services.session_service import SessionService
from homekrypto.services.token_service import TokenKind, TokenService


async def _count(db, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar()


@pytest.mark.asyncio
async def test_run_once_purges_only_dead_rows(db, make_user, session_factory):
    user = await make_user()
    sessions = SessionService(db)
    tokens = TokenService(db)

    live = await sessions.issue_session_token(user)
    expired = await sessions.issue_session_token(user)
    expired.session.expires_at = expired.session.created_at - timedelta(minutes=1)

    # superseded by the second issue
    await tokens.issue_one_time_token(user.id, TokenKind.PASSWORD_RESET)
    reset = await tokens.issue_one_time_token(user.id, TokenKind.PASSWORD_RESET)
    await tokens.issue_one_time_token(
        user.id, TokenKind.EMAIL_VERIFICATION, ttl=timedelta(seconds=-1)
    )
    consumed = await tokens.issue_one_time_token(user.id, TokenKind.EMAIL_VERIFICATION)
    assert await tokens.consume_token(consumed, TokenKind.EMAIL_VERIFICATION, user.id)
    await db.commit()

    worker = CleanupWorker(session_factory=session_factory)
    assert await worker.run_once() == (1, 3)

    db.expire_all()
    assert await _count(db, UserSession) == 1
    assert await sessions.resolve(live.token, user.id) is not None
    assert await _count(db, PasswordResetToken) == 1
    assert await tokens.validate_token(reset, TokenKind.PASSWORD_RESET) == user.id
    assert await _count(db, EmailVerificationToken) == 0

    # Nothing left to do on the next pass
    await db.commit()
    assert await worker.run_once() == (0, 0)
