"""Test fixtures — a throwaway SQLite database per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Each test gets its own SQLite file (tmp_path) with the full schema
   created from models.py. Nothing leaks between tests.
2. get_db is overridden to hand every request a fresh session from the
   test engine, exactly like production gives one session per request.
   Services commit for real, so multi-request flows (register → verify
   → login) see each other's writes.
3. get_notifier is overridden with a RecordingNotifier, so tests can
   read the emails a request queued (and the tokens inside them)
   without any delivery happening.

pysqlite's own transaction handling doesn't emit SAVEPOINT correctly,
so the engine takes over BEGIN itself (the recipe from the SQLAlchemy
SQLite docs). The login limiter relies on savepoints.
"""

import os

# Must be set before homekrypto.config is imported.
os.environ["HKT_ENVIRONMENT"] = "test"
os.environ["HKT_BCRYPT_ROUNDS"] = "4"
os.environ["HKT_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["HKT_EMAIL_API_KEY"] = ""

import re  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import event, update  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool  # noqa: E402

from homekrypto.config import settings  # noqa: E402
from homekrypto.db.engine import get_db  # noqa: E402
from homekrypto.db.models import Base, User  # noqa: E402
from homekrypto.main import app  # noqa: E402
from homekrypto.notifications.notifier import (  # noqa: E402
    EmailMessage,
    EmailNotifier,
    get_notifier,
)

PASSWORD = "password123"
_TOKEN_RE = re.compile(r"token=([A-Za-z0-9_\-]+)")


class RecordingNotifier(EmailNotifier):
    """Keeps every queued message in a list instead of delivering it."""

    def __init__(self):
        super().__init__(settings)
        self.sent: list[EmailMessage] = []

    def send(self, message: EmailMessage) -> None:
        self.sent.append(message)

    def of_kind(self, kind: str) -> list[EmailMessage]:
        return [m for m in self.sent if m.kind == kind]

    def last_token(self, kind: str) -> str:
        """Token embedded in the link of the latest email of a kind."""
        messages = self.of_kind(kind)
        assert messages, f"no {kind} email was sent"
        match = _TOKEN_RE.search(messages[-1].html)
        assert match, f"no token link in {kind} email"
        return match.group(1)


@pytest_asyncio.fixture()
async def engine(tmp_path):
    eng = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
    )

    @event.listens_for(eng.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(eng.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture()
async def session_factory(engine):
    """Short-lived sessions for tests that read or poke the DB directly.

    Always use `async with session_factory() as s:` and commit or close
    before the next request, so SQLite's file lock is free again.
    """
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest_asyncio.fixture()
async def client(session_factory, notifier):
    """HTTP client wired to the per-test database and recording notifier."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def auth_headers(token: str) -> dict:
    """Send a specific session token, whatever the client's cookie jar holds."""
    return {"Cookie": f"{settings.cookie_name}={token}"}


class Accounts:
    """Register / log in / promote users through the real API."""

    password = PASSWORD
    headers = staticmethod(auth_headers)

    def __init__(self, client, session_factory, notifier):
        self.client = client
        self.session_factory = session_factory
        self.notifier = notifier

    async def register(self, email: str, password: str = PASSWORD, **extra) -> int:
        r = await self.client.post(
            "/api/auth/register",
            json={"email": email, "password": password, **extra},
        )
        assert r.status_code == 201, r.text
        return r.json()["user"]["id"]

    async def login(
        self, email: str, password: str = PASSWORD, remember_me=None
    ) -> str:
        body = {"email": email, "password": password}
        if remember_me is not None:
            body["rememberMe"] = remember_me
        r = await self.client.post("/api/auth/login", json=body)
        assert r.status_code == 200, r.text
        return r.cookies[settings.cookie_name]

    async def set_role(self, user_id: int, role: str) -> None:
        async with self.session_factory() as s:
            await s.execute(update(User).where(User.id == user_id).values(role=role))
            await s.commit()

    async def create(self, email: str, role: str = "user") -> tuple[int, str]:
        """Register, set the role, log in. Returns (user_id, session token)."""
        user_id = await self.register(email)
        if role != "user":
            await self.set_role(user_id, role)
        return user_id, await self.login(email)

    async def admin(self, email: str = "admin@homekrypto.io") -> tuple[int, str]:
        return await self.create(email, role="admin")


@pytest_asyncio.fixture()
async def accounts(client, session_factory, notifier):
    return Accounts(client, session_factory, notifier)


@pytest_asyncio.fixture()
async def db(session_factory):
    """A session for service-level tests that bypass HTTP."""
    async with session_factory() as session:
        yield session


@pytest.fixture()
def make_user(db):
    """Insert a bare user row directly, without going through registration."""

    async def _make(email: str = "unit@homekrypto.io", **fields) -> User:
        user = User(email=email, referral_code=email[:8].upper(), **fields)
        db.add(user)
        await db.flush()
        return user

    return _make
