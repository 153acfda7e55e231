import re
from collections.abc import AsyncGenerator, Callable, Generator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from fastapi.testclient import TestClient
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from carelink_identity.auth.models import Account  # noqa: F401 - register with Base
from carelink_identity.auth.utils import get_password_context
from carelink_identity.config import Settings
from carelink_identity.main import create_app
from carelink_identity.notifications import Message
from carelink_shared.database import Base, get_async_engine, get_async_session_factory

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
# Cheap argon2 parameters; production defaults are far higher.
TEST_HASH_TIME_COST = 1
TEST_HASH_MEMORY_KIB = 8_192

_CODE_RE = re.compile(r"\b(\d{6})\b")


class RecordingNotifier:
    """Notification sink that keeps every message instead of delivering it."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, Message]] = []

    async def send(self, destination: str, message: Message) -> None:
        self.sent.append((destination, message))

    def messages_to(self, destination: str) -> list[Message]:
        return [m for d, m in self.sent if d == destination]

    def last_code(self, destination: str) -> str:
        messages = self.messages_to(destination)
        assert messages, f"nothing was sent to {destination}"
        match = _CODE_RE.search(messages[-1].body)
        assert match, "message carries no 6-digit code"
        return match.group(1)


def make_settings(**overrides) -> Settings:
    values = {
        "identity_database_url": TEST_DATABASE_URL,
        "auto_create_schema": True,
        "jwt_secret": "test-secret-0123456789abcdef",
        "password_hash_time_cost": TEST_HASH_TIME_COST,
        "password_hash_memory_kib": TEST_HASH_MEMORY_KIB,
        "otp_resend_cooldown_seconds": 0,
        "session_cookie_secure": False,
        "rate_limit_enabled": False,
        "log_level": "WARNING",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def pwd_context() -> CryptContext:
    return get_password_context(TEST_HASH_TIME_COST, TEST_HASH_MEMORY_KIB)


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    engine = get_async_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = get_async_session_factory(engine)
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def app(settings: Settings, notifier: RecordingNotifier) -> FastAPI:
    return create_app(settings, notifier=notifier)


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    # Entering the context runs the lifespan (engine + schema).
    with TestClient(app) as c:
        yield c


@pytest.fixture
def run_db(client: TestClient, app: FastAPI) -> Callable:
    """
    Run ``fn(session)`` on the app's own event loop and database, then commit.
    For arranging state the public API cannot reach (e.g. making an admin).
    """

    async def _in_session(fn):
        async with app.state.session_factory() as session:
            result = await fn(session)
            await session.commit()
            return result

    def _run(fn):
        return client.portal.call(_in_session, fn)

    return _run


@pytest.fixture
def signup(client: TestClient, notifier: RecordingNotifier) -> Callable[..., tuple[str, str]]:
    """Register and verify an account through the API; returns (account_id, token)."""

    def _signup(
        email: str,
        password: str = "secret1",
        role: str = "patient",
        display_name: str = "Test User",
    ) -> tuple[str, str]:
        reg = client.post(
            "/api/v1/auth/register",
            json={
                "email": email,
                "password": password,
                "display_name": display_name,
                "role": role,
            },
        )
        assert reg.status_code == 201, reg.text
        account_id = reg.json()["account_id"]
        verify = client.post(
            "/api/v1/auth/verify-otp",
            json={"account_id": account_id, "code": notifier.last_code(email)},
        )
        assert verify.status_code == 200, verify.text
        # Start every caller from a cookie-free client.
        client.cookies.clear()
        return account_id, verify.json()["access_token"]

    return _signup


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_header() -> Callable[[str], dict[str, str]]:
    return bearer


@pytest.fixture
def settings_factory() -> Callable[..., Settings]:
    return make_settings
