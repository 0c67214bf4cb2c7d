"""Pytest configuration and shared fixtures."""

import base64
import os
import time
from typing import AsyncGenerator
from urllib.parse import parse_qs, urlparse

import pyotp
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from socialhub.config import Settings
from socialhub.core.container import Services, build_services
from socialhub.core.database import Base
from socialhub.core.security import PasswordService
from socialhub.crud.user import user_crud
from socialhub.main import create_app
from socialhub.models.user import User
from socialhub.services.email_service import EmailService

# Test database URL: StaticPool so in-memory SQLite shares one connection
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_PASSWORD = "correct-horse-battery"


def make_settings(**overrides) -> Settings:
    """Settings for tests, independent of the environment and any .env file."""
    values = dict(
        DATABASE_URL=TEST_DATABASE_URL,
        ENVIRONMENT="test",
        JWT_ACCESS_SECRET="test-access-secret-0123456789abcdef",
        JWT_REFRESH_SECRET="test-refresh-secret-0123456789abcdef",
        JWT_EMAIL_SECRET="test-email-secret-0123456789abcdef",
        JWT_RESET_SECRET="test-reset-secret-0123456789abcdef",
        JWT_PENDING_2FA_SECRET="test-pending-secret-0123456789abcdef",
        TWO_FA_MASTER_KEY=base64.b64encode(os.urandom(32)).decode(),
        METRICS_USERNAME="metrics",
        METRICS_PASSWORD="metrics-pass",
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


class RecordingEmailService(EmailService):
    """EmailService that keeps messages instead of talking to SMTP."""

    def __init__(self):
        super().__init__(
            smtp_host="smtp.test",
            smtp_port=587,
            smtp_username=None,
            smtp_password=None,
            from_email="noreply@test.com",
            from_name="SocialHub Test",
            use_tls=False,
            app_base_url="http://localhost:5173",
        )
        self.sent: list[dict] = []

    async def send_email(self, to_email: str, subject: str, html_body: str,
                         text_body: str) -> bool:
        self.sent.append(
            {"to": to_email, "subject": subject, "html": html_body, "text": text_body}
        )
        return True

    def last_token(self) -> str:
        """Token at the end of the link in the most recent message."""
        text = self.sent[-1]["text"]
        link = next(word for word in text.split() if word.startswith("http"))
        parsed = urlparse(link)
        if parsed.query:
            return parse_qs(parsed.query)["token"][0]
        return parsed.path.rsplit("/", 1)[-1]


def secret_from_otpauth(url: str) -> str:
    return parse_qs(urlparse(url).query)["secret"][0]


def wrong_totp_code(secret: str) -> str:
    """A six-digit code that is not valid in the current ±1 step window."""
    totp = pyotp.TOTP(secret)
    now = time.time()
    valid = {totp.at(now + offset) for offset in (-60, -30, 0, 30, 60)}
    candidate = 0
    while f"{candidate:06d}" in valid:
        candidate += 1
    return f"{candidate:06d}"


@pytest.fixture
def test_settings() -> Settings:
    return make_settings()


@pytest.fixture
def mailer() -> RecordingEmailService:
    return RecordingEmailService()


@pytest.fixture
def services(test_settings: Settings, mailer: RecordingEmailService) -> Services:
    return build_services(test_settings, mailer=mailer)


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine with all tables."""
    from socialhub import models  # noqa: F401

    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def app(test_settings: Settings, services: Services, test_engine):
    return create_app(settings=test_settings, services=services, engine=test_engine)


@pytest_asyncio.fixture(scope="function")
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async client talking to the app in-process."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """A registered, verified user with password TEST_PASSWORD."""
    user = await user_crud.create(
        db_session,
        email="ada@example.com",
        password_hash=PasswordService().hash_sync(TEST_PASSWORD),
        firstname="Ada",
        lastname="Lovelace",
    )
    await user_crud.mark_verified(db_session, user.id)
    return user


@pytest.fixture
def access_token(services: Services, test_user: User) -> str:
    return services.tokens.issue_session_tokens(test_user.id).access_token


@pytest.fixture
def access_headers(access_token: str) -> dict:
    """Headers for the 2FA management endpoints."""
    return {"X-Access-Token": f"Bearer {access_token}"}


@pytest.fixture
def settings_factory():
    """Build Settings with overrides on top of the test defaults."""
    return make_settings


@pytest.fixture
def totp_helpers():
    """Helpers for reading the secret back out of an otpauth URL and for bad codes."""

    class _Helpers:
        secret_from_otpauth = staticmethod(secret_from_otpauth)
        wrong_code = staticmethod(wrong_totp_code)

    return _Helpers


@pytest.fixture
def test_password() -> str:
    return TEST_PASSWORD
