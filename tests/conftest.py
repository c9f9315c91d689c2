"""Pytest fixtures for the session engine.

Loads `.env.test` when present, otherwise falls back to an in-memory SQLite
database and a throwaway signing key. Every test gets a fresh schema, a
controllable clock and a notifier that records instead of enqueueing.
"""
import os
import pathlib
import uuid
from datetime import timedelta
from http.cookies import SimpleCookie
from types import SimpleNamespace

import pytest
from dotenv import load_dotenv

_root = pathlib.Path(__file__).resolve().parent.parent
if (_root / ".env.test").exists():
    load_dotenv(dotenv_path=str(_root / ".env.test"))

# settings are read at import time, so these must be set before app modules load
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("COOKIE_SECURE", "false")
os.environ.setdefault("MAX_SESSIONS_PER_USER", "0")
os.environ.setdefault("REFRESH_EXPIRED_GRACE_HOURS", "0")
os.environ.setdefault("REVOKED_RETENTION_DAYS", "7")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from app.core.config import SessionPolicy, Settings  # noqa: E402
from app.core.constants import TokenRepresentation, UserStatus  # noqa: E402
from app.core.database import Database  # noqa: E402
from app.core.security import hash_password  # noqa: E402
from app.models.user import User  # noqa: E402
from app.services.oauth_client import ProviderExchangeError  # noqa: E402
from app.services.refresh_token_store import RefreshTokenStore  # noqa: E402
from app.services.rotation_engine import RotationEngine  # noqa: E402
from app.services.security_notifier import SecurityNotifier  # noqa: E402
from app.services.session_governor import SessionGovernor  # noqa: E402
from app.services.token_issuer import RefreshTokenCodec  # noqa: E402
from app.services.user_directory import UserDirectory  # noqa: E402
from app.utils.helpers import utcnow  # noqa: E402

DEFAULT_PASSWORD = "Sup3r-secret-passphrase"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start=None):
        self.now = start or utcnow()

    def __call__(self):
        return self.now

    def advance(self, **delta):
        self.now = self.now + timedelta(**delta)
        return self.now


class RecordingNotifier(SecurityNotifier):
    def __init__(self):
        self.reuse_alerts = []

    def token_reuse_detected(self, **kwargs):
        self.reuse_alerts.append(kwargs)


class FakeOAuthClient:
    """Stands in for Google: maps codes to provider identities."""

    def __init__(self, identities=None):
        self.identities = identities or {}

    def exchange_code(self, code, redirect_uri=None, code_verifier=None):
        try:
            return self.identities[code]
        except KeyError:
            raise ProviderExchangeError("invalid_grant")


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def database():
    """A fresh in-memory schema per test."""
    db = Database("sqlite://").open()
    db.create_all()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def make_user(database):
    """Insert a user and return its id."""

    def _make_user(
        email=None,
        password=DEFAULT_PASSWORD,
        status=UserStatus.ACTIVE.value,
        google_id=None,
        role="learner",
    ):
        user = User(
            email=(email or f"user-{uuid.uuid4().hex[:8]}@tokenward.io").lower(),
            password_hash=hash_password(password) if password else None,
            first_name="Test",
            last_name="User",
            google_id=google_id,
            role=role,
            status=status,
        )
        with database.session() as db:
            db.add(user)
            db.commit()
            return user.id

    return _make_user


@pytest.fixture
def set_user_status(database):
    def _set_user_status(user_id, status):
        with database.session() as db:
            user = db.get(User, user_id)
            user.status = status
            db.commit()

    return _set_user_status


@pytest.fixture
def default_policy():
    return SessionPolicy(
        refresh_lifetime=timedelta(days=7),
        absolute_lifetime_cap=timedelta(days=30),
    )


@pytest.fixture
def make_engine(database, clock, notifier, default_policy):
    """Wire store, codec, engine and governor around the test database."""

    def _make_engine(policy=None, representation=None, secret="refresh-signing-key"):
        policy = policy or default_policy
        if representation is not None:
            policy = policy.model_copy(update={"token_representation": representation})
        store = RefreshTokenStore(database)
        users = UserDirectory(database)
        codec = RefreshTokenCodec(secret, representation=policy.token_representation)
        return SimpleNamespace(
            store=store,
            users=users,
            codec=codec,
            policy=policy,
            engine=RotationEngine(store, users, codec, policy, notifier, clock=clock),
            governor=SessionGovernor(store, policy, clock=clock),
        )

    return _make_engine


@pytest.fixture
def identity_for(database):
    def _identity_for(user_id):
        return UserDirectory(database).get_by_id(user_id).identity

    return _identity_for


@pytest.fixture
def make_settings():
    """Settings instance with per-test overrides layered over the environment."""

    def _make_settings(**overrides):
        test_settings = Settings()
        test_settings.COOKIE_SECURE = False
        test_settings.MAX_SESSIONS_PER_USER = 0
        test_settings.REFRESH_TOKEN_REPRESENTATION = TokenRepresentation.SIGNED.value
        test_settings.RATE_LIMIT_ENABLED = False
        for key, value in overrides.items():
            setattr(test_settings, key, value)
        return test_settings

    return _make_settings


@pytest.fixture
def oauth_client():
    return FakeOAuthClient()


@pytest.fixture
def app_factory(database, notifier, oauth_client, make_settings):
    """Build an app around the already-open test database."""
    from app.main import create_app

    def _app_factory(**overrides):
        return create_app(
            make_settings(**overrides),
            database=database,
            notifier=notifier,
            oauth_client=oauth_client,
        )

    return _app_factory


@pytest.fixture
async def async_client(app_factory):
    """Provide an httpx AsyncClient configured with the FastAPI app."""
    from httpx import ASGITransport, AsyncClient

    app = app_factory()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
        yield client


@pytest.fixture
def refresh_cookie():
    """Read the refresh cookie morsel from a response's Set-Cookie headers."""

    def _refresh_cookie(response, name="refresh_token"):
        jar = SimpleCookie()
        for header in response.headers.get_list("set-cookie"):
            jar.load(header)
        return jar.get(name)

    return _refresh_cookie
