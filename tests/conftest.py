import asyncio
import inspect
from typing import List, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import NullPool

from authstarter.core.config import Settings
from authstarter.core.security import now_utc
from authstarter.core.tokens import TokenCodec
from authstarter.db.model_registry import metadata
from authstarter.db.session import Database
from authstarter.main import create_app
from authstarter.services.auth_service import AuthService
from authstarter.services.mailer import EmailDispatcher

ACCESS_SECRET = "test-access-secret-0123456789abcd"
REFRESH_SECRET = "test-refresh-secret-0123456789abc"


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


class RecordingMailer:
    """Keeps every outgoing email in memory instead of sending it."""

    def __init__(self) -> None:
        self.verification: List[Tuple[str, str]] = []
        self.password_reset: List[Tuple[str, str]] = []

    async def send_verification_email(self, to_email: str, token: str) -> None:
        self.verification.append((to_email, token))

    async def send_password_reset_email(self, to_email: str, token: str) -> None:
        self.password_reset.append((to_email, token))


@pytest.fixture
def settings_factory():
    def build(**overrides) -> Settings:
        values = dict(
            environment="test",
            database_url="sqlite+aiosqlite://",
            jwt_access_secret=ACCESS_SECRET,
            jwt_refresh_secret=REFRESH_SECRET,
            login_max_attempts=3,
            login_lockout_min=10,
            login_attempt_window_min=15,
            email_verify_ttl_min=60,
            password_reset_ttl_min=60,
            session_cleanup_enabled=False,
        )
        if overrides.get("email_verification_required"):
            values.update(smtp_server="smtp.example.com", smtp_port=587, mail_from="no-reply@example.com")
        values.update(overrides)
        return Settings(**values)

    return build


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "auth.db"
    engine = create_engine(f"sqlite:///{path}")
    metadata.create_all(engine)
    engine.dispose()
    return path


@pytest.fixture
def sync_engine(db_path):
    """Plain sqlite engine on the same file, for seeding and inspecting rows."""
    engine = create_engine(f"sqlite:///{db_path}")
    yield engine
    engine.dispose()


@pytest.fixture
def database(db_path):
    return Database(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def service_factory(database, mailer, settings_factory):
    def build(settings: Settings = None, clock=now_utc, **overrides) -> AuthService:
        settings = settings or settings_factory(**overrides)
        codec = TokenCodec.from_settings(settings, clock=clock)
        return AuthService(database.sessions, codec, settings, mailer, EmailDispatcher())

    return build


@pytest.fixture
def service(service_factory):
    return service_factory()


@pytest.fixture
def app_factory(settings_factory, mailer, database):
    def build(**overrides):
        return create_app(settings_factory(**overrides), mailer=mailer, database=database, configure_logging=False)

    return build


@pytest.fixture
def client(app_factory):
    with TestClient(app_factory()) as c:
        yield c
