# tests/conftest.py
from __future__ import annotations

import os
import re
from collections.abc import Generator, Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ.setdefault("INTERNAL_API_KEY", "test-internal-key")

from yogic_ledger.api.v1.dependencies import get_messaging_transport_dep
from yogic_ledger.api.v1.endpoints.auth import create_access_token
from yogic_ledger.core.settings import Settings
from yogic_ledger.db.session import Base, build_engine
from yogic_ledger.db.session import get_db as app_get_session
from yogic_ledger.main import app as fastapi_app
from yogic_ledger.models import UserAccount
from yogic_ledger.services.cooldown import reset_cooldown_cache
from yogic_ledger.services.errors import MessagingError
from yogic_ledger.services.ledger import RewardLedger

TEST_DB_URL = "sqlite://"
INTERNAL_KEY = os.environ["INTERNAL_API_KEY"]

_TEST_SETTINGS_INSTANCE = Settings()
_CODE_PATTERN = re.compile(r"code is: (\d+)")


class FakeTransport:
    """Messaging transport that records what would have been sent."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []
        self.fail = False

    def send(self, mobile_number: str, body: str) -> None:
        if self.fail:
            raise MessagingError("Failed to send WhatsApp message")
        self.messages.append((mobile_number, body))

    def last_code(self) -> str:
        _, body = self.messages[-1]
        match = _CODE_PATTERN.search(body)
        assert match is not None
        return match.group(1)


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = build_engine(TEST_DB_URL)
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()

        # Services commit on their own, so every test starts from empty tables.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture(autouse=True)
def clear_cooldowns() -> Iterator[None]:
    reset_cooldown_cache()
    yield
    reset_cooldown_cache()


@pytest.fixture()
def fake_transport(app: FastAPI) -> Iterator[FakeTransport]:
    transport = FakeTransport()
    app.dependency_overrides[get_messaging_transport_dep] = lambda: transport
    try:
        yield transport
    finally:
        app.dependency_overrides.pop(get_messaging_transport_dep, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Provide a Settings instance aligned with runtime configuration."""
    return _TEST_SETTINGS_INSTANCE


def _create_user(db_session: Session, mobile_number: str, display_name: str) -> UserAccount:
    user = UserAccount(mobile_number=mobile_number, display_name=display_name)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture()
def test_user(db_session: Session) -> UserAccount:
    """Create and return a persisted test user."""
    return _create_user(db_session, "+919876543210", "Test User")


@pytest.fixture()
def other_user(db_session: Session) -> UserAccount:
    """Create and return a second persisted user."""
    return _create_user(db_session, "+919812345678", "Other User")


@pytest.fixture()
def auth_token(test_user: UserAccount) -> dict[str, str]:
    """Return authorization headers for the primary test user."""
    token = create_access_token(test_user.user_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def other_auth_token(other_user: UserAccount) -> dict[str, str]:
    """Return authorization headers for the secondary test user."""
    token = create_access_token(other_user.user_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def internal_headers() -> dict[str, str]:
    return {"X-Internal-Key": INTERNAL_KEY}


@pytest.fixture()
def ledger(db_session: Session) -> RewardLedger:
    return RewardLedger(db_session, retry_backoff_seconds=0)
