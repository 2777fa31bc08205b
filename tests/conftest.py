import os
import uuid
from collections.abc import Callable

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from tenacity import wait_none

from homeinv.auth.tokens import issue_access_token
from homeinv.config import settings
from homeinv.db import get_db
from homeinv.main import create_app
from homeinv.models import Base

@pytest.fixture(scope="session")
def database_url() -> str:
    return os.environ["DATABASE_URL"]

@pytest.fixture(scope="session", autouse=True)
def _schema(database_url: str) -> None:
    engine = create_engine(database_url, pool_pre_ping=True)
    Base.metadata.create_all(engine)
    engine.dispose()

@pytest.fixture(autouse=True)
def _settings(monkeypatch) -> None:
    monkeypatch.setattr(settings, "rate_limit_enabled", False)
    monkeypatch.setattr(settings, "webhook_auth_token", None)
    monkeypatch.setattr(settings, "tracked_entitlement_id", None)
    monkeypatch.setattr(settings, "admin_api_token", None)

@pytest.fixture()
def db_session(database_url: str) -> Session:
    engine = create_engine(database_url, pool_pre_ping=True)

    connection = engine.connect()
    transaction = connection.begin()

    # commits and rollbacks inside the code under test only touch savepoints
    TestingSessionLocal = sessionmaker(
        bind=connection,
        autoflush=False,
        join_transaction_mode="create_savepoint",
    )
    session: Session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()
        engine.dispose()

@pytest.fixture()
def client(db_session: Session) -> TestClient:
    app = create_app()

    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    return TestClient(app)

@pytest.fixture()
def subscriber_id() -> str:
    # unique per test run to avoid collisions
    return f"user_{uuid.uuid4().hex[:12]}"

@pytest.fixture()
def subscriber_jwt(subscriber_id: str) -> str:
    return issue_access_token(subscriber_id)

Handler = Callable[[httpx.Request], httpx.Response]

class ProviderStub:
    """Routes outbound provider calls by host and records them."""

    def __init__(self) -> None:
        self.routes: dict[str, Handler] = {}
        self.calls: list[httpx.Request] = []

    def on(self, host: str, handler: Handler) -> None:
        self.routes[host] = handler

    def hosts_called(self) -> list[str]:
        return [r.url.host for r in self.calls]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        handler = self.routes.get(request.url.host)
        if handler is None:
            return httpx.Response(404, json={})
        return handler(request)

@pytest.fixture()
def provider_stub() -> ProviderStub:
    return ProviderStub()

@pytest.fixture()
def provider_client(provider_stub: ProviderStub) -> httpx.Client:
    with httpx.Client(transport=httpx.MockTransport(provider_stub)) as c:
        yield c

@pytest.fixture()
def no_wait() -> dict:
    # provider retry kwargs without real sleeps
    return {"max_attempts": 3, "wait": wait_none()}
