# tests/conftest.py
from __future__ import annotations

import contextlib
import os
from collections.abc import Callable, Generator, Iterator
from typing import Any

import pytest

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ["DATABASE_URL"] = "sqlite://"

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from roomcast.core.security import create_access_token
from roomcast.db.session import Base, get_session_factory
from roomcast.db.session import get_db as app_get_session
from roomcast.main import app as fastapi_app
from roomcast.models import User
from roomcast.services import ai_providers, broadcast, realtime
from roomcast.services.broadcast import BroadcastCoalescer
from roomcast.services.rate_limit import get_ai_rate_limiter, get_login_rate_limiter

TEST_DB_URL = "sqlite://"


class ManualScheduler:
    """Collects ``call_later`` callbacks so tests decide when the window closes."""

    def __init__(self) -> None:
        self.calls: list[tuple[float, Callable[[], None]]] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> None:
        self.calls.append((delay, callback))

    def fire(self) -> None:
        calls, self.calls = self.calls, []
        for _delay, callback in calls:
            callback()


class RecordingSink:
    """Batch sink that remembers every packet handed to it."""

    def __init__(self) -> None:
        self.packets: list[str] = []

    async def deliver(self, packet: str) -> int:
        self.packets.append(packet)
        return 1


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
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

        # Services commit, so clean every table after each test.
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

    def _get_session_factory_override() -> Callable[[], Any]:
        return lambda: contextlib.nullcontext(db_session)

    app.dependency_overrides[app_get_session] = _get_session_override
    app.dependency_overrides[get_session_factory] = _get_session_factory_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)
        app.dependency_overrides.pop(get_session_factory, None)


@pytest.fixture(autouse=True)
def reset_process_state() -> Iterator[None]:
    """Give every test a fresh registry, coalescer and rate limit buckets."""
    realtime._SessionRegistrySingleton._instance = None
    broadcast._CoalescerSingleton._instance = None
    get_login_rate_limiter().reset()
    get_ai_rate_limiter().reset()
    try:
        yield
    finally:
        realtime._SessionRegistrySingleton._instance = None
        broadcast._CoalescerSingleton._instance = None
        ai_providers._ConnectorsSingleton._instance = None


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def coalescer(sink: RecordingSink, scheduler: ManualScheduler) -> BroadcastCoalescer:
    """Coalescer wired to a recording sink and a manually fired timer."""
    return BroadcastCoalescer(sink, delay_seconds=0.025, scheduler=scheduler)


def _create_user(db_session: Session, nickname: str) -> User:
    user = User(nickname=nickname)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture()
def alice(db_session: Session) -> User:
    """Create and return the user ``alice``."""
    return _create_user(db_session, "alice")


@pytest.fixture()
def bob(db_session: Session) -> User:
    """Create and return the user ``bob``."""
    return _create_user(db_session, "bob")


@pytest.fixture()
def alice_headers(alice: User) -> dict[str, str]:
    """Return authorization headers for alice."""
    return {"Authorization": f"Bearer {create_access_token(alice.nickname)}"}


@pytest.fixture()
def bob_headers(bob: User) -> dict[str, str]:
    """Return authorization headers for bob."""
    return {"Authorization": f"Bearer {create_access_token(bob.nickname)}"}
