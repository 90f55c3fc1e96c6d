"""Shared fixtures: an in-memory database per test, seeded users, and an API client bound to it."""

import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from app.models import DropshipBase, Store, User


@pytest.fixture
def test_session() -> Session:
    # StaticPool: the TestClient worker thread must see the same in-memory database
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    DropshipBase.metadata.create_all(bind=engine)

    session = Session(bind=engine, autoflush=False, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def db_session(test_session: Session) -> Session:
    return test_session


def _add_user(session: Session, tier: str) -> User:
    user = User(id=uuid.uuid4(), email=f"{tier}-{uuid.uuid4().hex[:8]}@example.com", subscription_tier=tier)
    session.add(user)
    session.flush()
    return user


@pytest.fixture
def free_user(test_session: Session) -> User:
    return _add_user(test_session, "free")


@pytest.fixture
def pro_user(test_session: Session) -> User:
    return _add_user(test_session, "pro")


@pytest.fixture
def make_store(test_session: Session):
    def _make(user: User, url: str | None = None) -> Store:
        store = Store(
            user_id=user.id,
            platform="shopify",
            store_name="Test Store",
            store_url=url or f"https://{uuid.uuid4().hex[:8]}.myshopify.com",
            settings={},
        )
        test_session.add(store)
        test_session.flush()
        return store

    return _make


@pytest.fixture
def api_client(test_session: Session):
    """
    TestClient whose requests all run on the test session.
    Individual tests override the search/AI service dependencies as needed.
    """
    from app.db import get_session
    from app.main import app

    def _session_override():
        yield test_session

    app.dependency_overrides[get_session] = _session_override
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: unit tests (no database needed)")
    config.addinivalue_line("markers", "integration: integration tests (database/API)")
    config.addinivalue_line("markers", "slow: slow tests (> 1 minute)")
