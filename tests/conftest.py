"""
Pytest configuration and fixtures for testing.

This file provides reusable test fixtures for:
- Database setup/teardown
- FastAPI test client
- In-memory key-value store and local blob storage
- Captured verification emails
"""

import os

# Must be set before the application modules read their settings
os.environ.setdefault("SQLALCHEMY_DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("KV_BACKEND", "memory")
os.environ.setdefault("JSON_LOGS", "false")
os.environ["ENVIRONMENT"] = "test"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from codex.core.database import Base, get_db
from codex.core.kv_store import MemoryKeyValueStore, get_kv_store
from codex.core.storage import LocalStorage, get_storage
from codex.models import Prompt, Response, User  # noqa: F401  registers the tables
from main import app


# Use in-memory SQLite for testing (fast, isolated)
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

STRONG_PASSWORD = "Abcd1234!"


@pytest.fixture
def db_session():
    """
    Create a fresh database for each test.
    """
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def kv_store():
    return MemoryKeyValueStore()


@pytest.fixture
def blob_storage(tmp_path):
    return LocalStorage(str(tmp_path / "content"))


@pytest.fixture
def sent_emails(monkeypatch):
    """
    Capture verification emails instead of queueing Celery tasks.

    Each entry holds the keyword arguments the task would have received.
    """
    sent = []

    def fake_queue(task, *args, **kwargs):
        sent.append(kwargs)
        return True

    monkeypatch.setattr("codex.core.verification.queue_task_safely", fake_queue)
    return sent


@pytest.fixture
def client(db_session, kv_store, blob_storage, sent_emails):
    """
    FastAPI test client with overridden database, key-value and storage dependencies.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_kv_store] = lambda: kv_store
    app.dependency_overrides[get_storage] = lambda: blob_storage

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def register(client, email="a@x.com", username="auser", password=STRONG_PASSWORD):
    return client.post(
        "/auth/register",
        json={"email": email, "username": username, "password": password}
    )


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def verified_user(client, sent_emails):
    """
    Register and verify a@x.com / auser.

    Returns:
        dict: {"email", "username", "password", "token", "id"}
    """
    register(client)
    code = sent_emails[-1]["verification_code"]
    response = client.post("/auth/verify-email", json={"email": "a@x.com", "code": code})
    assert response.status_code == 200
    data = response.json()
    return {
        "email": "a@x.com",
        "username": "auser",
        "password": STRONG_PASSWORD,
        "token": data["token"],
        "id": data["user"]["id"],
    }
