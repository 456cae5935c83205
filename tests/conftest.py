"""
Pytest configuration and shared fixtures.

Test settings are placed in the environment before the application is
imported, so the module-level engine and settings pick them up.
"""

import os
from pathlib import Path

import pytest

HERE = Path(__file__).resolve().parent

os.environ.setdefault("DATABASE_URL", f"sqlite:///{HERE / 'test_otayori.db'}")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("TIMEZONE", "Asia/Tokyo")
os.environ.setdefault("STATIC_DIR", str(HERE / "pages"))

# Clear settings cache before any app imports to ensure test env vars are used
from otayori.config import get_settings
get_settings.cache_clear()

from fastapi.testclient import TestClient

from otayori.main import app
from otayori.models import Base
from otayori.storage import SessionLocal, SqlStore, engine


@pytest.fixture(scope="function")
def client():
    """Create test client with fresh database for each test."""
    Base.metadata.create_all(bind=engine)

    with TestClient(app) as test_client:
        yield test_client

    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def store():
    """SqlStore on a fresh database, for service-level tests."""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()

    yield SqlStore(db)

    db.close()
    Base.metadata.drop_all(bind=engine)


def create_theme(client, title: str, **fields) -> dict:
    """Helper to create a theme via the staff API."""
    response = client.post("/api/staff/themes", json={"title": title, **fields})
    assert response.status_code == 200
    return response.json()


def submit_message(client, radio_name: str = "たろう", content: str = "こんにちは", **fields) -> dict:
    """Helper to submit a message via the student API."""
    response = client.post(
        "/api/student/messages",
        json={"radio_name": radio_name, "content": content, **fields},
    )
    assert response.status_code == 200
    return response.json()
