"""
Pytest configuration and fixtures for the Todo API tests.
"""

from typing import Generator

import pytest
from fastapi.testclient import TestClient

from todo_api.main import create_app
from todo_api.settings import Settings


@pytest.fixture
def settings() -> Settings:
    """Settings for the memory backend."""
    return Settings(
        persistence_backend="memory",
        sqlite_db_path=":memory:",
        cors_allow_origins=["*"],
        log_level="INFO",
        host="127.0.0.1",
        port=3000,
    )


@pytest.fixture
def client(settings: Settings) -> Generator[TestClient, None, None]:
    """A client on a fresh app backed by a private in-memory database."""
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_category(client: TestClient):
    def _make(name: str) -> dict:
        res = client.post("/api/categories", json={"name": name})
        assert res.status_code == 201, res.text
        return res.json()["data"]

    return _make


@pytest.fixture
def make_todo(client: TestClient):
    def _make(title: str = "Test Task", **fields) -> dict:
        res = client.post("/api/todos", json={"title": title, **fields})
        assert res.status_code == 201, res.text
        return res.json()["data"]

    return _make
