"""Tests for the application-level health endpoints."""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from brevet.main import app


@pytest.fixture
def client():
    # Not used as a context manager, so the lifespan (Redis, DB, scheduler) never runs
    yield TestClient(app)
    if hasattr(app.state, "scheduler"):
        del app.state.scheduler


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_ready_before_scheduler_starts(client):
    assert client.get("/ready").json() == {"status": "starting"}


def test_ready_with_running_scheduler(client):
    app.state.scheduler = MagicMock(running=True)

    assert client.get("/ready").json() == {"status": "ready"}
