"""Shared pytest fixtures for localmem tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from localmem.backend.app import create_app
from localmem.backend.config import BackendConfig, reset_config
from localmem.memory import MemoryStore

TEST_TOKEN = "ab" * 32


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path: Path):
    """Keep tests away from the real ~/.localmem and any LOCALMEM_* settings."""
    for var in (
        "LOCALMEM_HOST",
        "LOCALMEM_PORT",
        "LOCALMEM_MAX_BODY_MB",
        "LOCALMEM_MAX_CONTENT_CHARS",
        "LOCALMEM_URL",
        "LOCALMEM_TOKEN",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("LOCALMEM_DATA_DIR", str(tmp_path / "localmem-home"))
    reset_config()
    yield
    reset_config()


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Fresh data directory for the store and token files."""
    return tmp_path / "data"


@pytest.fixture
def config(data_dir: Path) -> BackendConfig:
    return BackendConfig(data_dir=data_dir)


@pytest.fixture
def store(config: BackendConfig) -> MemoryStore:
    return MemoryStore(config.snapshot_path)


@pytest.fixture
def token() -> str:
    """Bearer token the test app is created with."""
    return TEST_TOKEN


@pytest.fixture
def app(config: BackendConfig, store: MemoryStore, token: str):
    return create_app(config=config, store=store, token=token)


@pytest.fixture
def client(app) -> TestClient:
    """Unauthenticated test client."""
    return TestClient(app)


@pytest.fixture
def api(app, token: str) -> TestClient:
    """Test client sending the bearer token on every request."""
    return TestClient(app, headers={"Authorization": f"Bearer {token}"})
