from __future__ import annotations

import logging
import os
from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner


@pytest.fixture(autouse=True)
def configure_test_logging() -> Generator[None, None, None]:
    """Configure structlog for the test environment.

    Runs automatically for every test so log output goes to stderr at
    WARNING level and never mixes with captured stdout.
    """
    from flowbridge.logging import configure_logging

    configure_logging(level=logging.WARNING)
    yield


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Remove all FLOWBRIDGE_ environment variables for clean testing."""
    original_env = os.environ.copy()
    for key in list(os.environ.keys()):
        if key.startswith("FLOWBRIDGE_"):
            del os.environ[key]
    yield
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click test runner for invoking CLI commands."""
    return CliRunner()


@pytest.fixture
def n8n_context() -> dict[str, object]:
    """A representative n8n evaluation context."""
    return {
        "$json": {
            "id": 12345,
            "name": "Ada Lovelace",
            "email": "ada@example.com",
            "price": 19.5,
            "quantity": 3,
            "active": True,
            "tags": ["vip", "beta"],
            "items": [
                {"sku": "A-1", "qty": 2, "active": True},
                {"sku": "B-2", "qty": 0, "active": False},
                {"sku": "C-3", "qty": 5, "active": True},
            ],
            "address": {"city": "London", "zip": None},
        },
        "$env": {"API_BASE": "https://api.example.com"},
        "$workflow": {"id": "wf-1", "name": "Order sync", "active": True},
        "$node": {"Fetch User": {"json": {"name": "Grace"}}},
        "$parameter": {"resource": "contact"},
    }


@pytest.fixture
def project_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run the test inside an empty project directory."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture(autouse=True)
def isolated_user_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the user config file at a path inside the test directory."""
    user_config = tmp_path / "home" / "config.yaml"
    monkeypatch.setattr("flowbridge.config.get_user_config_path", lambda: user_config)
    return user_config
