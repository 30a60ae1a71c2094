"""Shared pytest configuration and fixtures for the Ingredient Lens test suite."""

import sys
from pathlib import Path

import pytest

# Ensure the project root is in the path for imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from tests.fakes import FakeCamera, FakeVisionClient, VALID_KEY  # noqa: E402


@pytest.fixture
def camera() -> FakeCamera:
    return FakeCamera()


@pytest.fixture
def api_key() -> str:
    return VALID_KEY


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep a developer's real .env credential out of the tests."""
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)


@pytest.fixture
def client_factory():
    def make(**kwargs) -> FakeVisionClient:
        return FakeVisionClient(**kwargs)
    return make
