# tests/conftest.py

"""Shared pytest fixtures for all sourcing tests."""

from collections.abc import Generator
from unittest.mock import patch

import pytest

from src.config.settings import Settings


@pytest.fixture(autouse=True)
def no_shared_cache() -> Generator[None, None, None]:
    """Keep tests off any Redis named in the developer's environment."""
    with patch.object(Settings, "REDIS_URL", ""):
        yield
