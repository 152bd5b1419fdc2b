"""Shared fixtures for unit tests."""

import os
from collections.abc import Generator

import pytest

from src.core.config import get_settings
from src.core.context import OperationContext
from src.core.error_context import _get_sensitive_fields
from src.core.logging import _state


@pytest.fixture(autouse=True)
def clean_lru_cache() -> Generator[None]:
    """Clear cached settings before and after each test."""
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()
    yield
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()


@pytest.fixture(autouse=True)
def clean_env(
    monkeypatch: pytest.MonkeyPatch,
) -> Generator[pytest.MonkeyPatch]:
    """Remove app-specific environment variables so tests see defaults.

    Args:
        monkeypatch: Pytest monkeypatch fixture.

    Returns:
        pytest.MonkeyPatch: The monkeypatch instance for env manipulation.
    """
    env_prefixes = [
        "APP_",
        "ENVIRONMENT",
        "DEBUG",
        "OPERATION_TIMEOUT",
        "LOG_CONFIG__",
        "DATABASE_CONFIG__",
        "K_SERVICE",
        "AWS_EXECUTION_ENV",
    ]
    for key in list(os.environ.keys()):
        if any(key.startswith(prefix) for prefix in env_prefixes):
            monkeypatch.delenv(key, raising=False)

    return monkeypatch


@pytest.fixture(autouse=True)
def clean_context() -> Generator[None]:
    """Clear operation context before and after each test."""
    OperationContext.clear()
    yield
    OperationContext.clear()


@pytest.fixture
def reset_logging_state() -> Generator[None]:
    """Allow setup_logging to run again within a test."""
    original = _state.configured
    _state.configured = False
    yield
    _state.configured = original
