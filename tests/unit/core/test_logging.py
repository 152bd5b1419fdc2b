"""Unit tests for the logging module."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from types import SimpleNamespace
from typing import TYPE_CHECKING, Any

import pytest
from loguru import logger

from src.core.config import LogConfig, Settings
from src.core.logging import (
    CORRELATION_ID_DISPLAY_LENGTH,
    DEFAULT_LOG_FORMAT,
    MAX_FIELD_VALUE_LENGTH,
    ORM_LOGGER_NAME,
    InterceptHandler,
    _escape,
    _format_context_fields,
    _format_extra_field,
    _format_priority_field,
    _state,
    bind_context,
    configure_orm_logging,
    format_console_with_context,
    serialize_for_json,
    setup_logging,
)

if TYPE_CHECKING:
    from collections.abc import Generator

    from pytest_mock import MockerFixture


def _record(**overrides: Any) -> dict[str, Any]:
    record: dict[str, Any] = {
        "time": datetime(2026, 1, 2, 3, 4, 5, 678000, tzinfo=UTC),
        "level": SimpleNamespace(name="INFO"),
        "message": "Created user",
        "name": "src.infrastructure.database.repository",
        "function": "create",
        "module": "repository",
        "line": 42,
        "extra": {},
        "exception": None,
    }
    record.update(overrides)
    return record


@pytest.fixture
def orm_logger_level() -> Generator[None]:
    """Restore the SQLAlchemy logger level after the test."""
    orm_logger = logging.getLogger(ORM_LOGGER_NAME)
    original = orm_logger.level
    yield
    orm_logger.setLevel(original)


@pytest.mark.unit
class TestFieldFormatting:
    """Test console field formatting helpers."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("plain", "plain"),
            ("a{b}c", "a{{b}}c"),
            ("<User(id=1)>", r"\<User(id=1)>"),
        ],
    )
    def test_escape(self, value: str, expected: str) -> None:
        """Braces and tags are escaped for Loguru."""
        assert _escape(value) == expected

    @pytest.mark.parametrize(
        ("field", "value", "expected"),
        [
            ("correlation_id", "1234567890abcdef", "12345678"),
            ("correlation_id", "short", "short"),
            ("duration_ms", 150, "150ms"),
            ("entity", "User", "User"),
            ("entity_id", 7, "7"),
        ],
    )
    def test_format_priority_field(
        self, field: str, value: object, expected: str
    ) -> None:
        """Priority fields are shortened or suffixed for display."""
        assert _format_priority_field(field, value) == expected
        assert len(_format_priority_field("correlation_id", "x" * 36)) == (
            CORRELATION_ID_DISPLAY_LENGTH
        )

    @pytest.mark.parametrize(
        ("key", "value", "expected"),
        [
            ("table", "users", "table=users"),
            ("batch_size", 2, "batch_size=2"),
            ("password", "hunter2", "password=[REDACTED]"),
            (
                "query",
                "x" * 200,
                f"query={'x' * (MAX_FIELD_VALUE_LENGTH - 3)}...",
            ),
        ],
    )
    def test_format_extra_field(self, key: str, value: object, expected: str) -> None:
        """Extra fields are truncated and sensitive ones redacted."""
        assert _format_extra_field(key, value) == expected

    def test_context_fields_priority_first(self) -> None:
        """Priority fields come first; private and empty fields are skipped."""
        extra = {
            "table": "users",
            "entity": "User",
            "_private": "hidden",
            "skipped": None,
            "correlation_id": "abcdef",
        }

        assert _format_context_fields(extra) == [
            "<yellow>abcdef</yellow>",
            "<yellow>User</yellow>",
            "<dim>table=users</dim>",
        ]


@pytest.mark.unit
class TestFormatters:
    """Test the console and JSON formatters."""

    def test_console_format(self) -> None:
        """The console format keeps the message as a placeholder."""
        line = format_console_with_context(_record(extra={"entity": "User"}))

        assert line.startswith("<green>2026-01-02 03:04:05.678</green>")
        assert "[<yellow>User</yellow>]" in line
        assert line.endswith("{message}\n")

    def test_console_format_with_exception(self) -> None:
        """Exceptions are rendered after the message."""
        line = format_console_with_context(_record(exception=object()))

        assert line.endswith("{message}\n{exception}\n")

    def test_console_format_falls_back_on_bad_record(self) -> None:
        """Malformed records use the default format."""
        assert format_console_with_context({}) == DEFAULT_LOG_FORMAT + "\n"

    def test_json_format(self) -> None:
        """JSON lines carry record fields and sanitized extras."""
        line = serialize_for_json(
            _record(extra={"entity": "User", "api_key": "k", "_internal": 1})
        )

        payload = json.loads(line)
        assert payload["level"] == "INFO"
        assert payload["message"] == "Created user"
        assert payload["line"] == 42
        assert payload["entity"] == "User"
        assert payload["api_key"] == "[REDACTED]"
        assert "_internal" not in payload

    def test_json_format_with_exception(self) -> None:
        """Exception type and value are included."""
        error = ValueError("bad")
        exception = SimpleNamespace(type=ValueError, value=error)

        payload = json.loads(serialize_for_json(_record(exception=exception)))

        assert payload["exception"] == {"type": "ValueError", "value": "bad"}


@pytest.mark.unit
class TestOrmLogging:
    """Test ORM verbosity mapping."""

    @pytest.mark.usefixtures("orm_logger_level")
    @pytest.mark.parametrize(
        ("level", "expected"),
        [
            ("silent", logging.CRITICAL + 10),
            ("error", logging.ERROR),
            ("warn", logging.WARNING),
            ("info", logging.INFO),
            ("INFO", logging.INFO),
            ("unknown", logging.INFO),
        ],
    )
    def test_configure_orm_logging(self, level: str, expected: int) -> None:
        """Each verbosity maps onto the SQLAlchemy engine logger."""
        assert configure_orm_logging(level) == expected
        assert logging.getLogger(ORM_LOGGER_NAME).level == expected


@pytest.mark.unit
class TestInterceptHandler:
    """Test forwarding standard logging into Loguru."""

    def test_forwards_records(self) -> None:
        """Standard records arrive in Loguru with their logger name."""
        messages: list[Any] = []
        sink_id = logger.add(messages.append, format="{message}", level="DEBUG")
        try:
            record = logging.LogRecord(
                name=ORM_LOGGER_NAME,
                level=logging.INFO,
                pathname=__file__,
                lineno=1,
                msg="SELECT %s",
                args=(1,),
                exc_info=None,
            )
            InterceptHandler().emit(record)
        finally:
            logger.remove(sink_id)

        assert len(messages) == 1
        assert messages[0].record["message"] == "SELECT 1"
        assert messages[0].record["level"].name == "INFO"
        assert messages[0].record["extra"]["logger_name"] == ORM_LOGGER_NAME

    def test_unknown_level_uses_number(self) -> None:
        """Custom standard levels are forwarded by number."""
        messages: list[Any] = []
        sink_id = logger.add(messages.append, format="{message}", level=0)
        try:
            record = logging.LogRecord(
                name="custom",
                level=15,
                pathname=__file__,
                lineno=1,
                msg="custom level",
                args=(),
                exc_info=None,
            )
            InterceptHandler().emit(record)
        finally:
            logger.remove(sink_id)

        assert messages[0].record["level"].no == 15


@pytest.mark.unit
class TestSetupLogging:
    """Test logging setup."""

    @pytest.mark.usefixtures("reset_logging_state")
    def test_formatter_resolved_by_settings(
        self, monkeypatch: pytest.MonkeyPatch, mocker: MockerFixture
    ) -> None:
        """The formatter picked by Settings is the one installed."""
        monkeypatch.setenv("K_SERVICE", "repokit")
        mock_logger = mocker.patch("src.core.logging.logger")
        mocker.patch("src.core.logging.logging.basicConfig")
        settings = Settings(environment="development")

        setup_logging(settings)

        assert settings.log_config.log_formatter_type == "json"
        _, kwargs = mock_logger.add.call_args
        assert kwargs["diagnose"] is False
        assert "format" not in kwargs

    @pytest.mark.usefixtures("reset_logging_state")
    def test_console_setup(self, mocker: MockerFixture) -> None:
        """Console output goes to stdout with the context formatter."""
        mock_logger = mocker.patch("src.core.logging.logger")
        mock_basic_config = mocker.patch("src.core.logging.logging.basicConfig")
        settings = Settings(log_config=LogConfig(log_formatter_type="console"))

        setup_logging(settings)

        mock_logger.remove.assert_called_once()
        _, kwargs = mock_logger.add.call_args
        assert kwargs["format"] is format_console_with_context
        assert kwargs["level"] == "INFO"
        mock_basic_config.assert_called_once()
        handlers = mock_basic_config.call_args.kwargs["handlers"]
        assert isinstance(handlers[0], InterceptHandler)
        assert _state.configured is True

    @pytest.mark.usefixtures("reset_logging_state")
    def test_json_setup(self, mocker: MockerFixture) -> None:
        """JSON output uses a custom sink without diagnostics."""
        mock_logger = mocker.patch("src.core.logging.logger")
        mocker.patch("src.core.logging.logging.basicConfig")
        settings = Settings(log_config=LogConfig(log_formatter_type="json"))

        setup_logging(settings)

        args, kwargs = mock_logger.add.call_args
        assert callable(args[0])
        assert kwargs["diagnose"] is False

    @pytest.mark.usefixtures("reset_logging_state")
    def test_setup_runs_once(self, mocker: MockerFixture) -> None:
        """Only the first call configures sinks."""
        mock_logger = mocker.patch("src.core.logging.logger")
        mocker.patch("src.core.logging.logging.basicConfig")
        settings = Settings()

        setup_logging(settings)
        setup_logging(settings)

        assert mock_logger.add.call_count == 1


@pytest.mark.unit
class TestBindContext:
    """Test process-wide context binding."""

    def test_bound_fields_on_every_record(self) -> None:
        """Bound fields appear in the extra of later records."""
        messages: list[Any] = []
        sink_id = logger.add(messages.append, format="{message}", level="INFO")
        try:
            bind_context(app_name="Repokit", app_version="0.1.0")
            logger.info("first")
            logger.info("second")
        finally:
            logger.remove(sink_id)
            logger.configure(extra={})

        for message in messages:
            assert message.record["extra"]["app_name"] == "Repokit"
            assert message.record["extra"]["app_version"] == "0.1.0"
        assert len(messages) == 2
