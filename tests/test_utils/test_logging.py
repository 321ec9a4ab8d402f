"""Tests for the structured logging utilities."""

import asyncio
import logging
from collections.abc import Iterator
from unittest.mock import MagicMock

import pytest

from spreadsheet_engine.utils.logging import (
    LogContext,
    PerformanceMetrics,
    StructuredLogFormatter,
    StructuredLogger,
    clear_context,
    configure_logging,
    get_extra_context,
    get_logger,
    get_operation_id,
    get_request_id,
    render_context,
    set_extra_context,
    set_operation_id,
    set_request_id,
    timed_operation,
)


@pytest.fixture(autouse=True)
def clean_context() -> Iterator[None]:
    clear_context()
    yield
    clear_context()


def make_record(message: str) -> logging.LogRecord:
    return logging.LogRecord("test", logging.INFO, __file__, 1, message, None, None)


def mock_structured_logger(
    enabled: bool = True,
) -> tuple[StructuredLogger, MagicMock]:
    logger = StructuredLogger("test")
    mock_logger = MagicMock()
    mock_logger.isEnabledFor.return_value = enabled
    logger._logger = mock_logger
    return logger, mock_logger


class TestContextVariables:
    """Tests for context variable management."""

    def test_defaults(self) -> None:
        assert get_request_id() is None
        assert get_operation_id() is None
        assert get_extra_context() == {}
        assert render_context() == ""

    def test_set_and_render(self) -> None:
        set_request_id("req-123")
        set_operation_id("op-456")
        set_extra_context({"operation": "store_save"})

        assert render_context() == (
            "request_id=req-123 operation_id=op-456 operation=store_save"
        )

    def test_extra_context_is_copied(self) -> None:
        context = {"operation": "clear"}
        set_extra_context(context)
        context["operation"] = "changed"

        assert get_extra_context() == {"operation": "clear"}

    def test_clear_context(self) -> None:
        set_request_id("req-123")
        set_operation_id("op-456")
        set_extra_context({"key": "value"})

        clear_context()

        assert render_context() == ""

    async def test_context_follows_worker_threads(self) -> None:
        set_operation_id("op-thread")
        assert await asyncio.to_thread(get_operation_id) == "op-thread"


class TestLogContext:
    """Tests for LogContext."""

    def test_sets_and_restores(self) -> None:
        set_request_id("outer")
        with LogContext(operation_id="op-1", request_id="inner", operation="save"):
            assert get_operation_id() == "op-1"
            assert get_request_id() == "inner"
            assert get_extra_context() == {"operation": "save"}

        assert get_operation_id() is None
        assert get_request_id() == "outer"
        assert get_extra_context() == {}

    def test_nested_contexts_merge(self) -> None:
        with LogContext(a=1):
            with LogContext(b=2):
                assert get_extra_context() == {"a": 1, "b": 2}
            assert get_extra_context() == {"a": 1}

    def test_restores_on_error(self) -> None:
        with pytest.raises(RuntimeError), LogContext(operation_id="op-1"):
            raise RuntimeError("boom")
        assert get_operation_id() is None

    def test_reusable(self) -> None:
        context = LogContext(operation_id="op-1")
        with context:
            pass
        with context:
            assert get_operation_id() == "op-1"
        assert get_operation_id() is None


class TestStructuredLogFormatter:
    """Tests for the context-aware formatter."""

    def test_without_context(self) -> None:
        formatter = StructuredLogFormatter("%(levelname)s %(message)s")
        assert formatter.format(make_record("hello")) == "INFO hello"

    def test_prefixes_context(self) -> None:
        formatter = StructuredLogFormatter("%(message)s")
        set_request_id("req-1")

        with LogContext(operation_id="op-2", operation="save"):
            output = formatter.format(make_record("hello"))

        assert output == "[request_id=req-1 operation_id=op-2 operation=save] hello"

    def test_record_left_untouched(self) -> None:
        formatter = StructuredLogFormatter("%(message)s")
        set_request_id("req-1")
        record = make_record("hello")

        formatter.format(record)

        assert record.msg == "hello"
        assert record.getMessage() == "hello"


class TestStructuredLogger:
    """Tests for StructuredLogger."""

    def test_get_logger(self) -> None:
        logger = get_logger("spreadsheet_engine.test")
        assert isinstance(logger, StructuredLogger)
        assert logger.logger.name == "spreadsheet_engine.test"

    def test_key_value_message(self) -> None:
        logger, mock_logger = mock_structured_logger()

        logger.info("Grid resized", rows=11, columns=10)

        level, message = mock_logger.log.call_args.args
        assert level == logging.INFO
        assert message == "Grid resized | rows=11 columns=10"

    def test_plain_message(self) -> None:
        logger, mock_logger = mock_structured_logger()

        logger.warning("Nothing to add")

        assert mock_logger.log.call_args.args == (logging.WARNING, "Nothing to add")

    def test_exception_includes_traceback(self) -> None:
        logger, mock_logger = mock_structured_logger()

        logger.exception("Subscriber failed", cell="B2")

        assert mock_logger.log.call_args.args[0] == logging.ERROR
        assert mock_logger.log.call_args.kwargs["exc_info"] is True

    def test_disabled_level_skips_logging(self) -> None:
        logger, mock_logger = mock_structured_logger(enabled=False)

        logger.debug("Grid loaded", cells=3)

        mock_logger.log.assert_not_called()

    def test_caller_location_recorded(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = get_logger("spreadsheet_engine.test")

        with caplog.at_level(logging.INFO, logger="spreadsheet_engine.test"):
            logger.info("Located")

        assert caplog.records[-1].funcName == "test_caller_location_recorded"


class TestPerformanceMetrics:
    """Tests for performance metrics."""

    def test_to_dict(self) -> None:
        metrics = PerformanceMetrics(operation="store_save")
        metrics.cells_processed = 4
        metrics.finish()

        data = metrics.to_dict()

        assert data["operation"] == "store_save"
        assert data["cells_processed"] == 4
        assert data["duration_seconds"] >= 0
        assert "failed" not in data

    def test_unfinished_has_no_duration(self) -> None:
        data = PerformanceMetrics(operation="noop").to_dict()
        assert data == {"operation": "noop", "duration_seconds": None}

    def test_timed_operation_logs_on_exit(self) -> None:
        logger = MagicMock(spec=StructuredLogger)

        with timed_operation(logger, "store_load") as metrics:
            metrics.cells_processed = 2

        logger.log_performance.assert_called_once_with(metrics, stacklevel=3)
        assert metrics.duration_seconds is not None
        assert metrics.failed is False

    def test_timed_operation_marks_failure(self) -> None:
        logger = MagicMock(spec=StructuredLogger)

        with pytest.raises(RuntimeError), timed_operation(logger, "store_save"):
            raise RuntimeError("boom")

        metrics = logger.log_performance.call_args.args[0]
        assert metrics.failed is True

    def test_failed_operation_logged_as_warning(self) -> None:
        logger, mock_logger = mock_structured_logger()
        metrics = PerformanceMetrics(operation="file_import", failed=True)
        metrics.finish()

        logger.log_performance(metrics)

        level, message = mock_logger.log.call_args.args
        assert level == logging.WARNING
        assert "failed=True" in message


    def test_timed_operation_attributed_to_caller(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        logger = get_logger("spreadsheet_engine.test")

        with caplog.at_level(logging.INFO, logger="spreadsheet_engine.test"):
            with timed_operation(logger, "store_save"):
                pass

        record = caplog.records[-1]
        assert record.funcName == "test_timed_operation_attributed_to_caller"
        assert record.pathname == __file__

    def test_failed_timed_operation_attributed_to_caller(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        logger = get_logger("spreadsheet_engine.test")

        with (
            caplog.at_level(logging.INFO, logger="spreadsheet_engine.test"),
            pytest.raises(RuntimeError),
            timed_operation(logger, "file_import"),
        ):
            raise RuntimeError("boom")

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert record.funcName == "test_failed_timed_operation_attributed_to_caller"


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_installs_structured_handler(self) -> None:
        root = logging.getLogger()
        saved_handlers = root.handlers[:]
        saved_level = root.level
        try:
            configure_logging(level="debug")
            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, StructuredLogFormatter)

            configure_logging(level=logging.WARNING, use_structured_formatter=False)
            assert len(root.handlers) == 1
            assert not isinstance(
                root.handlers[0].formatter, StructuredLogFormatter
            )
        finally:
            root.handlers = saved_handlers
            root.setLevel(saved_level)
