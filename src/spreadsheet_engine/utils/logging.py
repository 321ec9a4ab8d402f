"""Structured logging for the spreadsheet engine.

Log lines carry the HTTP request ID and, while a grid operation holds the
exclusive section, the ID and name of that operation. Both live in
contextvars, so they follow ``asyncio`` tasks and ``asyncio.to_thread``
calls made from inside the section.

Usage:
    from spreadsheet_engine.utils.logging import get_logger, LogContext

    logger = get_logger(__name__)

    with LogContext(operation_id="3f2a9c", operation="store_save"):
        logger.info("Cell store saved", rows=42)
        # [operation_id=3f2a9c operation=store_save] Cell store saved | rows=42

    with timed_operation(logger, "file_export") as metrics:
        metrics.cells_processed = 12
"""

import logging
import time
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from typing import Any

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
_operation_id_var: ContextVar[str | None] = ContextVar("operation_id", default=None)
_extra_context_var: ContextVar[dict[str, Any] | None] = ContextVar(
    "extra_context", default=None
)


def get_request_id() -> str | None:
    """Return the ID of the HTTP request being served, if any."""
    return _request_id_var.get()


def set_request_id(request_id: str | None) -> None:
    _request_id_var.set(request_id)


def get_operation_id() -> str | None:
    """Return the ID of the grid operation currently holding the guard."""
    return _operation_id_var.get()


def set_operation_id(operation_id: str | None) -> None:
    _operation_id_var.set(operation_id)


def get_extra_context() -> dict[str, Any]:
    return dict(_extra_context_var.get() or {})


def set_extra_context(context: dict[str, Any]) -> None:
    _extra_context_var.set(dict(context))


def clear_context() -> None:
    """Forget the request, the operation and any extra fields."""
    _request_id_var.set(None)
    _operation_id_var.set(None)
    _extra_context_var.set(None)


def render_context() -> str:
    """Render the current context as ``key=value`` pairs, ids first."""
    fields: dict[str, Any] = {
        "request_id": get_request_id(),
        "operation_id": get_operation_id(),
    }
    fields.update(get_extra_context())
    return " ".join(f"{key}={value}" for key, value in fields.items() if value)


class LogContext:
    """Bind log context for the duration of a ``with`` block.

    ``operation_id`` and ``request_id`` keyword arguments set the matching
    IDs; any other keyword is merged into the extra fields. Leaving the
    block restores exactly what was bound before, so contexts nest.
    """

    def __init__(self, **kwargs: Any) -> None:
        self._operation_id: str | None = kwargs.pop("operation_id", None)
        self._request_id: str | None = kwargs.pop("request_id", None)
        self._fields = kwargs
        self._tokens: list[tuple[ContextVar[Any], Token[Any]]] = []

    def __enter__(self) -> "LogContext":
        self._tokens = []
        if self._operation_id is not None:
            self._bind(_operation_id_var, self._operation_id)
        if self._request_id is not None:
            self._bind(_request_id_var, self._request_id)
        self._bind(_extra_context_var, {**get_extra_context(), **self._fields})
        return self

    def __exit__(self, *args: Any) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)

    def _bind(self, var: ContextVar[Any], value: Any) -> None:
        self._tokens.append((var, var.set(value)))


class StructuredLogFormatter(logging.Formatter):
    """Formatter that prefixes the message with the bound log context."""

    def formatMessage(self, record: logging.LogRecord) -> str:  # noqa: N802
        context = render_context()
        if not context:
            return super().formatMessage(record)

        message = record.message
        record.message = f"[{context}] {message}"
        try:
            return super().formatMessage(record)
        finally:
            record.message = message


@dataclass
class PerformanceMetrics:
    """Timing and volume of one store or file operation.

    Attributes:
        operation: Name of the measured operation (e.g. ``store_save``).
        cells_processed: Rows or cells read or written.
        failed: Whether the operation raised.
        duration_seconds: Wall time, set by :meth:`finish`.
    """

    operation: str
    cells_processed: int = 0
    failed: bool = False
    duration_seconds: float | None = None
    _started: float = field(default_factory=time.perf_counter, repr=False)

    def finish(self) -> None:
        self.duration_seconds = round(time.perf_counter() - self._started, 6)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "operation": self.operation,
            "duration_seconds": self.duration_seconds,
        }
        if self.cells_processed:
            result["cells_processed"] = self.cells_processed
        if self.failed:
            result["failed"] = True
        return result


class StructuredLogger:
    """Logger facade that appends keyword arguments as ``key=value`` pairs.

    ``logger.info("Grid resized", rows=11, columns=10)`` logs
    ``"Grid resized | rows=11 columns=10"``. The message is only built when
    the level is enabled.
    """

    def __init__(self, name: str) -> None:
        self._logger = logging.getLogger(name)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    @staticmethod
    def _build_message(message: str, fields: dict[str, Any]) -> str:
        if not fields:
            return message
        pairs = " ".join(f"{key}={value}" for key, value in fields.items())
        return f"{message} | {pairs}"

    def _log(
        self,
        level: int,
        message: str,
        fields: dict[str, Any],
        exc_info: bool = False,
        stacklevel: int = 1,
    ) -> None:
        if self._logger.isEnabledFor(level):
            # +2 skips _log and the public method, landing on its caller
            self._logger.log(
                level,
                self._build_message(message, fields),
                exc_info=exc_info,
                stacklevel=stacklevel + 2,
            )

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, kwargs, exc_info=exc_info)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log at ERROR with the active exception's traceback."""
        self._log(logging.ERROR, message, kwargs, exc_info=True)

    def log_performance(
        self, metrics: PerformanceMetrics, stacklevel: int = 1
    ) -> None:
        """Log ``metrics``; ``stacklevel=1`` attributes it to the direct caller."""
        level = logging.WARNING if metrics.failed else logging.INFO
        self._log(
            level,
            f"Performance: {metrics.operation}",
            metrics.to_dict(),
            stacklevel=stacklevel,
        )


@contextmanager
def timed_operation(
    logger: StructuredLogger,
    operation: str,
) -> Generator[PerformanceMetrics, None, None]:
    """Time the ``with`` block and log the metrics when it ends.

    A block that raises is logged at WARNING with ``failed=True`` and the
    exception propagates.

    Yields:
        PerformanceMetrics the block may annotate (e.g. ``cells_processed``).
    """
    metrics = PerformanceMetrics(operation=operation)
    try:
        yield metrics
    except BaseException:
        metrics.failed = True
        raise
    finally:
        metrics.finish()
        # Report the frame of the `with` statement, above contextlib.__exit__
        logger.log_performance(metrics, stacklevel=3)


def configure_logging(
    level: int | str = logging.INFO,
    format_string: str = DEFAULT_FORMAT,
    use_structured_formatter: bool = True,
) -> None:
    """Replace the root handlers with one stream handler at ``level``."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    handler = logging.StreamHandler()
    handler.setFormatter(
        StructuredLogFormatter(format_string)
        if use_structured_formatter
        else logging.Formatter(format_string)
    )
    logging.basicConfig(level=level, handlers=[handler], force=True)


def get_logger(name: str) -> StructuredLogger:
    """Return the structured logger for ``name`` (usually ``__name__``)."""
    return StructuredLogger(name)
