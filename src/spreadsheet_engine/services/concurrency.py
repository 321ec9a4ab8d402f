"""Single exclusive section serializing every grid operation.

Grid edits are not individually atomic (a resize rebuilds every row), so
all operations that mutate the grid or read it for a snapshot run one at a
time. Waiters are admitted in arrival order, and the section is released on
every exit path, including failures.
"""

import asyncio
import inspect
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeVar, cast

from spreadsheet_engine.utils.logging import LogContext, get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ConcurrencyGuard:
    """Admits at most one grid operation at a time."""

    def __init__(self) -> None:
        # asyncio.Lock wakes waiters in FIFO order
        self._lock = asyncio.Lock()
        self._active_operation: str | None = None

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    @property
    def active_operation(self) -> str | None:
        """Name of the operation currently inside the section, if any."""
        return self._active_operation

    @asynccontextmanager
    async def exclusive(self, name: str) -> AsyncIterator[str]:
        """Hold the section for the duration of the ``async with`` block.

        Yields:
            The operation ID bound into the logging context.
        """
        operation_id = uuid.uuid4().hex[:12]
        if self._lock.locked():
            logger.debug(
                "Waiting for grid access",
                operation=name,
                holder=self._active_operation,
            )

        async with self._lock:
            self._active_operation = name
            try:
                with LogContext(operation_id=operation_id, operation=name):
                    logger.debug("Grid operation started")
                    yield operation_id
                    logger.debug("Grid operation finished")
            finally:
                self._active_operation = None

    async def run_exclusive(
        self,
        operation: Callable[..., T] | Callable[..., Awaitable[T]],
        *args: Any,
        name: str | None = None,
        **kwargs: Any,
    ) -> T:
        """Run ``operation`` inside the section and return its result.

        Coroutine functions are awaited while the section is held; plain
        callables run inline. Exceptions propagate after release.
        """
        op_name = name or getattr(operation, "__name__", "operation")
        async with self.exclusive(op_name):
            result = operation(*args, **kwargs)
            if inspect.isawaitable(result):
                return cast(T, await result)
            return cast(T, result)
