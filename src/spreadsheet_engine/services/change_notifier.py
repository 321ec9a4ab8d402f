"""Per-cell change notification for grid observers.

The notifier supports two consumption styles:
- push: callbacks registered with :meth:`ChangeNotifier.subscribe` are
  invoked synchronously, in subscription order, for every change
- pull: every published change is also buffered until :meth:`drain` is
  called, for consumers that poll instead of registering callbacks
"""

from collections.abc import Callable

from spreadsheet_engine.cells import CellChange
from spreadsheet_engine.utils.logging import get_logger

logger = get_logger(__name__)

ChangeCallback = Callable[[CellChange], None]


class ChangeNotifier:
    """Fan-out of cell change events to subscribers."""

    def __init__(self, buffer_changes: bool = True) -> None:
        """Initialize the notifier.

        Args:
            buffer_changes: Keep published changes until :meth:`drain`.
                Disable when nobody polls, so the buffer cannot grow forever.
        """
        self._subscribers: list[ChangeCallback] = []
        self._buffer_changes = buffer_changes
        self._pending: list[CellChange] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: ChangeCallback) -> Callable[[], None]:
        """Register a callback and return a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, change: CellChange) -> None:
        """Deliver one change to every subscriber.

        A failing subscriber is logged and skipped; it never aborts the grid
        operation that produced the change nor starves later subscribers.
        """
        if self._buffer_changes:
            self._pending.append(change)
        for callback in list(self._subscribers):
            try:
                callback(change)
            except Exception:
                logger.exception(
                    "Change subscriber failed",
                    cell=change.address.reference,
                    subscriber=getattr(callback, "__qualname__", repr(callback)),
                )

    def publish_all(self, changes: list[CellChange]) -> None:
        for change in changes:
            self.publish(change)

    def drain(self) -> list[CellChange]:
        """Return the changes buffered since the previous drain."""
        pending, self._pending = self._pending, []
        return pending
