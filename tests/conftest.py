from __future__ import annotations

from collections.abc import Iterator

import pytest

from spreadsheet_engine.cells import CellChange
from spreadsheet_engine.services.change_notifier import ChangeNotifier
from spreadsheet_engine.services.concurrency import ConcurrencyGuard
from spreadsheet_engine.services.grid import Grid
from spreadsheet_engine.services.persistence import PersistenceGateway
from spreadsheet_engine.services.spreadsheet_service import SpreadsheetService


@pytest.fixture
def notifier() -> ChangeNotifier:
    return ChangeNotifier()


@pytest.fixture
def grid(notifier: ChangeNotifier) -> Grid:
    """Default 10x10 grid whose changes are buffered in ``notifier``."""
    return Grid(notifier=notifier)


@pytest.fixture
def recorded_changes(notifier: ChangeNotifier) -> list[CellChange]:
    """Changes pushed to a subscriber, in delivery order."""
    changes: list[CellChange] = []
    notifier.subscribe(changes.append)
    return changes


@pytest.fixture
def gateway() -> Iterator[PersistenceGateway]:
    """Store on a private in-memory SQLite database with the schema created."""
    store = PersistenceGateway.from_url("sqlite://")
    store.create_schema()
    yield store
    store.dispose()


@pytest.fixture
def service(gateway: PersistenceGateway, grid: Grid) -> SpreadsheetService:
    return SpreadsheetService(gateway, grid=grid, guard=ConcurrencyGuard())
