"""Transactional cell store backed by SQLAlchemy.

The store keeps one row per cell with content or formatting. Saving
replaces the entire row set in a single transaction: every persisted row
is deleted and the new set is inserted before commit. If anything fails
the transaction is rolled back, leaving the previously saved rows
untouched, and a :class:`PersistenceError` is raised.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import (
    Boolean,
    Engine,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    delete,
    false,
    select,
)
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from spreadsheet_engine.cells import PersistedRow
from spreadsheet_engine.utils.exceptions import ErrorCode, PersistenceError
from spreadsheet_engine.utils.logging import get_logger, timed_operation

logger = get_logger(__name__)


class Base(DeclarativeBase):
    pass


class CellRecord(Base):
    """Persisted row for one cell with content or formatting."""

    # == Model Metadata =======================================================
    __tablename__ = "cells"
    __table_args__ = (
        UniqueConstraint("row_index", "column_index", name="uq_cells_row_column"),
    )

    # == Columns ==============================================================
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    row_index: Mapped[int] = mapped_column(Integer, nullable=False)
    column_index: Mapped[int] = mapped_column(Integer, nullable=False)
    display_value: Mapped[str | None] = mapped_column(String, nullable=True)
    formula: Mapped[str | None] = mapped_column(String, nullable=True)
    is_bold: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    is_italic: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    is_underlined: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    # == Methods ==============================================================
    @classmethod
    def from_row(cls, row: PersistedRow) -> CellRecord:
        return cls(
            row_index=row.row,
            column_index=row.column,
            display_value=row.display_value,
            formula=row.formula,
            is_bold=row.bold,
            is_italic=row.italic,
            is_underlined=row.underlined,
        )

    def to_row(self) -> PersistedRow:
        return PersistedRow(
            row=self.row_index,
            column=self.column_index,
            display_value=self.display_value,
            formula=self.formula,
            bold=self.is_bold,
            italic=self.is_italic,
            underlined=self.is_underlined,
        )


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine for ``database_url``.

    In-memory SQLite databases exist per connection, so they get a single
    shared connection that may be used from worker threads.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:"):
        return create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url, echo=echo)


class PersistenceGateway:
    """Replace-all save and ordered load of persisted cell rows."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> PersistenceGateway:
        return cls(build_engine(database_url, echo=echo))

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_schema(self) -> None:
        """Create the cells table if it does not exist yet."""
        Base.metadata.create_all(self._engine)

    def save(self, rows: Iterable[PersistedRow]) -> int:
        """Atomically replace every persisted row with ``rows``.

        Returns:
            Number of rows written.

        Raises:
            PersistenceError: After rollback, if the transaction failed.
        """
        records = [CellRecord.from_row(row) for row in rows]
        with timed_operation(logger, "store_save") as metrics:
            session = self._session_factory()
            try:
                with session.begin():
                    session.execute(delete(CellRecord))
                    session.add_all(records)
            except SQLAlchemyError as e:
                logger.error(
                    "Cell store save rolled back",
                    rows=len(records),
                    error=type(e).__name__,
                )
                raise PersistenceError(
                    f"Failed to save cells: {e}",
                    error_code=ErrorCode.PERSISTENCE_SAVE_FAILED,
                    operation="save",
                    details={"rows": len(records)},
                ) from e
            finally:
                session.close()
            metrics.cells_processed = len(records)

        logger.info("Cell store saved", rows=len(records))
        return len(records)

    def load(self) -> list[PersistedRow]:
        """Return every persisted row ordered by (row, column).

        Raises:
            PersistenceError: If the store cannot be read.
        """
        with timed_operation(logger, "store_load") as metrics:
            try:
                with self._session_factory() as session:
                    records = session.scalars(
                        select(CellRecord).order_by(
                            CellRecord.row_index, CellRecord.column_index
                        )
                    ).all()
                    rows = [record.to_row() for record in records]
            except SQLAlchemyError as e:
                logger.error("Cell store load failed", error=type(e).__name__)
                raise PersistenceError(
                    f"Failed to load cells: {e}",
                    error_code=ErrorCode.PERSISTENCE_LOAD_FAILED,
                    operation="load",
                ) from e
            metrics.cells_processed = len(rows)

        return rows

    def dispose(self) -> None:
        self._engine.dispose()
