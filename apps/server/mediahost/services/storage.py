"""
apps/server/mediahost/services/storage.py
Persistent storage access for the service graph (SQLAlchemy).
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

import structlog
from sqlalchemy import DateTime, Engine, String, create_engine, event, text
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class LibraryItem(Base):
    """Media item known to the library."""
    __tablename__ = "library_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(512))
    path: Mapped[str] = mapped_column(String(4096))
    item_type: Mapped[str] = mapped_column(String(64), default="Movie")


class ActivityLogEntry(Base):
    """Server activity record (startup, shutdown, task results)."""
    __tablename__ = "activity_log"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(256))
    kind: Mapped[str] = mapped_column(String(64), index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )


def _enable_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class StorageProvider:
    """
    Owns the database engine and the session factory.

    Capabilities are exposed as properties so callers never compare
    engine type names themselves.
    """

    def __init__(self, url: str):
        self.url = url
        self.engine: Optional[Engine] = create_engine(url)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_pragmas)
        self.session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        logger.info("storage_initialized", dialect=self.engine.dialect.name)

    @classmethod
    def for_sqlite_file(cls, path: Path) -> "StorageProvider":
        path.parent.mkdir(parents=True, exist_ok=True)
        return cls(f"sqlite:///{path}")

    @property
    def dialect(self) -> str:
        return self._require_engine().dialect.name

    @property
    def supports_query_optimization(self) -> bool:
        """Whether ``optimize()`` does anything for this engine."""
        return self.engine is not None and self.engine.dialect.name == "sqlite"

    def _require_engine(self) -> Engine:
        if self.engine is None:
            raise RuntimeError("storage provider has been disposed")
        return self.engine

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Transactional session scope: commit on success, rollback on error."""
        self._require_engine()
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def execute(self, statement: str) -> None:
        with self._require_engine().begin() as conn:
            conn.execute(text(statement))

    def create_schema(self) -> None:
        Base.metadata.create_all(self._require_engine())

    def optimize(self) -> None:
        """Run the query planner bookkeeping (SQLite ``PRAGMA optimize``)."""
        if not self.supports_query_optimization:
            return
        self.execute("PRAGMA optimize")

    def record_activity(self, name: str, kind: str) -> None:
        with self.session() as session:
            session.add(ActivityLogEntry(name=name, kind=kind))

    def dispose(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None
            logger.info("storage_disposed")


__all__ = ["Base", "LibraryItem", "ActivityLogEntry", "StorageProvider"]
