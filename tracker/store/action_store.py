"""SQLite-backed append-only store of coverage events.

The action table only ever receives inserts; rows are read back with a
full scan ordered by the internal row id, i.e. insertion order.
"""
import sqlite3
from pathlib import Path

import aiosqlite
import structlog
from pydantic import ValidationError

from ..errors import PersistenceError, QueryError, StorageUnavailable
from ..event_models import CoverageEvent

log = structlog.get_logger()

_COLUMN_LIST = ", ".join(CoverageEvent.COLUMNS)

DDL_SQL = """
CREATE TABLE IF NOT EXISTS action (
    id                  INTEGER PRIMARY KEY ASC,
    event               TEXT,
    venture_config_id   TEXT,
    venture_reference   TEXT,
    created_at          TEXT,
    culture             TEXT,
    action_type         TEXT,
    action_reference    TEXT,
    version             TEXT,
    route               TEXT,
    service_name        TEXT,
    coverage            REAL
)
"""

INSERT_SQL = (
    f"INSERT INTO action ({_COLUMN_LIST}) "
    f"VALUES ({', '.join('?' for _ in CoverageEvent.COLUMNS)})"
)

SELECT_SQL = f"SELECT {_COLUMN_LIST} FROM action ORDER BY id ASC"


class ActionStore:
    """
    Durable append-only log of CoverageEvents.

    A single aiosqlite connection is shared by all request handlers.
    aiosqlite runs every statement on one dedicated thread, so concurrent
    appends and scans are serialized by the driver.
    """

    def __init__(self, db_name: str | Path):
        """
        Args:
            db_name: Path of the SQLite database file (":memory:" also works)
        """
        self.db_name = str(db_name)
        self._conn: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """
        Open the database and make sure the action table exists.

        Safe to call on every startup.

        Raises:
            StorageUnavailable: If the file cannot be opened or the schema
                cannot be created
        """
        if self._conn is not None:
            return
        conn = None
        try:
            conn = await aiosqlite.connect(self.db_name)
            await conn.execute(DDL_SQL)
            await conn.commit()
        except (sqlite3.Error, OSError) as e:
            log.error("store.initialize_failed", db_name=self.db_name, error=str(e))
            if conn is not None:
                await conn.close()
            raise StorageUnavailable(f"cannot open action store at {self.db_name}", cause=e) from e
        self._conn = conn
        log.info("store.initialized", db_name=self.db_name)

    async def append(self, event: CoverageEvent) -> None:
        """
        Insert one event as a new row.

        Raises:
            PersistenceError: If the store is not open, the event carries no
                payload, or the insert fails
        """
        if self._conn is None:
            raise PersistenceError("action store is not initialized")
        if event.payload is None:
            raise PersistenceError("event has no payload")

        try:
            await self._conn.execute(INSERT_SQL, event.row())
            await self._conn.commit()
        except sqlite3.Error as e:
            log.error("store.append_failed", error=str(e), event_kind=event.event)
            await self._rollback()
            raise PersistenceError("failed to save event", cause=e) from e

        log.debug("store.appended", event_kind=event.event, service_name=event.payload.service_name)

    async def scan_all(self) -> list[CoverageEvent]:
        """
        Read every persisted event in insertion order.

        Returns:
            All events; an empty list when nothing has been stored

        Raises:
            QueryError: On I/O failure or a row that cannot be decoded
        """
        if self._conn is None:
            raise QueryError("action store is not initialized")

        try:
            cursor = await self._conn.execute(SELECT_SQL)
            rows = await cursor.fetchall()
            await cursor.close()
        except sqlite3.Error as e:
            log.error("store.scan_failed", error=str(e))
            raise QueryError("failed to read events", cause=e) from e

        try:
            return [CoverageEvent.from_row(row) for row in rows]
        except ValidationError as e:
            log.error("store.decode_failed", error=str(e))
            raise QueryError("stored event could not be decoded", cause=e) from e

    async def health_check(self) -> bool:
        """Return True if the connection answers a trivial query."""
        if self._conn is None:
            return False
        try:
            cursor = await self._conn.execute("SELECT 1")
            await cursor.fetchone()
            await cursor.close()
            return True
        except sqlite3.Error as e:
            log.warning("store.health_check_failed", error=str(e))
            return False

    async def close(self) -> None:
        """Close the connection. Calling it twice is harmless."""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            log.info("store.closed", db_name=self.db_name)

    async def _rollback(self) -> None:
        try:
            await self._conn.rollback()
        except sqlite3.Error as e:
            log.warning("store.rollback_failed", error=str(e))
