"""
Dataset persistence for StrikeGuard.

Every table the bot keeps (strikes, banned words, moderation actions) is a
named dataset: a list of JSON records that is read whole and written whole.
Handles:
- SQLite storage with one row per dataset
- In-memory storage for tests and dry runs
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator, Protocol

from strikeguard.utils.logging import get_logger

logger = get_logger(__name__)

Record = dict[str, Any]


class DatasetStore(Protocol):
    """Whole-dataset key-value persistence."""

    def read(self, name: str) -> list[Record]:
        """Return every record of a dataset (empty when it does not exist)."""
        ...

    def write(self, name: str, records: list[Record]) -> None:
        """Replace the records of a dataset."""
        ...


class SqliteDatasetStore:
    """
    SQLite-backed dataset store.

    Each dataset is a single row holding its records as a JSON array, so a
    write is one atomic statement.
    """

    def __init__(self, db_path: str | Path = "data/strikeguard.db") -> None:
        """
        Initialize the store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()
        logger.info("Database initialized at %s", self.db_path)

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Get a database connection with automatic cleanup.

        Commits on success, rolls back and re-raises on failure.

        Yields:
            sqlite3.Connection: Database connection
        """
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.error("Database error: %s", e)
            raise
        finally:
            conn.close()

    def _init_database(self) -> None:
        with self.get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS datasets (
                    name TEXT PRIMARY KEY,
                    records TEXT NOT NULL,
                    updated_at TIMESTAMP
                )
            """)

    def read(self, name: str) -> list[Record]:
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT records FROM datasets WHERE name = ?", (name,)
            ).fetchone()
        if not row:
            return []
        return json.loads(row["records"])

    def write(self, name: str, records: list[Record]) -> None:
        payload = json.dumps(records, ensure_ascii=False)
        with self.get_connection() as conn:
            conn.execute(
                """
                INSERT INTO datasets (name, records, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    records = excluded.records,
                    updated_at = excluded.updated_at
                """,
                (name, payload, datetime.now(timezone.utc).isoformat()),
            )
        logger.debug("Wrote %d records to dataset %s", len(records), name)

class MemoryDatasetStore:
    """Dataset store kept in process memory. Records are copied in and out."""

    def __init__(self, initial: dict[str, list[Record]] | None = None) -> None:
        self._data: dict[str, str] = {}
        for name, records in (initial or {}).items():
            self.write(name, records)

    def read(self, name: str) -> list[Record]:
        return json.loads(self._data.get(name, "[]"))

    def write(self, name: str, records: list[Record]) -> None:
        self._data[name] = json.dumps(records, ensure_ascii=False)
