"""
SQLite Card Store: infrastructure adapter for a local SQLite file.

Implements CardStore on top of the standard-library sqlite3 driver.
Cards are stored as JSON documents keyed by composite id, with the
scope key and due date broken out into indexed columns.
"""

import json
import logging
import sqlite3
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from lexicard.domain.constants import SQLITE_TIMEOUT
from lexicard.domain.exceptions import StorageError
from lexicard.domain.models import Card
from lexicard.domain.ports import CardStore

logger = logging.getLogger(__name__)


def _utc_iso(moment: datetime) -> str:
    # Index column: one offset so text order matches time order
    if moment.tzinfo is None:
        return moment.isoformat()
    return moment.astimezone(timezone.utc).isoformat()


SCHEMA = """
CREATE TABLE IF NOT EXISTS cards (
    id TEXT PRIMARY KEY,
    scope_key TEXT NOT NULL,
    word TEXT NOT NULL,
    due_date TEXT NOT NULL,
    data JSON NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_cards_scope_key ON cards(scope_key);
CREATE INDEX IF NOT EXISTS idx_cards_due_date ON cards(due_date);

CREATE TABLE IF NOT EXISTS leitner_cards (
    word TEXT PRIMARY KEY,
    data JSON NOT NULL
);
"""


class SqliteCardStore(CardStore):
    """
    Card store backed by a SQLite database file (or ":memory:").

    The schema version lives in `PRAGMA user_version`. The legacy
    `leitner_cards` table is created empty when missing and is never
    written by migrations.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path) if str(db_path) != ":memory:" else db_path
        self._conn: sqlite3.Connection | None = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._close()

    def open(self) -> "SqliteCardStore":
        if self._conn is not None:
            return self
        try:
            if isinstance(self.db_path, Path):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(self.db_path), timeout=SQLITE_TIMEOUT, check_same_thread=False
            )
            conn.row_factory = sqlite3.Row
            if isinstance(self.db_path, Path):
                conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(SCHEMA)
            conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"Cannot open card store at {self.db_path}: {e}") from e
        self._conn = conn
        logger.debug(f"Opened card store {self.db_path}")
        return self

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self.open()
        assert self._conn is not None
        return self._conn

    def _execute(self, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
        try:
            return self.conn.execute(sql, tuple(params)).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Card store query failed: {e}") from e

    def _write(self, sql: str, params: Iterable[Any] = ()) -> None:
        try:
            with self.conn:
                self.conn.execute(sql, tuple(params))
        except sqlite3.Error as e:
            raise StorageError(f"Card store write failed: {e}") from e

    @staticmethod
    def _row_to_card(row: sqlite3.Row) -> Card:
        return Card.from_dict(json.loads(row["data"]))

    async def get(self, card_id: str) -> Card | None:
        rows = self._execute("SELECT data FROM cards WHERE id = ?", (card_id,))
        return self._row_to_card(rows[0]) if rows else None

    async def get_all(self) -> list[Card]:
        return [self._row_to_card(r) for r in self._execute("SELECT data FROM cards")]

    async def get_by_scope(self, scope_keys: Iterable[str]) -> list[Card]:
        keys = list(dict.fromkeys(scope_keys))
        if not keys:
            return []
        placeholders = ",".join("?" * len(keys))
        rows = self._execute(f"SELECT data FROM cards WHERE scope_key IN ({placeholders})", keys)
        return [self._row_to_card(r) for r in rows]

    async def upsert(self, card: Card) -> None:
        data = card.to_dict()
        self._write(
            """
            INSERT INTO cards (id, scope_key, word, due_date, data) VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                scope_key = excluded.scope_key,
                word = excluded.word,
                due_date = excluded.due_date,
                data = excluded.data
            """,
            (card.id, card.scope_key, card.word, _utc_iso(card.due_date), json.dumps(data)),
        )

    async def clear(self) -> None:
        self._write("DELETE FROM cards")

    async def get_schema_version(self) -> int:
        rows = self._execute("PRAGMA user_version")
        return int(rows[0][0]) if rows else 0

    async def set_schema_version(self, version: int) -> None:
        # PRAGMA does not accept bound parameters
        self._write(f"PRAGMA user_version = {int(version)}")

    async def get_legacy_records(self) -> list[dict[str, Any]]:
        records = []
        for row in self._execute("SELECT word, data FROM leitner_cards"):
            try:
                record = json.loads(row["data"])
            except (TypeError, ValueError) as e:
                logger.warning(f"Unreadable legacy record {row['word']!r}: {e}")
                continue
            if isinstance(record, dict):
                records.append(record)
        return records

    async def add_legacy_records(self, records: Iterable[dict[str, Any]]) -> int:
        """Load raw legacy records (e.g. a browser export) into the legacy table."""
        count = 0
        for record in records:
            key = record.get("word") or f"__missing_{count}"
            self._write(
                "INSERT OR REPLACE INTO leitner_cards (word, data) VALUES (?, ?)",
                (str(key), json.dumps(record)),
            )
            count += 1
        return count

    def _close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    async def close(self) -> None:
        self._close()
