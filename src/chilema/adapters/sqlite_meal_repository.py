"""SQLite-backed meal record store."""

import logging
import sqlite3
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from chilema.config import Settings
from chilema.domain.meals import MealRecord, MealType
from chilema.errors import StoreUnavailableError, TransactionError
from chilema.services.meals import MealRepository

SCHEMA_VERSION = 1

_logger = logging.getLogger(__name__)

_COLUMNS = "id, timestamp, meal_type, image, text"

_UPSERT = (
    f"INSERT INTO meals ({_COLUMNS}) VALUES (?, ?, ?, ?, ?) "
    "ON CONFLICT(id) DO UPDATE SET "
    "timestamp = excluded.timestamp, "
    "meal_type = excluded.meal_type, "
    "image = excluded.image, "
    "text = excluded.text"
)


@dataclass
class SqliteMealRepository(MealRepository):
    """SQLite implementation of the meal store.

    The connection is opened on first use and reused for the lifetime of the
    repository. Every operation runs as a single SQLite transaction; the
    lock serializes callers sharing the connection across threads.
    """

    db_path: Path
    storage_enabled: bool = True
    _connection: sqlite3.Connection | None = field(
        default=None, init=False, repr=False
    )
    _open_error: str | None = field(default=None, init=False, repr=False)
    _lock: threading.RLock = field(
        default_factory=threading.RLock, init=False, repr=False
    )

    @classmethod
    def create(cls, settings: Settings) -> "SqliteMealRepository":
        """Create a repository for the configured database location."""
        return cls(db_path=settings.db_path, storage_enabled=settings.storage_enabled)

    def put(self, record: MealRecord) -> None:
        """Insert or overwrite a record by id."""
        with self._transaction() as conn:
            conn.execute(_UPSERT, _to_row(record))

    def get(self, record_id: str) -> MealRecord | None:
        """Return a record by id, if present."""
        with self._reading() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM meals WHERE id = ?", (record_id,)
            ).fetchone()
        if row is None:
            return None
        return _from_row(row)

    def list_descending(self, limit: int) -> list[MealRecord]:
        """Return up to ``limit`` records, newest timestamp first.

        Equal timestamps come back most recently inserted first; an upsert
        keeps the row's original position.
        """
        if limit <= 0:
            return []
        with self._reading() as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM meals "
                "ORDER BY timestamp DESC, rowid DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [_from_row(row) for row in rows]

    def delete(self, record_id: str) -> None:
        """Delete a record; absent ids are ignored."""
        with self._transaction() as conn:
            conn.execute("DELETE FROM meals WHERE id = ?", (record_id,))

    def clear(self) -> None:
        """Delete every record."""
        with self._transaction() as conn:
            conn.execute("DELETE FROM meals")

    def write_batch(self, records: Iterable[MealRecord], *, clear_first: bool) -> int:
        """Upsert records in one transaction, optionally clearing first."""
        written = 0
        with self._transaction() as conn:
            if clear_first:
                conn.execute("DELETE FROM meals")
            for record in records:
                conn.execute(_UPSERT, _to_row(record))
                written += 1
        return written

    def close(self) -> None:
        """Close the underlying connection if it was opened."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    def _connect(self) -> sqlite3.Connection:
        with self._lock:
            if self._connection is not None:
                return self._connection
            if self._open_error is not None:
                raise StoreUnavailableError(self._open_error)
            try:
                self._connection = _open_database(self.db_path, self.storage_enabled)
            except StoreUnavailableError as exc:
                self._open_error = str(exc)
                raise
            return self._connection

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            conn = self._connect()
            try:
                conn.execute("BEGIN IMMEDIATE")
                yield conn
                conn.execute("COMMIT")
            except (sqlite3.Error, OverflowError) as exc:
                _rollback(conn)
                raise TransactionError(f"Meal store write aborted: {exc}") from exc
            except BaseException:
                _rollback(conn)
                raise

    @contextmanager
    def _reading(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            conn = self._connect()
            try:
                yield conn
            except (sqlite3.Error, OverflowError) as exc:
                raise TransactionError(f"Meal store read failed: {exc}") from exc


def _open_database(db_path: Path, storage_enabled: bool) -> sqlite3.Connection:
    if not storage_enabled:
        raise StoreUnavailableError("Durable storage is disabled in this context")
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            str(db_path), check_same_thread=False, isolation_level=None
        )
    except (OSError, sqlite3.Error) as exc:
        raise StoreUnavailableError(f"Cannot open meal store at {db_path}") from exc
    conn.row_factory = sqlite3.Row
    try:
        _ensure_schema(conn)
    except StoreUnavailableError:
        conn.close()
        raise
    except sqlite3.Error as exc:
        conn.close()
        raise StoreUnavailableError(f"Cannot open meal store at {db_path}") from exc
    _logger.info("Meal store opened: path=%s version=%s", db_path, SCHEMA_VERSION)
    return conn


def _ensure_schema(conn: sqlite3.Connection) -> None:
    version = conn.execute("PRAGMA user_version").fetchone()[0]
    if version > SCHEMA_VERSION:
        raise StoreUnavailableError(
            f"Meal store was written by a newer version ({version})"
        )
    if version == SCHEMA_VERSION:
        return
    _logger.info("Meal store setup: version %s -> %s", version, SCHEMA_VERSION)
    conn.execute("BEGIN IMMEDIATE")
    try:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS meals (
                id TEXT PRIMARY KEY,
                timestamp INTEGER NOT NULL,
                meal_type TEXT NOT NULL,
                image TEXT,
                text TEXT
            )
            """
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS meals_by_timestamp ON meals(timestamp)"
        )
        conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        conn.execute("COMMIT")
    except sqlite3.Error:
        _rollback(conn)
        raise


def _rollback(conn: sqlite3.Connection) -> None:
    if conn.in_transaction:
        conn.execute("ROLLBACK")


def _to_row(record: MealRecord) -> tuple[object, ...]:
    return (
        record.id,
        record.timestamp,
        record.meal_type.value,
        record.image,
        record.text,
    )


def _from_row(row: sqlite3.Row) -> MealRecord:
    return MealRecord(
        id=row["id"],
        timestamp=int(row["timestamp"]),
        meal_type=MealType(row["meal_type"]),
        image=row["image"],
        text=row["text"],
    )
