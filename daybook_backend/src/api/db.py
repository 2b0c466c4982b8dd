from __future__ import annotations

import logging
import os
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Generator, List, Mapping, Optional, Sequence, Tuple

from .errors import NotFoundError, StorageUnavailableError
from .models import (
    SETTINGS_ID,
    ExpenseEntity,
    NoteEntity,
    ReminderEntity,
    SettingsEntity,
    default_settings,
    utcnow,
)
from .repositories import (
    Clock,
    EntityStore,
    ExpenseRepository,
    NoteQuery,
    NoteRepository,
    ReminderRepository,
    SettingsRepository,
    note_matches,
)
from .schemas import (
    ExpenseCreate,
    ExpenseUpdate,
    NoteCreate,
    NoteUpdate,
    ReminderCreate,
    ReminderUpdate,
    SettingsUpdate,
)

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS notes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        content TEXT NOT NULL,
        category TEXT NOT NULL DEFAULT 'general',
        type TEXT NOT NULL DEFAULT 'plain',
        is_voice_note INTEGER NOT NULL DEFAULT 0,
        reminder_date TEXT NULL,
        is_completed INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS expenses (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        description TEXT NOT NULL,
        amount TEXT NOT NULL,
        currency TEXT NOT NULL DEFAULT 'USD',
        category TEXT NOT NULL,
        date TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS reminders (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        description TEXT NULL,
        scheduled_date TEXT NOT NULL,
        priority TEXT NOT NULL DEFAULT 'medium',
        is_completed INTEGER NOT NULL DEFAULT 0,
        notification_sent INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS settings (
        id INTEGER PRIMARY KEY,
        dark_mode INTEGER NOT NULL DEFAULT 0,
        default_currency TEXT NOT NULL DEFAULT 'USD',
        voice_recognition_enabled INTEGER NOT NULL DEFAULT 1,
        notifications_enabled INTEGER NOT NULL DEFAULT 1,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_notes_created_at ON notes(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_expenses_date ON expenses(date)",
    "CREATE INDEX IF NOT EXISTS idx_reminders_scheduled_date ON reminders(scheduled_date)",
)


def _dt_to_db(value: Optional[datetime]) -> Optional[str]:
    # Fixed-width UTC text so lexical order in SQL matches chronological order
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _dt_from_db(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _to_db(value: Any) -> Any:
    if isinstance(value, datetime):
        return _dt_to_db(value)
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, Decimal):
        return str(value)
    return value


class SQLiteDatabase:
    """
    Owns the database file and hands out one connection per operation.
    Each `connect()` block is a single transaction: committed when the block
    exits cleanly, rolled back otherwise.
    """

    def __init__(self, db_path: str) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._init_db()

    @contextmanager
    def connect(self) -> Generator[sqlite3.Connection, None, None]:
        try:
            conn = sqlite3.connect(self._db_path)
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"cannot open database: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.OperationalError as e:
            conn.rollback()
            logger.warning("sqlite operation failed: %s", e)
            raise StorageUnavailableError(str(e)) from e
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self.connect() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)


class _SQLiteTable(ABC):
    """Shared row plumbing for one entity table."""

    kind = "entity"
    table = ""
    columns: Tuple[str, ...] = ()
    order_sql = "ORDER BY id"

    def __init__(self, db: SQLiteDatabase, clock: Clock) -> None:
        self._db = db
        self._clock = clock

    @abstractmethod
    def _row_to_entity(self, row: sqlite3.Row) -> Any:
        """Map a row of this table to its entity dict."""

    def _fetch(self, conn: sqlite3.Connection, entity_id: int) -> Optional[sqlite3.Row]:
        return conn.execute(f"SELECT * FROM {self.table} WHERE id = ?", (entity_id,)).fetchone()

    def _select(self, where_sql: str = "", params: Sequence[Any] = ()) -> List[Any]:
        with self._db.connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM {self.table} {where_sql} {self.order_sql}", list(params)
            ).fetchall()
            return [self._row_to_entity(r) for r in rows]

    def _get(self, entity_id: int) -> Optional[Any]:
        with self._db.connect() as conn:
            row = self._fetch(conn, entity_id)
            return self._row_to_entity(row) if row else None

    def _insert(self, values: Mapping[str, Any]) -> Any:
        cols = list(values)
        placeholders = ", ".join("?" for _ in cols)
        with self._db.connect() as conn:
            cur = conn.execute(
                f"INSERT INTO {self.table} ({', '.join(cols)}) VALUES ({placeholders})",
                [_to_db(values[c]) for c in cols],
            )
            row = self._fetch(conn, int(cur.lastrowid))
            assert row is not None
            return self._row_to_entity(row)

    def _update(
        self,
        entity_id: int,
        patch: Dict[str, Any],
        extra: Optional[Callable[[sqlite3.Row], Dict[str, Any]]] = None,
    ) -> Any:
        with self._db.connect() as conn:
            row = self._fetch(conn, entity_id)
            if row is None:
                raise NotFoundError(self.kind, entity_id)
            values = {k: v for k, v in patch.items() if k in self.columns}
            if extra is not None:
                values.update(extra(row))
            if values:
                assignments = ", ".join(f"{c} = ?" for c in values)
                conn.execute(
                    f"UPDATE {self.table} SET {assignments} WHERE id = ?",
                    [*(_to_db(v) for v in values.values()), entity_id],
                )
                row = self._fetch(conn, entity_id)
                assert row is not None
            return self._row_to_entity(row)

    def _delete(self, entity_id: int) -> None:
        with self._db.connect() as conn:
            cur = conn.execute(f"DELETE FROM {self.table} WHERE id = ?", (entity_id,))
            if cur.rowcount == 0:
                raise NotFoundError(self.kind, entity_id)

    def _clear(self) -> int:
        with self._db.connect() as conn:
            return conn.execute(f"DELETE FROM {self.table}").rowcount


class SQLiteNoteRepository(_SQLiteTable, NoteRepository):
    kind = "note"
    table = "notes"
    columns = (
        "title", "content", "category", "type", "is_voice_note",
        "reminder_date", "is_completed", "created_at", "updated_at",
    )
    order_sql = "ORDER BY created_at DESC, id DESC"

    def _row_to_entity(self, row: sqlite3.Row) -> NoteEntity:
        return {
            "id": int(row["id"]),
            "title": str(row["title"]),
            "content": str(row["content"]),
            "category": str(row["category"]),
            "type": row["type"],
            "is_voice_note": bool(row["is_voice_note"]),
            "reminder_date": _dt_from_db(row["reminder_date"]),
            "is_completed": bool(row["is_completed"]),
            "created_at": _dt_from_db(row["created_at"]),  # type: ignore
            "updated_at": _dt_from_db(row["updated_at"]),  # type: ignore
        }

    def list(self) -> List[NoteEntity]:
        return self._select()

    def search(self, query: NoteQuery) -> List[NoteEntity]:
        if query.category is not None:
            rows = self._select("WHERE category = ?", (query.category,))
        else:
            rows = self._select()
        # same literal, case-folded substring match as the in-memory store
        return [n for n in rows if note_matches(n, query)]

    def get(self, entity_id: int) -> Optional[NoteEntity]:
        return self._get(entity_id)

    def create(self, data: NoteCreate) -> NoteEntity:
        now = self._clock()
        return self._insert(
            {
                "title": data.title,
                "content": data.content,
                "category": data.category,
                "type": data.type,
                "is_voice_note": data.is_voice_note,
                "reminder_date": data.reminder_date,
                "is_completed": data.is_completed,
                "created_at": now,
                "updated_at": now,
            }
        )

    def update(self, entity_id: int, data: NoteUpdate) -> NoteEntity:
        def touch(row: sqlite3.Row) -> Dict[str, Any]:
            created_at = _dt_from_db(row["created_at"])
            return {"updated_at": max(self._clock(), created_at)}  # type: ignore[type-var]

        return self._update(entity_id, data.to_patch(), extra=touch)

    def delete(self, entity_id: int) -> None:
        self._delete(entity_id)

    def clear(self) -> int:
        return self._clear()


class SQLiteExpenseRepository(_SQLiteTable, ExpenseRepository):
    kind = "expense"
    table = "expenses"
    columns = ("description", "amount", "currency", "category", "date", "created_at")
    order_sql = "ORDER BY date DESC, id DESC"

    def _row_to_entity(self, row: sqlite3.Row) -> ExpenseEntity:
        return {
            "id": int(row["id"]),
            "description": str(row["description"]),
            "amount": Decimal(row["amount"]),
            "currency": str(row["currency"]),
            "category": str(row["category"]),
            "date": _dt_from_db(row["date"]),  # type: ignore
            "created_at": _dt_from_db(row["created_at"]),  # type: ignore
        }

    def list(self) -> List[ExpenseEntity]:
        return self._select()

    def list_by_date_range(self, start: datetime, end: datetime) -> List[ExpenseEntity]:
        return self._select("WHERE date >= ? AND date <= ?", (_dt_to_db(start), _dt_to_db(end)))

    def get(self, entity_id: int) -> Optional[ExpenseEntity]:
        return self._get(entity_id)

    def create(self, data: ExpenseCreate) -> ExpenseEntity:
        now = self._clock()
        return self._insert(
            {
                "description": data.description,
                "amount": data.amount,
                "currency": data.currency,
                "category": data.category,
                "date": data.date or now,
                "created_at": now,
            }
        )

    def update(self, entity_id: int, data: ExpenseUpdate) -> ExpenseEntity:
        return self._update(entity_id, data.to_patch())

    def delete(self, entity_id: int) -> None:
        self._delete(entity_id)

    def clear(self) -> int:
        return self._clear()


class SQLiteReminderRepository(_SQLiteTable, ReminderRepository):
    kind = "reminder"
    table = "reminders"
    columns = (
        "title", "description", "scheduled_date", "priority",
        "is_completed", "notification_sent", "created_at",
    )
    order_sql = "ORDER BY scheduled_date ASC, id ASC"

    def _row_to_entity(self, row: sqlite3.Row) -> ReminderEntity:
        return {
            "id": int(row["id"]),
            "title": str(row["title"]),
            "description": row["description"] if row["description"] is not None else None,
            "scheduled_date": _dt_from_db(row["scheduled_date"]),  # type: ignore
            "priority": row["priority"],
            "is_completed": bool(row["is_completed"]),
            "notification_sent": bool(row["notification_sent"]),
            "created_at": _dt_from_db(row["created_at"]),  # type: ignore
        }

    def list(self) -> List[ReminderEntity]:
        return self._select()

    def list_pending(self, now: Optional[datetime] = None) -> List[ReminderEntity]:
        at = now or self._clock()
        return self._select(
            "WHERE is_completed = 0 AND notification_sent = 0 AND scheduled_date <= ?",
            (_dt_to_db(at),),
        )

    def get(self, entity_id: int) -> Optional[ReminderEntity]:
        return self._get(entity_id)

    def create(self, data: ReminderCreate) -> ReminderEntity:
        return self._insert(
            {
                "title": data.title,
                "description": data.description,
                "scheduled_date": data.scheduled_date,
                "priority": data.priority,
                "is_completed": data.is_completed,
                "notification_sent": data.notification_sent,
                "created_at": self._clock(),
            }
        )

    def update(self, entity_id: int, data: ReminderUpdate) -> ReminderEntity:
        return self._update(entity_id, data.to_patch())

    def delete(self, entity_id: int) -> None:
        self._delete(entity_id)

    def clear(self) -> int:
        return self._clear()


class SQLiteSettingsRepository(SettingsRepository):
    _columns = ("dark_mode", "default_currency", "voice_recognition_enabled", "notifications_enabled")

    def __init__(self, db: SQLiteDatabase, clock: Clock) -> None:
        self._db = db
        self._clock = clock

    def _ensure_row(self, conn: sqlite3.Connection) -> sqlite3.Row:
        defaults = default_settings(self._clock())
        conn.execute(
            """
            INSERT OR IGNORE INTO settings (id, dark_mode, default_currency,
                voice_recognition_enabled, notifications_enabled, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [_to_db(defaults[k]) for k in ("id", *self._columns, "updated_at")],  # type: ignore[literal-required]
        )
        row = conn.execute("SELECT * FROM settings WHERE id = ?", (SETTINGS_ID,)).fetchone()
        assert row is not None
        return row

    def _row_to_entity(self, row: sqlite3.Row) -> SettingsEntity:
        return {
            "id": int(row["id"]),
            "dark_mode": bool(row["dark_mode"]),
            "default_currency": str(row["default_currency"]),
            "voice_recognition_enabled": bool(row["voice_recognition_enabled"]),
            "notifications_enabled": bool(row["notifications_enabled"]),
            "updated_at": _dt_from_db(row["updated_at"]),  # type: ignore
        }

    def get(self) -> SettingsEntity:
        with self._db.connect() as conn:
            return self._row_to_entity(self._ensure_row(conn))

    def update(self, data: SettingsUpdate) -> SettingsEntity:
        values = {k: v for k, v in data.to_patch().items() if k in self._columns}
        values["updated_at"] = self._clock()
        with self._db.connect() as conn:
            self._ensure_row(conn)
            assignments = ", ".join(f"{c} = ?" for c in values)
            conn.execute(
                f"UPDATE settings SET {assignments} WHERE id = ?",
                [*(_to_db(v) for v in values.values()), SETTINGS_ID],
            )
            row = conn.execute("SELECT * FROM settings WHERE id = ?", (SETTINGS_ID,)).fetchone()
            return self._row_to_entity(row)


# PUBLIC_INTERFACE
def create_sqlite_store(db_path: str, clock: Clock = utcnow) -> EntityStore:
    """Build a store whose tables live in the SQLite file at `db_path`."""
    db = SQLiteDatabase(db_path)
    return EntityStore(
        notes=SQLiteNoteRepository(db, clock),
        expenses=SQLiteExpenseRepository(db, clock),
        reminders=SQLiteReminderRepository(db, clock),
        settings=SQLiteSettingsRepository(db, clock),
        backend="sqlite",
    )
