from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from threading import RLock
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from .config import AppConfig
from .errors import NotFoundError
from .models import (
    ExpenseEntity,
    NoteEntity,
    ReminderEntity,
    SettingsEntity,
    default_settings,
    is_due,
    utcnow,
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

E = TypeVar("E")
C = TypeVar("C")
U = TypeVar("U")

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class NoteQuery:
    """
    Optional filters for listing notes.
    """
    search: Optional[str] = None  # case-insensitive match on title, content or category
    category: Optional[str] = None


# PUBLIC_INTERFACE
class Repository(ABC, Generic[E, C, U]):
    """CRUD contract shared by notes, expenses and reminders."""

    kind: str = "entity"

    @abstractmethod
    def list(self) -> List[E]:
        """Return every entity of this kind in the kind's natural order."""

    @abstractmethod
    def get(self, entity_id: int) -> Optional[E]:
        """Return an entity by id, or None if not found."""

    @abstractmethod
    def create(self, data: C) -> E:
        """Assign an id, stamp timestamps, apply defaults, store and return the entity."""

    @abstractmethod
    def update(self, entity_id: int, data: U) -> E:
        """Merge provided fields onto an entity. Raises NotFoundError if absent."""

    @abstractmethod
    def delete(self, entity_id: int) -> None:
        """Remove an entity. Raises NotFoundError if absent."""

    @abstractmethod
    def clear(self) -> int:
        """Remove every entity of this kind in one step; return how many were removed. Ids are not reused."""


# PUBLIC_INTERFACE
class NoteRepository(Repository[NoteEntity, NoteCreate, NoteUpdate]):
    """Notes, newest first by created_at."""

    kind = "note"

    @abstractmethod
    def search(self, query: NoteQuery) -> List[NoteEntity]:
        """Return notes matching the query, newest first."""


# PUBLIC_INTERFACE
class ExpenseRepository(Repository[ExpenseEntity, ExpenseCreate, ExpenseUpdate]):
    """Expenses, most recent `date` first."""

    kind = "expense"

    @abstractmethod
    def list_by_date_range(self, start: datetime, end: datetime) -> List[ExpenseEntity]:
        """Return expenses with start <= date <= end, most recent first."""


# PUBLIC_INTERFACE
class ReminderRepository(Repository[ReminderEntity, ReminderCreate, ReminderUpdate]):
    """Reminders, earliest scheduled_date first."""

    kind = "reminder"

    @abstractmethod
    def list_pending(self, now: Optional[datetime] = None) -> List[ReminderEntity]:
        """
        Return reminders that are not completed, not yet notified and whose
        scheduled_date <= now, earliest first.
        """


# PUBLIC_INTERFACE
class SettingsRepository(ABC):
    """Access to the singleton settings record."""

    @abstractmethod
    def get(self) -> SettingsEntity:
        """Return the settings, creating the default record on first access."""

    @abstractmethod
    def update(self, data: SettingsUpdate) -> SettingsEntity:
        """Merge provided fields and bump updated_at."""


# PUBLIC_INTERFACE
@dataclass
class EntityStore:
    """
    The storage facade handed to the HTTP layer and the reminder evaluator.
    """

    notes: NoteRepository
    expenses: ExpenseRepository
    reminders: ReminderRepository
    settings: SettingsRepository
    backend: str = "memory"


def note_matches(note: NoteEntity, query: NoteQuery) -> bool:
    if query.category is not None and note["category"] != query.category:
        return False
    if query.search:
        s = query.search.lower()
        return (
            s in note["title"].lower()
            or s in note["content"].lower()
            or s in note["category"].lower()
        )
    return True


class _InMemoryCollection(Generic[E]):
    """
    Thread-safe dict of entities of one kind with its own id counter.
    Entities handed out are always copies.
    """

    kind = "entity"

    def __init__(self, lock: RLock, clock: Clock) -> None:
        self._lock = lock
        self._clock = clock
        self._items: Dict[int, E] = {}
        self._next_id = 1

    def _allocate_id(self) -> int:
        with self._lock:
            i = self._next_id
            self._next_id += 1
            return i

    def _insert(self, build: Callable[[int, datetime], E]) -> E:
        now = self._clock()
        with self._lock:
            entity = build(self._allocate_id(), now)
            self._items[entity["id"]] = entity  # type: ignore[index]
            return entity.copy()  # type: ignore[attr-defined]

    def _get(self, entity_id: int) -> Optional[E]:
        with self._lock:
            item = self._items.get(entity_id)
            return None if item is None else item.copy()  # type: ignore[attr-defined]

    def _merge(self, entity_id: int, patch: Dict[str, Any], touch: bool = False) -> E:
        with self._lock:
            existing = self._items.get(entity_id)
            if existing is None:
                raise NotFoundError(self.kind, entity_id)
            updated = existing.copy()  # type: ignore[attr-defined]
            updated.update(patch)
            if touch:
                updated["updated_at"] = max(self._clock(), existing["created_at"])  # type: ignore[index]
            self._items[entity_id] = updated
            return updated.copy()

    def _delete(self, entity_id: int) -> None:
        with self._lock:
            if self._items.pop(entity_id, None) is None:
                raise NotFoundError(self.kind, entity_id)

    def _clear(self) -> int:
        with self._lock:
            removed = len(self._items)
            self._items.clear()
            return removed

    def _sorted(self, key: Callable[[E], Any], reverse: bool, pred: Callable[[E], bool] = lambda _: True) -> List[E]:
        with self._lock:
            items = [t for t in self._items.values() if pred(t)]
            # id as tie-breaker keeps the order stable for equal timestamps
            items.sort(key=lambda t: (key(t), t["id"]), reverse=reverse)  # type: ignore[index]
            return [t.copy() for t in items]  # type: ignore[attr-defined]


class InMemoryNoteRepository(_InMemoryCollection[NoteEntity], NoteRepository):
    kind = "note"

    def list(self) -> List[NoteEntity]:
        return self._sorted(lambda n: n["created_at"], reverse=True)

    def search(self, query: NoteQuery) -> List[NoteEntity]:
        return self._sorted(lambda n: n["created_at"], reverse=True, pred=lambda n: note_matches(n, query))

    def get(self, entity_id: int) -> Optional[NoteEntity]:
        return self._get(entity_id)

    def create(self, data: NoteCreate) -> NoteEntity:
        def build(new_id: int, now: datetime) -> NoteEntity:
            return {
                "id": new_id,
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

        return self._insert(build)

    def update(self, entity_id: int, data: NoteUpdate) -> NoteEntity:
        return self._merge(entity_id, data.to_patch(), touch=True)

    def delete(self, entity_id: int) -> None:
        self._delete(entity_id)

    def clear(self) -> int:
        return self._clear()


class InMemoryExpenseRepository(_InMemoryCollection[ExpenseEntity], ExpenseRepository):
    kind = "expense"

    def list(self) -> List[ExpenseEntity]:
        return self._sorted(lambda e: e["date"], reverse=True)

    def list_by_date_range(self, start: datetime, end: datetime) -> List[ExpenseEntity]:
        return self._sorted(lambda e: e["date"], reverse=True, pred=lambda e: start <= e["date"] <= end)

    def get(self, entity_id: int) -> Optional[ExpenseEntity]:
        return self._get(entity_id)

    def create(self, data: ExpenseCreate) -> ExpenseEntity:
        def build(new_id: int, now: datetime) -> ExpenseEntity:
            return {
                "id": new_id,
                "description": data.description,
                "amount": data.amount,
                "currency": data.currency,
                "category": data.category,
                "date": data.date or now,
                "created_at": now,
            }

        return self._insert(build)

    def update(self, entity_id: int, data: ExpenseUpdate) -> ExpenseEntity:
        return self._merge(entity_id, data.to_patch())

    def delete(self, entity_id: int) -> None:
        self._delete(entity_id)

    def clear(self) -> int:
        return self._clear()


class InMemoryReminderRepository(_InMemoryCollection[ReminderEntity], ReminderRepository):
    kind = "reminder"

    def list(self) -> List[ReminderEntity]:
        return self._sorted(lambda r: r["scheduled_date"], reverse=False)

    def list_pending(self, now: Optional[datetime] = None) -> List[ReminderEntity]:
        at = now or self._clock()
        return self._sorted(lambda r: r["scheduled_date"], reverse=False, pred=lambda r: is_due(r, at))

    def get(self, entity_id: int) -> Optional[ReminderEntity]:
        return self._get(entity_id)

    def create(self, data: ReminderCreate) -> ReminderEntity:
        def build(new_id: int, now: datetime) -> ReminderEntity:
            return {
                "id": new_id,
                "title": data.title,
                "description": data.description,
                "scheduled_date": data.scheduled_date,
                "priority": data.priority,
                "is_completed": data.is_completed,
                "notification_sent": data.notification_sent,
                "created_at": now,
            }

        return self._insert(build)

    def update(self, entity_id: int, data: ReminderUpdate) -> ReminderEntity:
        return self._merge(entity_id, data.to_patch())

    def delete(self, entity_id: int) -> None:
        self._delete(entity_id)

    def clear(self) -> int:
        return self._clear()


class InMemorySettingsRepository(SettingsRepository):
    def __init__(self, lock: RLock, clock: Clock) -> None:
        self._lock = lock
        self._clock = clock
        self._settings: Optional[SettingsEntity] = None

    def _current(self) -> SettingsEntity:
        if self._settings is None:
            self._settings = default_settings(self._clock())
        return self._settings

    def get(self) -> SettingsEntity:
        with self._lock:
            return self._current().copy()

    def update(self, data: SettingsUpdate) -> SettingsEntity:
        with self._lock:
            updated = self._current().copy()
            updated.update(data.to_patch())  # type: ignore[typeddict-item]
            updated["updated_at"] = self._clock()
            self._settings = updated
            return updated.copy()


# PUBLIC_INTERFACE
def create_memory_store(clock: Clock = utcnow) -> EntityStore:
    """
    Build an in-memory store. All kinds share one lock; each kind has its own
    id counter.
    """
    lock = RLock()
    return EntityStore(
        notes=InMemoryNoteRepository(lock, clock),
        expenses=InMemoryExpenseRepository(lock, clock),
        reminders=InMemoryReminderRepository(lock, clock),
        settings=InMemorySettingsRepository(lock, clock),
        backend="memory",
    )


# PUBLIC_INTERFACE
def build_store(config: AppConfig) -> EntityStore:
    """
    Factory returning the configured store.
    - memory: in-process dictionaries
    - sqlite: SQLite database at config.sqlite_db_path
    """
    if config.persistence_backend == "sqlite":
        from .db import create_sqlite_store

        logger.info("using sqlite store at %s", config.sqlite_db_path)
        return create_sqlite_store(config.sqlite_db_path)
    logger.info("using in-memory store")
    return create_memory_store()
