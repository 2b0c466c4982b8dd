from __future__ import annotations

from typing import Any, Dict


class DaybookError(Exception):
    """Base class for errors raised by the storage and reminder layers."""


# PUBLIC_INTERFACE
class NotFoundError(DaybookError, LookupError):
    """
    Raised when an update or delete references an id absent from the store.

    Carries the entity kind ('note', 'expense', 'reminder') and the id so the
    HTTP layer can render a specific message.
    """

    def __init__(self, kind: str, entity_id: int) -> None:
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind.capitalize()} with id {entity_id} not found")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": "NotFound",
            "detail": f"{self.kind.capitalize()} not found",
            "kind": self.kind,
            "id": self.entity_id,
        }


# PUBLIC_INTERFACE
class StorageUnavailableError(DaybookError):
    """
    The storage backend could not complete an operation (locked or missing
    database, I/O failure). Callers may retry; the reminder loop retries on
    its next tick.
    """
