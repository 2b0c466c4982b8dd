"""
Client notification port.

The reminder evaluator only talks to `NotificationPort`. The server-side
implementation queues notifications in a bounded outbox that the browser
drains (GET /api/notifications) and displays through the Web Notification
API; the browser also reports its permission state back so `show` can stay
a no-op until the user has granted permission.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Deque, List

from .models import utcnow
from .schemas import PermissionState

logger = logging.getLogger(__name__)

DEFAULT_REMINDER_BODY = "Reminder is due!"


def reminder_tag(reminder_id: int) -> str:
    """Deduplication tag for a reminder's notification."""
    return f"reminder-{reminder_id}"


@dataclass(frozen=True)
class Notification:
    title: str
    body: str
    tag: str
    created_at: datetime = field(default_factory=utcnow)


# PUBLIC_INTERFACE
class NotificationPort(ABC):
    """Capability-based interface for surfacing a notification to the user."""

    @abstractmethod
    def is_supported(self) -> bool:
        """Whether the client can display notifications at all."""

    @abstractmethod
    def permission_state(self) -> PermissionState:
        """Current permission: 'default', 'granted' or 'denied'."""

    @abstractmethod
    async def request_permission(self) -> PermissionState:
        """Ask for permission and return the resulting state."""

    @abstractmethod
    def show(self, title: str, body: str, tag: str) -> None:
        """
        Fire-and-forget display. No-op when unsupported or permission is not
        granted; there is no delivery confirmation.
        """


# PUBLIC_INTERFACE
class OutboxNotificationPort(NotificationPort):
    """
    Queues notifications for the browser to pick up.

    The outbox holds at most `maxsize` entries; the oldest is dropped when it
    overflows. Showing a notification whose tag is already queued replaces the
    queued one, the same collapse the browser applies to tagged notifications.
    """

    def __init__(self, maxsize: int = 100, permission: PermissionState = "default") -> None:
        self._lock = Lock()
        self._outbox: Deque[Notification] = deque(maxlen=maxsize)
        self._permission: PermissionState = permission

    def is_supported(self) -> bool:
        return True

    def permission_state(self) -> PermissionState:
        return self._permission

    def set_permission(self, permission: PermissionState) -> None:
        """Record the permission state reported by the client."""
        if permission != self._permission:
            logger.info("notification permission changed: %s -> %s", self._permission, permission)
        self._permission = permission

    async def request_permission(self) -> PermissionState:
        # The prompt happens in the browser; the server only knows what was reported.
        return self._permission

    def show(self, title: str, body: str, tag: str) -> None:
        if not self.is_supported() or self._permission != "granted":
            logger.debug("notification dropped (permission=%s): tag=%s", self._permission, tag)
            return
        with self._lock:
            kept = [n for n in self._outbox if n.tag != tag]
            if len(kept) != len(self._outbox):
                self._outbox.clear()
                self._outbox.extend(kept)
            self._outbox.append(Notification(title=title, body=body, tag=tag))

    def pending(self) -> List[Notification]:
        with self._lock:
            return list(self._outbox)

    def drain(self) -> List[Notification]:
        """Return and remove every queued notification, oldest first."""
        with self._lock:
            items = list(self._outbox)
            self._outbox.clear()
            return items
