"""
Reminder due-check.

Each tick fetches the due reminders (not completed, not yet notified,
scheduled_date <= now), fires one notification per reminder through the
notification port and then persists notification_sent=True. When the user
has notifications turned off the reminder is still marked as sent, so
re-enabling them does not release a burst of stale alerts.

Firing and marking are two separate steps: a reminder whose mark fails is
fired again on the next tick (at-least-once delivery).
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .models import ReminderEntity, utcnow
from .notifications import DEFAULT_REMINDER_BODY, NotificationPort, reminder_tag
from .repositories import Clock, EntityStore
from .schemas import ReminderUpdate
from .settings_gate import SettingsGate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReminderFailure:
    reminder_id: int
    error: str
    message: str


@dataclass
class TickReport:
    checked: int = 0
    notified: List[int] = field(default_factory=list)
    suppressed: List[int] = field(default_factory=list)
    failures: List[ReminderFailure] = field(default_factory=list)


# PUBLIC_INTERFACE
class ReminderEvaluator:
    """
    Turns due reminders into notifications.

    Ticks are serialized: a tick started while another is running waits for
    it to finish, so the same reminder is never fired twice by overlapping
    scans. Store calls run in a worker thread.
    """

    def __init__(
        self,
        store: EntityStore,
        notifier: NotificationPort,
        gate: Optional[SettingsGate] = None,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._gate = gate or SettingsGate(store.settings)
        self._clock = clock
        self._lock = asyncio.Lock()

    async def run_tick(self, now: Optional[datetime] = None) -> TickReport:
        async with self._lock:
            at = now or self._clock()
            due = await asyncio.to_thread(self._store.reminders.list_pending, at)
            report = TickReport(checked=len(due))
            if not due:
                return report

            enabled = await asyncio.to_thread(self._gate.notifications_enabled)
            for reminder in due:
                try:
                    await self._handle(reminder, enabled)
                except Exception as exc:  # noqa: BLE001
                    logger.exception("reminder %s could not be processed", reminder["id"])
                    report.failures.append(
                        ReminderFailure(reminder_id=reminder["id"], error=type(exc).__name__, message=str(exc))
                    )
                    continue
                if enabled:
                    report.notified.append(reminder["id"])
                else:
                    report.suppressed.append(reminder["id"])
            return report

    async def _handle(self, reminder: ReminderEntity, enabled: bool) -> None:
        if enabled:
            self._notifier.show(
                reminder["title"],
                reminder["description"] or DEFAULT_REMINDER_BODY,
                reminder_tag(reminder["id"]),
            )
            logger.info("reminder %s notified", reminder["id"])
        else:
            logger.info("reminder %s due, notifications disabled", reminder["id"])
        await asyncio.to_thread(
            self._store.reminders.update, reminder["id"], ReminderUpdate(notification_sent=True)
        )
