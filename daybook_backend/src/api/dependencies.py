from __future__ import annotations

from fastapi import HTTPException, Request, status

from .evaluator import ReminderEvaluator
from .notifications import OutboxNotificationPort
from .repositories import EntityStore


# PUBLIC_INTERFACE
def get_store(request: Request) -> EntityStore:
    """Return the store the application was built with."""
    return request.app.state.store


# PUBLIC_INTERFACE
def get_evaluator(request: Request) -> ReminderEvaluator:
    """Return the application's reminder evaluator."""
    return request.app.state.evaluator


# PUBLIC_INTERFACE
def get_outbox(request: Request) -> OutboxNotificationPort:
    """
    Return the notification outbox. Raises 404 when the application was built
    with a notification port that does not queue for the browser.
    """
    notifier = request.app.state.notifier
    if not isinstance(notifier, OutboxNotificationPort):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification outbox not configured")
    return notifier
