from __future__ import annotations

from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from ..dependencies import get_evaluator, get_store
from ..evaluator import ReminderEvaluator
from ..repositories import EntityStore
from ..schemas import ReminderCreate, ReminderOut, ReminderUpdate, TickReportOut

router = APIRouter(
    prefix="/api/reminders",
    tags=["reminders"],
)


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[ReminderOut],
    summary="List Reminders",
    description="List reminders, earliest scheduled first. Optionally filter by completion status.",
)
def list_reminders(
    completed: Optional[bool] = Query(None, description="Filter by completion status"),
    store: EntityStore = Depends(get_store),
) -> List[ReminderOut]:
    items = store.reminders.list()
    if completed is not None:
        items = [r for r in items if r["is_completed"] == completed]
    return [ReminderOut.model_validate(it) for it in items]


# PUBLIC_INTERFACE
@router.get(
    "/pending",
    response_model=List[ReminderOut],
    summary="List Due Reminders",
    description="Reminders that are due now and have been neither completed nor notified.",
)
def list_pending_reminders(store: EntityStore = Depends(get_store)) -> List[ReminderOut]:
    return [ReminderOut.model_validate(it) for it in store.reminders.list_pending()]


# PUBLIC_INTERFACE
@router.post(
    "/check",
    response_model=TickReportOut,
    summary="Check Reminders Now",
    description="Run one reminder check immediately instead of waiting for the next scheduled one.",
)
async def check_reminders(evaluator: ReminderEvaluator = Depends(get_evaluator)) -> TickReportOut:
    report = await evaluator.run_tick()
    return TickReportOut.model_validate(asdict(report))


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=ReminderOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Reminder",
    responses={
        201: {"description": "Reminder created successfully"},
        422: {"description": "Validation error"},
    },
)
def create_reminder(payload: ReminderCreate, store: EntityStore = Depends(get_store)) -> ReminderOut:
    """
    Create a reminder. Priority defaults to 'medium'.
    """
    return ReminderOut.model_validate(store.reminders.create(payload))


# PUBLIC_INTERFACE
@router.delete(
    "/all",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete All Reminders",
    description="Remove every reminder. Ids of removed reminders are not handed out again.",
    responses={204: {"description": "All reminders deleted"}},
)
def delete_all_reminders(store: EntityStore = Depends(get_store)) -> Response:
    store.reminders.clear()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# PUBLIC_INTERFACE
@router.get(
    "/{reminder_id}",
    response_model=ReminderOut,
    summary="Get Reminder",
    responses={404: {"description": "Reminder not found"}},
)
def get_reminder(reminder_id: int, store: EntityStore = Depends(get_store)) -> ReminderOut:
    item = store.reminders.get(reminder_id)
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reminder not found")
    return ReminderOut.model_validate(item)


# PUBLIC_INTERFACE
@router.put(
    "/{reminder_id}",
    response_model=ReminderOut,
    summary="Update Reminder",
    description=(
        "Merge the provided fields onto the reminder. Rescheduling or restoring a reminder "
        "does not reset notificationSent; send it explicitly to re-arm the notification."
    ),
    responses={404: {"description": "Reminder not found"}},
)
def update_reminder(
    reminder_id: int, payload: ReminderUpdate, store: EntityStore = Depends(get_store)
) -> ReminderOut:
    return ReminderOut.model_validate(store.reminders.update(reminder_id, payload))


# PUBLIC_INTERFACE
@router.delete(
    "/{reminder_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Reminder",
    responses={
        204: {"description": "Reminder deleted"},
        404: {"description": "Reminder not found"},
    },
)
def delete_reminder(reminder_id: int, store: EntityStore = Depends(get_store)) -> Response:
    store.reminders.delete(reminder_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
