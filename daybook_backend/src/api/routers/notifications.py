from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends

from ..dependencies import get_outbox
from ..notifications import OutboxNotificationPort
from ..schemas import NotificationOut, PermissionPayload

router = APIRouter(
    prefix="/api/notifications",
    tags=["notifications"],
)


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[NotificationOut],
    summary="Take Queued Notifications",
    description=(
        "Return every notification waiting to be shown, oldest first, and remove them "
        "from the queue. Each carries a tag (reminder-<id>) for the browser to collapse duplicates."
    ),
)
def take_notifications(outbox: OutboxNotificationPort = Depends(get_outbox)) -> List[NotificationOut]:
    return [
        NotificationOut(title=n.title, body=n.body, tag=n.tag, created_at=n.created_at)
        for n in outbox.drain()
    ]


# PUBLIC_INTERFACE
@router.get("/permission", response_model=PermissionPayload, summary="Get Notification Permission")
def get_permission(outbox: OutboxNotificationPort = Depends(get_outbox)) -> PermissionPayload:
    return PermissionPayload(permission=outbox.permission_state())


# PUBLIC_INTERFACE
@router.put(
    "/permission",
    response_model=PermissionPayload,
    summary="Report Notification Permission",
    description="Record the Notification.permission value reported by the browser.",
)
def set_permission(
    payload: PermissionPayload, outbox: OutboxNotificationPort = Depends(get_outbox)
) -> PermissionPayload:
    outbox.set_permission(payload.permission)
    return PermissionPayload(permission=outbox.permission_state())
