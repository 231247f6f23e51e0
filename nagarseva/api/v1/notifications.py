"""Staff notification inbox (in-memory sink only)."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from nagarseva.models.enums import NotificationType
from nagarseva.services.notifications import InMemoryNotificationSink, Notification

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


class InboxResponse(BaseModel):
    unread_count: int
    notifications: list[Notification]


def _inbox(request: Request) -> InMemoryNotificationSink:
    sink = getattr(request.app.state, "notification_sink", None)
    if not isinstance(sink, InMemoryNotificationSink):
        raise HTTPException(status_code=404, detail="Notification inbox not enabled")
    return sink


@router.get("", response_model=InboxResponse)
async def list_notifications(
    request: Request,
    type: NotificationType | None = None,
    unread_only: bool = False,
) -> InboxResponse:
    inbox = _inbox(request)
    items = inbox.of_type(type) if type is not None else list(inbox.notifications)
    if unread_only:
        items = [n for n in items if not n.read]
    return InboxResponse(unread_count=inbox.unread_count, notifications=items)


@router.post("/{notification_id}/read")
async def mark_read(notification_id: str, request: Request) -> dict:
    if not _inbox(request).mark_as_read(notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"notification_id": notification_id, "read": True}


@router.post("/read-all")
async def mark_all_read(request: Request) -> dict:
    inbox = _inbox(request)
    inbox.mark_all_as_read()
    return {"unread_count": inbox.unread_count}
