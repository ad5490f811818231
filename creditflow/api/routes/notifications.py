"""
Notification API Routes - the caller's in-app notices
"""
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.api.dependencies.auth import get_current_actor
from creditflow.api.routes.schemas import (
    MarkReadRequest,
    MarkReadResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from creditflow.db.database import get_db
from creditflow.domain.roles import Actor
from creditflow.domain.services.notification_service import NotificationSender

router = APIRouter()


@router.get(
    "",
    response_model=List[NotificationResponse],
    summary="My notifications",
    description="Newest first.",
)
async def list_notifications(
    limit: int = Query(default=50, ge=1, le=200),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await NotificationSender(db).list_for_user(actor.user_id, limit)


@router.get("/unread-count", response_model=UnreadCountResponse, summary="Unread notification count")
async def unread_count(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return UnreadCountResponse(count=await NotificationSender(db).unread_count(actor.user_id))


@router.post(
    "/mark-read",
    response_model=MarkReadResponse,
    summary="Mark notifications as read",
    description="Marks one of the caller's notifications, or all of them when no id is given.",
)
async def mark_read(
    body: MarkReadRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    updated = await NotificationSender(db).mark_read(actor.user_id, body.id)
    return MarkReadResponse(updated=updated)
