"""User Notifications API - In-app notification bell endpoints"""
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from ..deps import get_current_user_dep
from ...domain.models import ActorContext
from ...repositories.notification_repo import NotificationRepository
from ...utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


# =============================================================================
# Response Models
# =============================================================================

class NotificationResponse(BaseModel):
    """Single notification response"""
    notification_id: str
    type: str
    title: str
    message: str
    intervention_id: str
    metadata: Dict[str, Any]
    is_personal: bool
    is_read: bool
    created_by: Optional[str] = None
    created_at: str


class NotificationListResponse(BaseModel):
    """List of notifications with metadata"""
    items: List[NotificationResponse]
    unread_count: int


class UnreadCountResponse(BaseModel):
    """Just the unread count"""
    unread_count: int


class MarkReadResponse(BaseModel):
    """Response after marking notifications read"""
    success: bool
    marked_count: int


# =============================================================================
# Endpoints
# =============================================================================

@router.get("", response_model=NotificationListResponse)
async def get_notifications(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False),
    actor: ActorContext = Depends(get_current_user_dep)
):
    """Notifications for the current user, newest first"""
    repo = NotificationRepository()
    notifications = repo.get_notifications_for_user(
        actor.user_id, skip=skip, limit=limit, unread_only=unread_only
    )

    return NotificationListResponse(
        items=[
            NotificationResponse(
                notification_id=n.notification_id,
                type=n.type.value,
                title=n.title,
                message=n.message,
                intervention_id=n.related_entity_id,
                metadata=n.metadata,
                is_personal=n.is_personal,
                is_read=n.read,
                created_by=n.created_by,
                created_at=n.created_at.isoformat()
            )
            for n in notifications
        ],
        unread_count=repo.get_unread_count(actor.user_id)
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(actor: ActorContext = Depends(get_current_user_dep)):
    """Badge counter"""
    return UnreadCountResponse(unread_count=NotificationRepository().get_unread_count(actor.user_id))


@router.post("/{notification_id}/read", response_model=MarkReadResponse)
async def mark_as_read(
    notification_id: str,
    actor: ActorContext = Depends(get_current_user_dep)
):
    NotificationRepository().mark_as_read(notification_id, actor.user_id)
    return MarkReadResponse(success=True, marked_count=1)


@router.post("/read-all", response_model=MarkReadResponse)
async def mark_all_as_read(actor: ActorContext = Depends(get_current_user_dep)):
    count = NotificationRepository().mark_all_as_read(actor.user_id)
    return MarkReadResponse(success=True, marked_count=count)
