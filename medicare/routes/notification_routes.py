from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from medicare.auth.dependencies import Principal, get_current_principal
from medicare.core.responses import Envelope, ok
from medicare.database import get_db
from medicare.services import notifications as notification_service

router = APIRouter(tags=['notifications'])

MAX_LIST_LIMIT = 200


class NotificationResponse(BaseModel):
    id: int
    type: str
    title: str
    message: str
    priority: str
    category: str
    entity_type: str | None = None
    entity_id: int | None = None
    is_read: bool
    read_at: datetime | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class CountResponse(BaseModel):
    count: int


@router.get('', response_model=Envelope[list[NotificationResponse]])
def list_notifications(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=notification_service.DEFAULT_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    notifications = notification_service.list_notifications(db, principal, unread_only, limit)
    return ok([NotificationResponse.model_validate(notification) for notification in notifications])


@router.get('/unread-count', response_model=Envelope[CountResponse])
def unread_count(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return ok({'count': notification_service.unread_count(db, principal)})


@router.patch('/read-all', response_model=Envelope[CountResponse])
def mark_all_read(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    updated = notification_service.mark_all_as_read(db, principal)
    return ok({'count': updated}, 'All notifications marked as read')


@router.delete('/clear-read', response_model=Envelope[CountResponse])
def clear_read(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    deleted = notification_service.clear_read_notifications(db, principal)
    return ok({'count': deleted}, 'Read notifications cleared')


@router.patch('/{notification_id}/read', response_model=Envelope[NotificationResponse])
def mark_read(
    notification_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    notification = notification_service.mark_as_read(db, principal, notification_id)
    return ok(NotificationResponse.model_validate(notification), 'Notification marked as read')


@router.delete('/{notification_id}', response_model=Envelope[dict])
def delete_notification(
    notification_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    notification_service.delete_notification(db, principal, notification_id)
    return ok(message='Notification deleted')
