import logging
from datetime import datetime

from sqlalchemy.orm import Session

from medicare.auth.dependencies import Principal
from medicare.core.errors import ForbiddenError, NotFoundError
from medicare.models.notification import Notification

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50


def create_notification(
    db: Session,
    *,
    recipient_id: int | None,
    notification_type: str,
    title: str,
    message: str,
    priority: str = 'medium',
    category: str = 'info',
    entity_type: str | None = None,
    entity_id: int | None = None,
) -> Notification | None:
    """Stage a notification in the caller's transaction.

    The caller owns the commit. A missing recipient is logged and skipped so
    that one unreachable user never aborts the operation that triggered it.
    """
    if recipient_id is None:
        logger.warning('Skipping "%s" notification: recipient unknown', notification_type)
        return None

    notification = Notification(
        recipient_id=recipient_id,
        type=notification_type,
        title=title,
        message=message,
        priority=priority,
        category=category,
        entity_type=entity_type,
        entity_id=entity_id,
        is_read=False,
    )
    db.add(notification)
    return notification


def list_notifications(
    db: Session,
    principal: Principal,
    unread_only: bool = False,
    limit: int = DEFAULT_LIST_LIMIT,
) -> list[Notification]:
    query = db.query(Notification).filter(Notification.recipient_id == principal.user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def unread_count(db: Session, principal: Principal) -> int:
    return db.query(Notification).filter(
        Notification.recipient_id == principal.user_id,
        Notification.is_read.is_(False),
    ).count()


def _get_owned_notification(db: Session, principal: Principal, notification_id: int) -> Notification:
    notification = db.query(Notification).filter(Notification.id == notification_id).first()
    if notification is None:
        raise NotFoundError('Notification not found')
    if notification.recipient_id != principal.user_id:
        raise ForbiddenError('Access denied')
    return notification


def mark_as_read(db: Session, principal: Principal, notification_id: int, now: datetime | None = None) -> Notification:
    notification = _get_owned_notification(db, principal, notification_id)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = now or datetime.now()
        db.commit()
        db.refresh(notification)
    return notification


def mark_all_as_read(db: Session, principal: Principal, now: datetime | None = None) -> int:
    updated = db.query(Notification).filter(
        Notification.recipient_id == principal.user_id,
        Notification.is_read.is_(False),
    ).update(
        {Notification.is_read: True, Notification.read_at: now or datetime.now()},
        synchronize_session=False,
    )
    db.commit()
    return updated


def delete_notification(db: Session, principal: Principal, notification_id: int) -> None:
    notification = _get_owned_notification(db, principal, notification_id)
    db.delete(notification)
    db.commit()


def clear_read_notifications(db: Session, principal: Principal) -> int:
    deleted = db.query(Notification).filter(
        Notification.recipient_id == principal.user_id,
        Notification.is_read.is_(True),
    ).delete(synchronize_session=False)
    db.commit()
    return deleted
