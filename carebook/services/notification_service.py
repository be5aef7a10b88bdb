from sqlalchemy.orm import Session
from typing import List, Optional

from ..core.exceptions import NotFoundError
from ..models.notification import Notification, NotificationType

class NotificationService:
    def __init__(self, db: Session):
        self.db = db

    def notify(
        self,
        user_id: int,
        title: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
        appointment_id: Optional[int] = None,
    ) -> Notification:
        """Queue a notification on the session. Caller commits."""
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=type,
            appointment_id=appointment_id,
            is_read=False,
        )
        self.db.add(notification)
        return notification

    def list_for_user(self, user_id: int, limit: int = 50) -> List[Notification]:
        return (
            self.db.query(Notification)
            .filter(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
            .all()
        )

    def unread_count(self, user_id: int) -> int:
        return (
            self.db.query(Notification)
            .filter(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
            .count()
        )

    def mark_read(self, user_id: int, notification_id: int) -> Notification:
        notification = self.db.query(Notification).filter(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        ).first()
        if not notification:
            raise NotFoundError("Notification not found")

        notification.is_read = True
        self.db.commit()
        return notification

    def mark_all_read(self, user_id: int) -> int:
        updated = self.db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read == False,  # noqa: E712
        ).update({"is_read": True})
        self.db.commit()
        return updated
