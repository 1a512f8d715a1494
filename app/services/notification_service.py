from app.extensions import db
from app.models import Notification


class NotificationService:
    @staticmethod
    def push(user_id, title, message, booking_id=None, category="info"):
        """Queue an in-app notification for an operator; flushed, not committed."""
        if user_id is None:
            return None
        notification = Notification(
            user_id=user_id,
            booking_id=booking_id,
            category=category,
            title=title,
            message=message,
        )
        db.session.add(notification)
        db.session.flush()
        return notification

    @staticmethod
    def serialize(notification):
        return {
            "id": notification.id,
            "booking_id": notification.booking_id,
            "category": notification.category,
            "title": notification.title,
            "message": notification.message,
            "is_read": notification.is_read,
            "created_at": notification.created_at.isoformat(),
        }

    @staticmethod
    def for_user(user_id, category=None, unread_only=False, limit=20):
        query = Notification.query.filter_by(user_id=user_id)
        if category:
            query = query.filter_by(category=category)
        if unread_only:
            query = query.filter_by(is_read=False)
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()

    @staticmethod
    def unread_count(user_id):
        return Notification.query.filter_by(user_id=user_id, is_read=False).count()

    @staticmethod
    def mark_read(user_id, notification_ids=None):
        query = Notification.query.filter_by(user_id=user_id, is_read=False)
        if notification_ids:
            query = query.filter(Notification.id.in_(notification_ids))
        updated = query.update({"is_read": True}, synchronize_session="fetch")
        db.session.commit()
        return updated
