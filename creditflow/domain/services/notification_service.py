"""
Notification Sender - in-app notices, fire-and-forget

Called only after the workflow transaction has committed. A failure here is
logged and reported as False; it never undoes the transition that triggered it.
"""
from typing import Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.core.logging import get_logger
from creditflow.db.models.notification import Notification
from creditflow.db.models.user import User, UserRole

logger = get_logger(__name__)


class NotificationSender:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def notify(
        self,
        user_id: int,
        title: str,
        message: str,
        action_url: Optional[str] = None,
        kind: str = "info",
    ) -> bool:
        return await self.notify_many([user_id], title, message, action_url, kind)

    async def notify_many(
        self,
        user_ids: Iterable[int],
        title: str,
        message: str,
        action_url: Optional[str] = None,
        kind: str = "info",
    ) -> bool:
        recipients = sorted({uid for uid in user_ids if uid is not None})
        if not recipients:
            return True
        try:
            for user_id in recipients:
                self.db.add(Notification(
                    user_id=user_id,
                    title=title,
                    message=message,
                    type=kind,
                    action_url=action_url,
                ))
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning(
                "Notification delivery failed",
                extra_data={"recipients": recipients, "title": title, "error": str(e)},
            )
            return False
        return True

    async def account_user_ids(self) -> list[int]:
        """Active accounts staff (including the legacy accounts_manager role)"""
        result = await self.db.execute(
            select(User.id).where(
                User.role.in_([UserRole.ACCOUNT, UserRole.ACCOUNTS_MANAGER]),
                User.is_active.is_(True),
            )
        )
        return list(result.scalars().all())

    async def list_for_user(self, user_id: int, limit: int = 50) -> list[Notification]:
        result = await self.db.execute(
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def unread_count(self, user_id: int) -> int:
        result = await self.db.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
        )
        return result.scalar_one()

    async def mark_read(self, user_id: int, notification_id: Optional[int] = None) -> int:
        """Mark one notice, or all of them, as read. Returns the number changed."""
        query = update(Notification).where(
            Notification.user_id == user_id,
            Notification.is_read.is_(False),
        )
        if notification_id is not None:
            query = query.where(Notification.id == notification_id)
        result = await self.db.execute(query.values(is_read=True))
        await self.db.commit()
        return result.rowcount
