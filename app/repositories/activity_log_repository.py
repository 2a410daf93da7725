"""Activity log repository implementation using PostgreSQL."""
from datetime import datetime
from typing import Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from app.interfaces.activity_log import IActivityLogRepository
from app.models.activity_log import ActivityLog


class ActivityLogRepository(IActivityLogRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    def _window(self, email: str, action: str, since: datetime):
        return (
            ActivityLog.email == email.lower(),
            ActivityLog.action == action,
            ActivityLog.created_at >= since,
        )

    async def append(self, entry: dict) -> dict:
        log = ActivityLog(
            user_id=entry.get("user_id"),
            email=entry["email"].lower() if entry.get("email") else None,
            action=entry["action"],
            details=entry.get("details") or {},
            ip_address=entry.get("ip_address"),
            user_agent=entry.get("user_agent"),
        )
        if entry.get("created_at"):
            log.created_at = entry["created_at"]
        # Savepoint so a failed append never poisons the caller's transaction
        async with self._session.begin_nested():
            self._session.add(log)
            await self._session.flush()
        return log.to_dict()

    async def count_since(self, email: str, action: str, since: datetime) -> int:
        stmt = select(func.count(ActivityLog.id)).where(*self._window(email, action, since))
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def most_recent_since(self, email: str, action: str, since: datetime) -> Optional[dict]:
        stmt = (
            select(ActivityLog)
            .where(*self._window(email, action, since))
            .order_by(ActivityLog.created_at.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        entry = result.scalar_one_or_none()
        return entry.to_dict() if entry else None

    async def oldest_since(self, email: str, action: str, since: datetime) -> Optional[dict]:
        stmt = (
            select(ActivityLog)
            .where(*self._window(email, action, since))
            .order_by(ActivityLog.created_at.asc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        entry = result.scalar_one_or_none()
        return entry.to_dict() if entry else None
