"""Refresh-token session repository implementation using PostgreSQL."""
from typing import Optional
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from app.interfaces.session import ISessionRepository
from app.models.session import UserSession


class SessionRepository(ISessionRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, session_data: dict) -> dict:
        user_session = UserSession(
            user_id=session_data["user_id"],
            refresh_token_hash=session_data["refresh_token_hash"],
            token_id=session_data["token_id"],
            ip_address=session_data.get("ip_address"),
            user_agent=session_data.get("user_agent"),
            expires_at=session_data["expires_at"],
        )
        async with self._session.begin_nested():
            self._session.add(user_session)
            await self._session.flush()
        return user_session.to_dict()

    async def get_active_by_token_hash(self, token_hash: str) -> Optional[dict]:
        stmt = select(UserSession).where(
            UserSession.refresh_token_hash == token_hash,
            UserSession.is_active.is_(True),
        )
        result = await self._session.execute(stmt)
        user_session = result.scalar_one_or_none()
        return user_session.to_dict() if user_session else None

    async def deactivate_by_token_hash(self, token_hash: str) -> int:
        stmt = (
            update(UserSession)
            .where(UserSession.refresh_token_hash == token_hash, UserSession.is_active.is_(True))
            .values(is_active=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0

    async def deactivate_all_for_user(self, user_id: str) -> int:
        stmt = (
            update(UserSession)
            .where(UserSession.user_id == user_id, UserSession.is_active.is_(True))
            .values(is_active=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0
