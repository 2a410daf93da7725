"""Pending registration repository implementation using PostgreSQL."""
from datetime import datetime, timedelta, timezone
from typing import Optional
from sqlalchemy import select, delete, and_, or_
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession
from app.interfaces.otp import IOTPRepository
from app.models.registration import PendingRegistration


class OTPRepository(IOTPRepository):
    """PostgreSQL implementation of the OTP store using SQLAlchemy."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def upsert_by_email(self, record: dict) -> dict:
        """Insert the record or overwrite the existing row for its email."""
        now = datetime.now(timezone.utc)
        values = {
            "email": record["email"].lower(),
            "otp_hash": record["otp_hash"],
            "user_data": record["user_data"],
            "expires_at": record["expires_at"],
            "attempts": 0,
            "verified": False,
            "verified_at": None,
            "resend_count": record.get("resend_count", 0),
            "last_resend_at": record.get("last_resend_at"),
            "ip_address": record.get("ip_address"),
            "user_agent": record.get("user_agent"),
            "updated_at": now,
        }
        stmt = (
            insert(PendingRegistration)
            .values(**values)
            .on_conflict_do_update(
                index_elements=[PendingRegistration.email],
                set_={key: value for key, value in values.items() if key != "email"},
            )
            .returning(PendingRegistration)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one().to_dict()

    async def get_unverified_by_email(self, email: str) -> Optional[dict]:
        stmt = select(PendingRegistration).where(
            PendingRegistration.email == email.lower(),
            PendingRegistration.verified.is_(False),
        )
        result = await self._session.execute(stmt)
        record = result.scalar_one_or_none()
        return record.to_dict() if record else None

    async def increment_attempts(self, record_id: str) -> int:
        """Read-then-write increment; concurrent verifies may lose an update."""
        record = await self._session.get(PendingRegistration, record_id)
        if not record:
            return 0
        record.attempts += 1
        await self._session.flush()
        return record.attempts

    async def mark_verified(self, record_id: str, verified_at: datetime) -> None:
        record = await self._session.get(PendingRegistration, record_id)
        if record:
            record.verified = True
            record.verified_at = verified_at
            await self._session.flush()

    async def delete_by_email(self, email: str) -> None:
        stmt = delete(PendingRegistration).where(PendingRegistration.email == email.lower())
        await self._session.execute(stmt)
        await self._session.flush()

    async def delete_by_id(self, record_id: str) -> None:
        stmt = delete(PendingRegistration).where(PendingRegistration.id == record_id)
        await self._session.execute(stmt)
        await self._session.flush()

    async def purge_stale(self, now: datetime, verified_grace: timedelta) -> int:
        """Delete expired unverified records and verified ones past the grace window.

        Runs in a savepoint so a failure leaves the surrounding transaction usable.
        """
        stmt = delete(PendingRegistration).where(
            or_(
                and_(PendingRegistration.verified.is_(False), PendingRegistration.expires_at < now),
                and_(
                    PendingRegistration.verified.is_(True),
                    PendingRegistration.verified_at < now - verified_grace,
                ),
            )
        )
        async with self._session.begin_nested():
            result = await self._session.execute(stmt)
        return result.rowcount or 0
