"""Purge stale pending registrations.

Run from cron or a scheduler:

    vr-auth-cleanup
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone

from app.core.config import settings
from app.core.database import db_manager
from app.core.logging_config import configure_logging
from app.repositories.otp_repository import OTPRepository

logger = logging.getLogger(__name__)


async def run_cleanup(now: datetime | None = None) -> dict:
    now = now or datetime.now(timezone.utc)
    grace = timedelta(seconds=settings.OTP_VERIFIED_GRACE_SECONDS)

    async with db_manager.session_scope() as session:
        purged = await OTPRepository(session).purge_stale(now, grace)

    return {"purged_registrations": purged}


async def _main() -> dict:
    db_manager.init(
        database_url=settings.database_url_computed,
        echo=settings.DB_ECHO,
        pool_size=0
    )
    try:
        return await run_cleanup()
    finally:
        await db_manager.close()


def main():
    configure_logging(settings.LOG_LEVEL)
    res = asyncio.run(_main())
    logger.info(f"Cleanup finished: {res}")
    print(res)


if __name__ == "__main__":
    main()
