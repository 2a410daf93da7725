"""OTP resend throttling derived from the activity log."""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from app.core.config import settings
from app.core.constants import ActivityAction, AuthErrorDetails
from app.interfaces.activity_log import IActivityLogRepository

logger = logging.getLogger(__name__)

HOURLY_WINDOW = timedelta(hours=1)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after: int = 0
    message: Optional[str] = None


ALLOW = RateLimitDecision(allowed=True)


def _seconds_until(moment: datetime, now: datetime) -> int:
    return max(math.ceil((moment - now).total_seconds()), 1)


class OTPResendRateLimiter:
    """
    Sliding-window limits on ``otp_resent`` events per email.

    Two independent checks run in order: an hourly ceiling and a short
    cooldown since the latest resend. Either check allows the request if
    its log query fails. The limiter never writes; callers log the resend
    only after the code has actually been sent.
    """

    def __init__(
        self,
        activity_log: IActivityLogRepository,
        max_per_hour: Optional[int] = None,
        cooldown_seconds: Optional[int] = None,
    ):
        self.activity_log = activity_log
        self.max_per_hour = max_per_hour if max_per_hour is not None else settings.OTP_RESEND_MAX_PER_HOUR
        self.cooldown = timedelta(
            seconds=cooldown_seconds if cooldown_seconds is not None else settings.OTP_RESEND_COOLDOWN_SECONDS
        )

    async def _check_hourly(self, email: str, now: datetime) -> RateLimitDecision:
        since = now - HOURLY_WINDOW
        try:
            count = await self.activity_log.count_since(email, ActivityAction.OTP_RESENT.value, since)
            if count < self.max_per_hour:
                return ALLOW
            oldest = await self.activity_log.oldest_since(email, ActivityAction.OTP_RESENT.value, since)
        except Exception as e:
            logger.warning(f"Hourly resend check failed for {email}, allowing: {e}")
            return ALLOW

        retry_after = _seconds_until(oldest["created_at"] + HOURLY_WINDOW, now) if oldest else 1
        return RateLimitDecision(
            allowed=False,
            retry_after=retry_after,
            message=AuthErrorDetails.RESEND_HOURLY_LIMIT.format(limit=self.max_per_hour),
        )

    async def _check_cooldown(self, email: str, now: datetime) -> RateLimitDecision:
        try:
            latest = await self.activity_log.most_recent_since(
                email, ActivityAction.OTP_RESENT.value, now - self.cooldown
            )
        except Exception as e:
            logger.warning(f"Resend cooldown check failed for {email}, allowing: {e}")
            return ALLOW

        if not latest:
            return ALLOW

        retry_after = _seconds_until(latest["created_at"] + self.cooldown, now)
        return RateLimitDecision(
            allowed=False,
            retry_after=retry_after,
            message=AuthErrorDetails.RESEND_COOLDOWN.format(seconds=retry_after),
        )

    async def check(self, email: str, now: Optional[datetime] = None) -> RateLimitDecision:
        """Decide whether ``email`` may receive another code now."""
        now = now or datetime.now(timezone.utc)
        email = email.lower()

        decision = await self._check_hourly(email, now)
        if not decision.allowed:
            logger.info(f"Resend hourly ceiling reached for {email}, retry in {decision.retry_after}s")
            return decision

        decision = await self._check_cooldown(email, now)
        if not decision.allowed:
            logger.info(f"Resend cooldown active for {email}, retry in {decision.retry_after}s")
        return decision

    async def remaining_attempts(self, email: str, now: Optional[datetime] = None) -> int:
        """Resends left in the current hour. Reports the full allowance if the log is unreadable."""
        now = now or datetime.now(timezone.utc)
        try:
            used = await self.activity_log.count_since(email.lower(), ActivityAction.OTP_RESENT.value, now - HOURLY_WINDOW)
        except Exception as e:
            logger.warning(f"Could not count resends for {email}: {e}")
            return self.max_per_hour
        return max(self.max_per_hour - used, 0)
