import unittest
from datetime import datetime, timedelta, timezone

from app.core.constants import ActivityAction
from app.repositories.memory import InMemoryActivityLogRepository
from app.services.rate_limiter import OTPResendRateLimiter

EMAIL = "shopper@example.com"


class BrokenActivityLog(InMemoryActivityLogRepository):
    async def count_since(self, email, action, since):
        raise ConnectionError("log unavailable")

    async def most_recent_since(self, email, action, since):
        raise ConnectionError("log unavailable")


class TestOTPResendRateLimiter(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.log = InMemoryActivityLogRepository()
        self.limiter = OTPResendRateLimiter(self.log, max_per_hour=3, cooldown_seconds=30)
        self.now = datetime.now(timezone.utc)

    async def _resent(self, seconds_ago: int, email: str = EMAIL):
        await self.log.append({
            "action": ActivityAction.OTP_RESENT.value,
            "email": email,
            "created_at": self.now - timedelta(seconds=seconds_ago),
        })

    async def test_allows_first_resend(self):
        decision = await self.limiter.check(EMAIL, now=self.now)
        self.assertTrue(decision.allowed)
        self.assertEqual(await self.limiter.remaining_attempts(EMAIL, now=self.now), 3)

    async def test_cooldown_reports_exact_wait(self):
        await self._resent(seconds_ago=10)

        decision = await self.limiter.check(EMAIL, now=self.now)

        self.assertFalse(decision.allowed)
        self.assertEqual(decision.retry_after, 20)
        self.assertEqual(decision.message, "Please wait 20 seconds before requesting another OTP.")

    async def test_cooldown_elapsed(self):
        await self._resent(seconds_ago=31)
        self.assertTrue((await self.limiter.check(EMAIL, now=self.now)).allowed)

    async def test_hourly_ceiling_waits_for_oldest_to_leave_window(self):
        for minutes_ago in (50, 40, 30):
            await self._resent(seconds_ago=minutes_ago * 60)

        decision = await self.limiter.check(EMAIL, now=self.now)

        self.assertFalse(decision.allowed)
        self.assertEqual(decision.retry_after, 10 * 60)
        self.assertIn("Maximum 3 resend attempts per hour", decision.message)
        self.assertEqual(await self.limiter.remaining_attempts(EMAIL, now=self.now), 0)

    async def test_events_older_than_an_hour_do_not_count(self):
        for minutes_ago in (90, 80, 70):
            await self._resent(seconds_ago=minutes_ago * 60)
        self.assertTrue((await self.limiter.check(EMAIL, now=self.now)).allowed)

    async def test_counts_are_per_email_and_case_insensitive(self):
        await self._resent(seconds_ago=5, email="other@example.com")
        self.assertTrue((await self.limiter.check(EMAIL, now=self.now)).allowed)

        await self._resent(seconds_ago=5)
        self.assertFalse((await self.limiter.check(EMAIL.upper(), now=self.now)).allowed)

    async def test_other_actions_are_ignored(self):
        await self.log.append({"action": ActivityAction.OTP_SENT.value, "email": EMAIL, "created_at": self.now})
        self.assertTrue((await self.limiter.check(EMAIL, now=self.now)).allowed)

    async def test_fails_open_when_log_is_unreadable(self):
        limiter = OTPResendRateLimiter(BrokenActivityLog(), max_per_hour=3, cooldown_seconds=30)

        self.assertTrue((await limiter.check(EMAIL, now=self.now)).allowed)
        self.assertEqual(await limiter.remaining_attempts(EMAIL, now=self.now), 3)

    async def test_never_writes(self):
        await self.limiter.check(EMAIL, now=self.now)
        self.assertEqual(self.log.entries, [])


if __name__ == "__main__":
    unittest.main()
