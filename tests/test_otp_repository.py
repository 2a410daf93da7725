import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy.exc import DBAPIError

from app.repositories.memory import InMemoryOTPRepository
from app.repositories.otp_repository import OTPRepository
from app.repositories.shared import RepositoryBundle
from app.services import activity
from tests.helpers import REGISTRATION, RecordingMailer, build_services

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


def mock_session(execute: AsyncMock) -> MagicMock:
    session = MagicMock()
    session.execute = execute
    session.begin_nested.return_value.__aexit__.return_value = False
    return session


class TestPurgeStale(unittest.IsolatedAsyncioTestCase):
    async def test_purge_runs_in_savepoint(self):
        session = mock_session(AsyncMock(return_value=MagicMock(rowcount=3)))

        removed = await OTPRepository(session).purge_stale(NOW, timedelta(seconds=5))

        self.assertEqual(removed, 3)
        session.begin_nested.assert_called_once_with()
        session.begin_nested.return_value.__aenter__.assert_awaited_once()
        session.execute.assert_awaited_once()

    async def test_failed_purge_unwinds_savepoint(self):
        failure = DBAPIError("DELETE FROM registration_otps", {}, Exception("lock timeout"))
        session = mock_session(AsyncMock(side_effect=failure))

        with self.assertRaises(DBAPIError):
            await OTPRepository(session).purge_stale(NOW, timedelta(seconds=5))

        exit_args = session.begin_nested.return_value.__aexit__.await_args.args
        self.assertIs(exit_args[1], failure)
        session.rollback.assert_not_called()


class FailingPurgeOTPRepository(InMemoryOTPRepository):
    async def purge_stale(self, now, verified_grace):
        raise DBAPIError("DELETE FROM registration_otps", {}, Exception("lock timeout"))


class TestOpportunisticPurge(unittest.IsolatedAsyncioTestCase):
    async def test_failed_purge_does_not_block_send(self):
        activity.reset_outbox()
        bundle = RepositoryBundle.in_memory()
        bundle.otps = FailingPurgeOTPRepository()
        mailer = RecordingMailer()
        _, registration = build_services(bundle, mailer)

        with self.assertLogs("app.services.registration", "WARNING") as logs:
            result = await registration.send_otp(dict(REGISTRATION))

        self.assertEqual(result["email"], "shopper@example.com")
        self.assertEqual(len(mailer.sent), 1)
        self.assertIn("Opportunistic purge failed", logs.output[0])


if __name__ == "__main__":
    unittest.main()
