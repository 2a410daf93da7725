import unittest

from app.core.constants import ActivityAction
from app.repositories.memory import InMemoryActivityLogRepository
from app.services import activity
from app.services.activity import ActivityRecorder
from app.utils.request import ClientInfo


class FailingActivityLog(InMemoryActivityLogRepository):
    async def append(self, entry):
        raise ConnectionError("database is down")


class TestActivityRecorder(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        activity.reset_outbox()
        self.addCleanup(activity.reset_outbox)

    async def test_records_entry_with_client_context(self):
        log = InMemoryActivityLogRepository()
        recorder = ActivityRecorder(log, ClientInfo(ip_address="10.0.0.1", user_agent="pytest"))

        ok = await recorder.record(ActivityAction.LOGIN_SUCCESS, user_id="u1", email="A@Example.com")

        self.assertTrue(ok)
        [entry] = log.entries
        self.assertEqual(entry["action"], "login_success")
        self.assertEqual(entry["email"], "a@example.com")
        self.assertEqual(entry["ip_address"], "10.0.0.1")

    async def test_failure_is_parked_not_raised(self):
        recorder = ActivityRecorder(FailingActivityLog())

        ok = await recorder.record(ActivityAction.OTP_SENT, email="a@example.com")

        self.assertFalse(ok)
        self.assertEqual(activity.failure_count(), 1)
        self.assertEqual([e["action"] for e in activity.failed_entries()], ["otp_sent"])

    async def test_flush_replays_parked_entries(self):
        await ActivityRecorder(FailingActivityLog()).record(ActivityAction.OTP_SENT, email="a@example.com")
        log = InMemoryActivityLogRepository()

        written = await activity.flush_failed(log)

        self.assertEqual(written, 1)
        self.assertEqual(activity.failed_entries(), [])
        self.assertEqual(log.entries[0]["action"], "otp_sent")

    async def test_flush_stops_on_first_failure(self):
        await ActivityRecorder(FailingActivityLog()).record(ActivityAction.OTP_SENT, email="a@example.com")

        self.assertEqual(await activity.flush_failed(FailingActivityLog()), 0)
        self.assertEqual(len(activity.failed_entries()), 1)

    async def test_next_successful_append_replays_outbox(self):
        await ActivityRecorder(FailingActivityLog()).record(ActivityAction.OTP_SENT, email="a@example.com")
        log = InMemoryActivityLogRepository()

        ok = await ActivityRecorder(log).record(ActivityAction.LOGIN_SUCCESS, email="b@example.com")

        self.assertTrue(ok)
        self.assertEqual([e["action"] for e in log.entries], ["login_success", "otp_sent"])
        self.assertEqual(activity.failed_entries(), [])

    async def test_failure_warning_names_client(self):
        recorder = ActivityRecorder(FailingActivityLog(), ClientInfo(ip_address="203.0.113.9", user_agent="kiosk/2.1"))

        with self.assertLogs("app.services.activity", "WARNING") as logs:
            await recorder.record(ActivityAction.OTP_SENT, email="a@example.com")

        self.assertIn("ip=203.0.113.9", logs.output[0])
        self.assertIn("ua=kiosk/2.1", logs.output[0])


if __name__ == "__main__":
    unittest.main()
