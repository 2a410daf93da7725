import unittest
from datetime import datetime, timedelta, timezone

from app.core.constants import ActivityAction, TokenStatus
from app.core.exceptions import (
    AuthError,
    ConflictError,
    InternalError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from app.core.security import token_codec
from app.repositories.shared import RepositoryBundle
from app.services import activity
from tests.helpers import REGISTRATION, RecordingMailer, build_services, wrong_code

EMAIL = "shopper@example.com"


class RegistrationTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        activity.reset_outbox()
        self.repos = RepositoryBundle.in_memory()
        self.mailer = RecordingMailer()
        self.auth_service, self.registration = build_services(self.repos, self.mailer)

    def actions(self) -> list[str]:
        return [entry["action"] for entry in self.repos.activity.entries]


class TestSendOTP(RegistrationTestCase):
    async def test_sends_code_and_stores_hashed_payload(self):
        result = await self.registration.send_otp(dict(REGISTRATION))

        self.assertEqual(result["email"], EMAIL)
        self.assertEqual(result["expires_in"], 600)
        code = self.mailer.last_code(EMAIL)
        self.assertEqual(len(code), 4)
        self.assertTrue(code.isdigit())

        record = await self.repos.otps.get_unverified_by_email(EMAIL)
        self.assertNotEqual(record["otp_hash"], code)
        self.assertNotIn("password", record["user_data"])
        self.assertNotEqual(record["user_data"]["password_hash"], REGISTRATION["password"])
        self.assertEqual(record["attempts"], 0)
        self.assertEqual(self.actions(), [ActivityAction.OTP_SENT.value])

    async def test_reports_every_invalid_field(self):
        with self.assertRaises(ValidationError) as ctx:
            await self.registration.send_otp({"email": "nope", "password": "short", "name": "X", "color": "red"})

        fields = {error["field"] for error in ctx.exception.errors}
        self.assertEqual(fields, {"email", "password", "name", "color"})
        self.assertEqual(self.mailer.sent, [])

    async def test_apostrophe_name_is_kept_verbatim(self):
        await self.registration.send_otp({**REGISTRATION, "name": " Mary O'Brien "})

        record = await self.repos.otps.get_unverified_by_email(EMAIL)
        self.assertEqual(record["user_data"]["name"], "Mary O'Brien")

    async def test_markup_in_name_is_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            await self.registration.send_otp({**REGISTRATION, "name": "<b>Jamie</b>"})

        self.assertEqual(
            ctx.exception.errors,
            [{"field": "name", "message": "Name can only contain letters, spaces, hyphens, apostrophes and periods"}],
        )
        self.assertEqual(self.mailer.sent, [])

    async def test_existing_account_conflicts(self):
        await self.repos.users.insert({"email": EMAIL, "name": "Jamie", "password_hash": "x"})

        with self.assertRaises(ConflictError):
            await self.registration.send_otp(dict(REGISTRATION))
        self.assertEqual(self.mailer.sent, [])

    async def test_second_send_while_code_is_live_is_rate_limited(self):
        await self.registration.send_otp(dict(REGISTRATION))

        with self.assertRaises(RateLimitError) as ctx:
            await self.registration.send_otp(dict(REGISTRATION))

        self.assertGreater(ctx.exception.retry_after, 590)
        self.assertIn("10 minute(s)", ctx.exception.message)
        self.assertEqual(len(self.mailer.sent), 1)

    async def test_send_after_expiry_replaces_record(self):
        await self.registration.send_otp(dict(REGISTRATION))
        await self.repos.otps.set_fields(EMAIL, expires_at=datetime.now(timezone.utc) - timedelta(seconds=1))

        await self.registration.send_otp(dict(REGISTRATION))

        self.assertEqual(len(self.mailer.sent), 2)
        self.assertIsNotNone(await self.repos.otps.get_unverified_by_email(EMAIL))

    async def test_mail_failure_removes_record(self):
        self.mailer.succeed = False

        with self.assertRaises(InternalError):
            await self.registration.send_otp(dict(REGISTRATION))

        self.assertIsNone(await self.repos.otps.get_any_by_email(EMAIL))
        self.assertNotIn(ActivityAction.OTP_SENT.value, self.actions())


class TestVerifyOTP(RegistrationTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        await self.registration.send_otp(dict(REGISTRATION))
        self.code = self.mailer.last_code(EMAIL)

    async def test_correct_code_creates_user_and_signs_in(self):
        result = await self.registration.verify_otp(EMAIL, self.code)

        self.assertEqual(result["user"]["email"], EMAIL)
        self.assertNotIn("password_hash", result["user"])
        self.assertTrue(result["user"]["email_verified"])
        self.assertTrue(result["user"]["is_active"])
        self.assertEqual(result["token_type"], "Bearer")
        self.assertEqual(result["expires_in"], 3600)

        access = token_codec.verify(result["token"])
        self.assertEqual(access.status, TokenStatus.ACCESS)
        self.assertEqual(access.claims["registration_method"], "email_otp")
        self.assertEqual(token_codec.verify(result["refresh_token"]).status, TokenStatus.REFRESH)

        user = await self.repos.users.get_by_email(EMAIL)
        self.assertEqual(user["phone_number"], REGISTRATION["phone_number"])
        self.assertEqual(user["date_of_birth"].isoformat(), "1990-04-12")
        self.assertIn(ActivityAction.REGISTRATION_COMPLETED.value, self.actions())

    async def test_stored_password_is_usable_for_login(self):
        await self.registration.verify_otp(EMAIL, self.code)

        result = await self.auth_service.login(EMAIL, REGISTRATION["password"])

        self.assertEqual(result["user"]["email"], EMAIL)

    async def test_code_is_single_use(self):
        await self.registration.verify_otp(EMAIL, self.code)

        with self.assertRaises(AuthError) as ctx:
            await self.registration.verify_otp(EMAIL, self.code)
        self.assertEqual(ctx.exception.message, "Invalid or expired verification code. Please start registration again.")

    async def test_wrong_code_counts_down_attempts(self):
        with self.assertRaises(AuthError) as ctx:
            await self.registration.verify_otp(EMAIL, wrong_code(self.code))

        self.assertEqual(ctx.exception.message, "Invalid verification code. 4 attempts remaining.")
        record = await self.repos.otps.get_unverified_by_email(EMAIL)
        self.assertEqual(record["attempts"], 1)

    async def test_attempt_ceiling_discards_registration(self):
        wrong = wrong_code(self.code)
        messages = []
        for _ in range(5):
            with self.assertRaises(AuthError) as ctx:
                await self.registration.verify_otp(EMAIL, wrong)
            messages.append(ctx.exception.message)

        self.assertEqual(messages[3], "Invalid verification code. 1 attempt remaining.")
        self.assertIn("No attempts remaining", messages[4])
        self.assertIsNone(await self.repos.otps.get_any_by_email(EMAIL))

        # Even the right code is refused once the record is gone
        with self.assertRaises(AuthError) as ctx:
            await self.registration.verify_otp(EMAIL, self.code)
        self.assertIn("start registration again", ctx.exception.message)
        self.assertNotIn("Invalid verification code", ctx.exception.message)
        self.assertIsNone(await self.repos.users.get_by_email(EMAIL))

    async def test_registration_restarts_after_attempt_ceiling(self):
        wrong = wrong_code(self.code)
        for _ in range(5):
            with self.assertRaises(AuthError):
                await self.registration.verify_otp(EMAIL, wrong)

        result = await self.registration.send_otp(dict(REGISTRATION))

        self.assertEqual(result["email"], EMAIL)
        new_code = self.mailer.last_code(EMAIL)
        user = await self.registration.verify_otp(EMAIL, new_code)
        self.assertEqual(user["user"]["email"], EMAIL)

    async def test_expired_code_is_rejected_and_removed(self):
        await self.repos.otps.set_fields(EMAIL, expires_at=datetime.now(timezone.utc) - timedelta(seconds=1))

        with self.assertRaises(AuthError) as ctx:
            await self.registration.verify_otp(EMAIL, self.code)

        self.assertEqual(ctx.exception.message, "Verification code has expired. Please start registration again.")
        self.assertIsNone(await self.repos.otps.get_any_by_email(EMAIL))

    async def test_malformed_code_is_a_validation_error(self):
        for code in ("12", "abcd", "12345", ""):
            with self.assertRaises(ValidationError):
                await self.registration.verify_otp(EMAIL, code)

        record = await self.repos.otps.get_unverified_by_email(EMAIL)
        self.assertEqual(record["attempts"], 0)

    async def test_email_taken_meanwhile_conflicts_and_clears_record(self):
        await self.repos.users.insert({"email": EMAIL, "name": "Someone", "password_hash": "x"})

        with self.assertRaises(ConflictError):
            await self.registration.verify_otp(EMAIL, self.code)
        self.assertIsNone(await self.repos.otps.get_any_by_email(EMAIL))

    async def test_verified_record_is_purged_after_grace(self):
        await self.registration.verify_otp(EMAIL, self.code)
        self.assertIsNotNone(await self.repos.otps.get_any_by_email(EMAIL))

        removed = await self.registration.purge_stale(datetime.now(timezone.utc) + timedelta(seconds=10))

        self.assertEqual(removed, 1)
        self.assertIsNone(await self.repos.otps.get_any_by_email(EMAIL))


class TestResendOTP(RegistrationTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        await self.registration.send_otp(dict(REGISTRATION))
        self.first_code = self.mailer.last_code(EMAIL)

    async def test_resend_issues_new_code_and_resets_attempts(self):
        with self.assertRaises(AuthError):
            await self.registration.verify_otp(EMAIL, wrong_code(self.first_code))

        result = await self.registration.resend_otp(EMAIL)

        self.assertEqual(result["remaining_resend_attempts"], 2)
        self.assertGreater(result["next_resend_allowed_at"], datetime.now(timezone.utc))
        record = await self.repos.otps.get_unverified_by_email(EMAIL)
        self.assertEqual(record["attempts"], 0)
        self.assertEqual(record["resend_count"], 1)
        self.assertEqual(self.actions().count(ActivityAction.OTP_RESENT.value), 1)

        verified = await self.registration.verify_otp(EMAIL, self.mailer.last_code(EMAIL))
        self.assertEqual(verified["user"]["name"], REGISTRATION["name"])

    async def test_immediate_second_resend_hits_cooldown(self):
        await self.registration.resend_otp(EMAIL)

        with self.assertRaises(RateLimitError) as ctx:
            await self.registration.resend_otp(EMAIL)

        self.assertLessEqual(ctx.exception.retry_after, 30)
        self.assertEqual(len(self.mailer.sent), 2)

    async def test_without_pending_registration(self):
        with self.assertRaises(NotFoundError):
            await self.registration.resend_otp("nobody@example.com")

    async def test_failed_mail_is_not_counted_as_resend(self):
        self.mailer.succeed = False

        with self.assertRaises(InternalError):
            await self.registration.resend_otp(EMAIL)

        self.assertNotIn(ActivityAction.OTP_RESENT.value, self.actions())
        self.assertIsNone(await self.repos.otps.get_any_by_email(EMAIL))


if __name__ == "__main__":
    unittest.main()
