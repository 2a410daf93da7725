import unittest

from fastapi.testclient import TestClient

from app.core.dependencies import get_mailer_dependency, get_repositories
from app.main import app
from app.repositories.shared import RepositoryBundle
from app.services import activity
from tests.helpers import PASSWORD, RecordingMailer, wrong_code

EMAIL = "shopper@example.com"

SIGN_UP = {
    "email": "Shopper@Example.com",
    "password": PASSWORD,
    "name": "Jamie Shopper",
    "phoneNumber": "5550109999",
    "dateOfBirth": "1990-04-12",
}


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        activity.reset_outbox()
        self.repos = RepositoryBundle.in_memory()
        self.mailer = RecordingMailer()
        app.dependency_overrides[get_repositories] = lambda: self.repos
        app.dependency_overrides[get_mailer_dependency] = lambda: self.mailer
        app.state.limiter.reset()

        self.client = TestClient(app)
        self.client.__enter__()
        self.addCleanup(self.client.__exit__, None, None, None)
        self.addCleanup(app.dependency_overrides.clear)

    def register(self) -> dict:
        self.client.post("/api/v1/auth/register/send-otp", json=SIGN_UP)
        response = self.client.post(
            "/api/v1/auth/register/verify", json={"email": EMAIL, "otp": self.mailer.last_code(EMAIL)}
        )
        self.assertEqual(response.status_code, 200)
        return response.json()["data"]

    def assertEnvelope(self, response, status_code: int, success: bool):
        self.assertEqual(response.status_code, status_code, response.text)
        body = response.json()
        self.assertEqual(body["success"], success)
        self.assertIn("message", body)
        self.assertIn("timestamp", body)
        return body


class TestRegistrationEndpoints(ApiTestCase):
    def test_full_registration(self):
        response = self.client.post("/api/v1/auth/register/send-otp", json=SIGN_UP)
        body = self.assertEnvelope(response, 200, True)
        self.assertEqual(body["data"]["email"], EMAIL)
        self.assertEqual(body["data"]["expires_in"], 600)

        response = self.client.post(
            "/api/v1/auth/register/verify", json={"email": EMAIL, "otp": self.mailer.last_code(EMAIL)}
        )
        body = self.assertEnvelope(response, 200, True)
        data = body["data"]
        self.assertEqual(data["token_type"], "Bearer")
        self.assertEqual(data["user"]["email"], EMAIL)
        self.assertEqual(data["user"]["date_of_birth"], "1990-04-12")
        self.assertNotIn("password_hash", data["user"])

    def test_wrong_code(self):
        self.client.post("/api/v1/auth/register/send-otp", json=SIGN_UP)

        response = self.client.post(
            "/api/v1/auth/register/verify", json={"email": EMAIL, "otp": wrong_code(self.mailer.last_code(EMAIL))}
        )

        body = self.assertEnvelope(response, 401, False)
        self.assertEqual(body["message"], "Invalid verification code. 4 attempts remaining.")
        self.assertEqual(body["error"]["kind"], "auth")
        self.assertEqual(body["error"]["remaining_attempts"], 4)

    def test_validation_errors_listed(self):
        response = self.client.post(
            "/api/v1/auth/register/send-otp", json={"email": "bad", "password": "weak", "name": "Jamie Shopper"}
        )

        body = self.assertEnvelope(response, 400, False)
        errors = {error["field"]: error["message"] for error in body["error"]["validation_errors"]}
        self.assertEqual(set(errors), {"email", "password"})
        self.assertIn("at least 8 characters", errors["password"])
        self.assertIn("special character", errors["password"])

    def test_unknown_body_field_rejected(self):
        response = self.client.post("/api/v1/auth/register/send-otp", json={**SIGN_UP, "isAdmin": True})

        body = self.assertEnvelope(response, 400, False)
        self.assertEqual(body["error"]["kind"], "validation")

    def test_duplicate_send_is_429_with_retry_after(self):
        self.client.post("/api/v1/auth/register/send-otp", json=SIGN_UP)

        response = self.client.post("/api/v1/auth/register/send-otp", json=SIGN_UP)

        body = self.assertEnvelope(response, 429, False)
        self.assertEqual(response.headers["Retry-After"], str(body["error"]["retry_after"]))

    def test_existing_account_is_409(self):
        self.register()

        response = self.client.post("/api/v1/auth/register/send-otp", json=SIGN_UP)

        body = self.assertEnvelope(response, 409, False)
        self.assertEqual(body["error"]["kind"], "conflict")

    def test_resend_without_pending_registration_is_401(self):
        response = self.client.post("/api/v1/auth/register/resend", json={"email": "nobody@example.com"})

        body = self.assertEnvelope(response, 401, False)
        self.assertEqual(body["error"]["kind"], "auth")

    def test_resend(self):
        self.client.post("/api/v1/auth/register/send-otp", json=SIGN_UP)

        response = self.client.post("/api/v1/auth/register/resend", json={"email": EMAIL})

        body = self.assertEnvelope(response, 200, True)
        self.assertEqual(body["data"]["remaining_resend_attempts"], 2)
        self.assertEqual(len(self.mailer.sent), 2)

    def test_mail_failure_is_500(self):
        self.mailer.succeed = False

        response = self.client.post("/api/v1/auth/register/send-otp", json=SIGN_UP)

        body = self.assertEnvelope(response, 500, False)
        self.assertEqual(body["error"]["kind"], "internal")


class TestSessionEndpoints(ApiTestCase):
    def test_login_accepts_camel_case(self):
        self.register()

        response = self.client.post(
            "/api/v1/auth/login", json={"email": EMAIL, "password": PASSWORD, "rememberMe": True}
        )

        body = self.assertEnvelope(response, 200, True)
        self.assertIn("refresh_token", body["data"])

    def test_login_failure(self):
        response = self.client.post("/api/v1/auth/login", json={"email": EMAIL, "password": PASSWORD})

        body = self.assertEnvelope(response, 401, False)
        self.assertEqual(body["message"], "Invalid email or password")

    def test_login_is_rate_limited_per_ip(self):
        for _ in range(5):
            self.client.post("/api/v1/auth/login", json={"email": EMAIL, "password": PASSWORD})

        response = self.client.post("/api/v1/auth/login", json={"email": EMAIL, "password": PASSWORD})

        body = self.assertEnvelope(response, 429, False)
        self.assertEqual(body["message"], "Too many login attempts. Please try again later")

    def test_refresh_and_profile(self):
        tokens = self.register()

        response = self.client.post("/api/v1/auth/refresh", json={"refreshToken": tokens["refresh_token"]})
        body = self.assertEnvelope(response, 200, True)
        access = body["data"]["token"]

        response = self.client.get("/api/v1/auth/profile", headers={"Authorization": f"Bearer {access}"})
        body = self.assertEnvelope(response, 200, True)
        self.assertEqual(body["data"]["user"]["email"], EMAIL)
        self.assertEqual(body["data"]["profile_completion"]["percentage"], 80)

    def test_refresh_with_access_token(self):
        tokens = self.register()

        response = self.client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["token"]})

        body = self.assertEnvelope(response, 401, False)
        self.assertEqual(body["message"], "Invalid token type")

    def test_profile_requires_token(self):
        response = self.client.get("/api/v1/auth/profile")

        body = self.assertEnvelope(response, 401, False)
        self.assertEqual(body["message"], "No authentication token provided")

    def test_profile_rejects_other_auth_schemes(self):
        response = self.client.get("/api/v1/auth/profile", headers={"Authorization": "Basic c2hvcHBlcjpwdw=="})

        body = self.assertEnvelope(response, 401, False)
        self.assertEqual(body["message"], "No authentication token provided")

    def test_auth_failure_log_names_client(self):
        headers = {"X-Forwarded-For": "203.0.113.9", "User-Agent": "kiosk-headset/1.0"}

        with self.assertLogs("app.core.handler", "INFO") as logs:
            self.client.get("/api/v1/auth/profile", headers=headers)

        [line] = [line for line in logs.output if "No authentication token provided" in line]
        self.assertIn("GET /api/v1/auth/profile", line)
        self.assertIn("ip=203.0.113.9", line)
        self.assertIn("ua=kiosk-headset/1.0", line)

    def test_profile_rejects_refresh_token(self):
        tokens = self.register()

        response = self.client.get(
            "/api/v1/auth/profile", headers={"Authorization": f"Bearer {tokens['refresh_token']}"}
        )

        self.assertEnvelope(response, 401, False)

    def test_update_profile_and_change_password(self):
        tokens = self.register()
        headers = {"Authorization": f"Bearer {tokens['token']}"}

        response = self.client.put(
            "/api/v1/auth/profile", json={"profileImageUrl": "https://cdn.example.com/me.png"}, headers=headers
        )
        body = self.assertEnvelope(response, 200, True)
        self.assertEqual(body["data"]["profile_completion"]["percentage"], 100)

        response = self.client.post(
            "/api/v1/auth/change-password",
            json={"currentPassword": PASSWORD, "newPassword": "N3w!Password"},
            headers=headers,
        )
        self.assertEnvelope(response, 200, True)

    def test_logout_always_succeeds(self):
        tokens = self.register()

        for refresh_token in (tokens["refresh_token"], "garbage", None):
            response = self.client.post("/api/v1/auth/logout", json={"refreshToken": refresh_token})
            body = self.assertEnvelope(response, 200, True)
            self.assertEqual(body["message"], "Successfully logged out. Thank you for using our service!")


class TestMiscEndpoints(ApiTestCase):
    def test_health_reports_memory_store(self):
        response = self.client.get("/api/v1/health")

        body = self.assertEnvelope(response, 200, True)
        self.assertEqual(body["data"]["database"], "not_used")

    def test_unknown_route_uses_envelope(self):
        response = self.client.get("/api/v1/nope")

        self.assertEnvelope(response, 404, False)


if __name__ == "__main__":
    unittest.main()
