import unittest

from pydantic import ValidationError

from app.schemas.user import (
    ChangePasswordRequest,
    ProfileUpdateRequest,
    RegistrationSendOTPRequest,
    UserLoginRequest,
)


def field_errors(exc: ValidationError) -> dict[str, str]:
    return {".".join(str(part) for part in error["loc"]): error["msg"] for error in exc.errors()}


class TestRegistrationSendOTPRequest(unittest.TestCase):
    def test_normalizes_email_and_name(self):
        request = RegistrationSendOTPRequest(
            email="  Shopper@Example.COM ", password="Str0ng!Pass", name=" Mary O'Brien "
        )

        self.assertEqual(request.email, "shopper@example.com")
        self.assertEqual(request.name, "Mary O'Brien")

    def test_password_rules_reported_as_one_message(self):
        with self.assertRaises(ValidationError) as ctx:
            RegistrationSendOTPRequest(email="a@example.com", password="weak", name="Jamie Shopper")

        errors = field_errors(ctx.exception)
        self.assertEqual(list(errors), ["password"])
        self.assertIn("at least 8 characters", errors["password"])
        self.assertIn("uppercase letter", errors["password"])
        self.assertIn("number", errors["password"])
        self.assertIn("special character", errors["password"])

    def test_missing_required_fields_are_reported_together(self):
        with self.assertRaises(ValidationError) as ctx:
            RegistrationSendOTPRequest(phoneNumber="12")

        errors = field_errors(ctx.exception)
        self.assertEqual(set(errors), {"email", "password", "name", "phoneNumber"})
        self.assertIn("Email is required", errors["email"])

    def test_markup_in_name_is_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            RegistrationSendOTPRequest(email="a@example.com", password="Str0ng!Pass", name="<script>")

        self.assertIn("apostrophes and periods", field_errors(ctx.exception)["name"])


class TestOtherRequests(unittest.TestCase):
    def test_login_email_is_normalized_not_checked(self):
        request = UserLoginRequest(email=" Not-An-Email ", password="x", rememberMe=True)

        self.assertEqual(request.email, "not-an-email")
        self.assertTrue(request.remember_me)

    def test_profile_update_checks_only_given_fields(self):
        self.assertIsNone(ProfileUpdateRequest(profileImageUrl="https://cdn.example.com/me.png").name)

        with self.assertRaises(ValidationError) as ctx:
            ProfileUpdateRequest(dateOfBirth="2999-01-01")
        self.assertEqual(list(field_errors(ctx.exception)), ["dateOfBirth"])

    def test_new_password_complexity(self):
        with self.assertRaises(ValidationError) as ctx:
            ChangePasswordRequest(currentPassword="Str0ng!Pass", newPassword="alllowercase")

        self.assertIn("uppercase letter", field_errors(ctx.exception)["newPassword"])


if __name__ == "__main__":
    unittest.main()
