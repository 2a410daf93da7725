"""Fakes shared by the test modules."""
from app.interfaces.mailer import IMailer
from app.repositories.shared import RepositoryBundle
from app.services.activity import ActivityRecorder
from app.services.auth import AuthService
from app.services.rate_limiter import OTPResendRateLimiter
from app.services.registration import RegistrationService

PASSWORD = "Str0ng!Pass"

REGISTRATION = {
    "email": "Shopper@Example.com",
    "password": PASSWORD,
    "name": "Jamie Shopper",
    "phone_number": "+1 555 010 9999",
    "date_of_birth": "1990-04-12",
}


class RecordingMailer(IMailer):
    """Keeps every code it is asked to send."""

    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.sent: list[tuple[str, str]] = []

    async def send_otp_email(self, to_email: str, code: str, name: str | None = None) -> bool:
        self.sent.append((to_email, code))
        return self.succeed

    def last_code(self, email: str) -> str:
        return [code for to, code in self.sent if to == email][-1]


def wrong_code(code: str) -> str:
    return "0000" if code != "0000" else "1111"


def build_services(bundle: RepositoryBundle, mailer: IMailer, revoke_rotated_tokens: bool = False):
    activity = ActivityRecorder(bundle.activity)
    auth_service = AuthService(
        user_repository=bundle.users,
        session_repository=bundle.sessions,
        activity=activity,
        revoke_rotated_tokens=revoke_rotated_tokens,
    )
    registration = RegistrationService(
        user_repository=bundle.users,
        otp_repository=bundle.otps,
        mailer=mailer,
        auth_service=auth_service,
        rate_limiter=OTPResendRateLimiter(bundle.activity),
        activity=activity,
    )
    return auth_service, registration
