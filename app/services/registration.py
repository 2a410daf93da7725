"""Two-phase, OTP-verified account registration."""
import logging
import math
import secrets
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from app.core.config import settings
from app.core.constants import ActivityAction, AuthErrorDetails
from app.core.exceptions import (
    AppException,
    AuthError,
    ConflictError,
    InternalError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from app.core.security import CredentialHasher, hasher as default_hasher
from app.interfaces.mailer import IMailer
from app.interfaces.otp import IOTPRepository
from app.interfaces.user import IUserRepository
from app.services.activity import ActivityRecorder
from app.services.auth import AuthService, public_user
from app.services.rate_limiter import OTPResendRateLimiter
from app.utils.request import ClientInfo
from app.utils.validation import (
    normalize_email,
    validate_email,
    validate_otp_format,
    validate_registration_payload,
)

logger = logging.getLogger(__name__)


def _seconds_until(moment: datetime, now: datetime) -> int:
    return max(math.ceil((moment - now).total_seconds()), 1)


class RegistrationService:
    """
    Drives sign-up from submitted details to a materialized account.

    A pending registration is one row per email holding the hashed code,
    the sanitized payload (password already hashed), expiry and attempt
    counter. Codes are compared only through the credential hasher.
    """

    def __init__(
        self,
        user_repository: IUserRepository,
        otp_repository: IOTPRepository,
        mailer: IMailer,
        auth_service: AuthService,
        rate_limiter: OTPResendRateLimiter,
        activity: ActivityRecorder,
        hasher: Optional[CredentialHasher] = None,
        client: Optional[ClientInfo] = None,
    ):
        self.user_repository = user_repository
        self.otp_repository = otp_repository
        self.mailer = mailer
        self.auth_service = auth_service
        self.rate_limiter = rate_limiter
        self.activity = activity
        self.hasher = hasher or default_hasher
        self.client = client or ClientInfo()
        self.expiry = timedelta(minutes=settings.OTP_EXPIRY_MINUTES)
        self.max_attempts = settings.MAX_OTP_ATTEMPTS

    def _generate_otp(self) -> str:
        """Generate a random numeric code of OTP_LENGTH digits.

        FIXED_OTP, when configured outside production, replaces the random code.
        """
        if settings.FIXED_OTP:
            return settings.FIXED_OTP
        return str(secrets.randbelow(10 ** settings.OTP_LENGTH)).zfill(settings.OTP_LENGTH)

    async def _dispatch_code(
        self,
        email: str,
        user_data: dict,
        now: datetime,
        resend_count: int = 0,
        last_resend_at: Optional[datetime] = None,
    ) -> dict:
        """Store a fresh code for ``email`` and mail it.

        The stored record is removed again if the mail cannot be sent.
        """
        code = self._generate_otp()
        record = await self.otp_repository.upsert_by_email({
            "email": email,
            "otp_hash": self.hasher.hash(code),
            "user_data": user_data,
            "expires_at": now + self.expiry,
            "resend_count": resend_count,
            "last_resend_at": last_resend_at,
            "ip_address": self.client.ip_address,
            "user_agent": self.client.user_agent,
        })

        try:
            sent = await self.mailer.send_otp_email(email, code, user_data.get("name"))
        except Exception as e:
            logger.error(f"Mailer raised while sending code to {email}: {e}")
            sent = False

        if not sent:
            await self.otp_repository.delete_by_id(record["id"])
            raise InternalError(AuthErrorDetails.OTP_SEND_FAILED)

        return record

    async def purge_stale(self, now: Optional[datetime] = None) -> int:
        """Remove expired pending registrations and verified ones past the grace delay."""
        now = now or datetime.now(timezone.utc)
        removed = await self.otp_repository.purge_stale(
            now, timedelta(seconds=settings.OTP_VERIFIED_GRACE_SECONDS)
        )
        if removed:
            logger.info(f"Purged {removed} stale registration record(s)")
        return removed

    async def send_otp(self, payload: dict) -> dict:
        """Start registration: validate details and email a verification code.

        Args:
            payload: Sign-up fields (email, password, name and optional
                phone_number, date_of_birth, profile_image_url)

        Returns:
            Dictionary with the email and the code's lifetime

        Raises:
            ValidationError: Listing every invalid field
            ConflictError: If the email already has an account
            RateLimitError: If an unexpired code was already sent
            InternalError: If the code could not be mailed
        """
        cleaned = validate_registration_payload(payload)
        email = cleaned["email"]
        now = datetime.now(timezone.utc)

        try:
            await self.purge_stale(now)
        except Exception as e:
            logger.warning(f"Opportunistic purge failed: {e}")

        # 1. Email must not belong to an account
        if await self.user_repository.get_by_email(email):
            raise ConflictError(AuthErrorDetails.EMAIL_ALREADY_EXISTS, data={"email": email})

        # 2. A live code blocks a new one
        pending = await self.otp_repository.get_unverified_by_email(email)
        if pending and pending["expires_at"] > now:
            retry_after = _seconds_until(pending["expires_at"], now)
            raise RateLimitError(
                AuthErrorDetails.OTP_ALREADY_SENT.format(minutes=math.ceil(retry_after / 60)),
                retry_after=retry_after,
            )

        # 3. Store the payload with its password hashed, then send the code
        dob = cleaned.get("date_of_birth")
        user_data = {
            "name": cleaned["name"],
            "password_hash": self.hasher.hash(cleaned["password"]),
            "phone_number": cleaned.get("phone_number"),
            "date_of_birth": dob.isoformat() if dob else None,
            "profile_image_url": cleaned.get("profile_image_url"),
        }
        record = await self._dispatch_code(email, user_data, now)

        await self.activity.record(
            ActivityAction.OTP_SENT, email=email, details={"expires_at": record["expires_at"].isoformat()}
        )
        logger.info(f"Verification code sent to {email}")
        return {
            "email": email,
            "expires_in": int(self.expiry.total_seconds()),
            "expires_at": record["expires_at"],
        }

    async def verify_otp(self, email: Optional[str], code: Optional[str]) -> dict:
        """Check a code and, on success, create the account and sign it in.

        Returns:
            Dictionary with the public user and a token pair

        Raises:
            ValidationError: Malformed email or code
            AuthError: Missing, expired, exhausted or wrong code
            ConflictError: The email was registered in the meantime
            InternalError: The account could not be created
        """
        email = normalize_email(email)
        code = (code or "").strip()
        errors = validate_email(email) + validate_otp_format(code, settings.OTP_LENGTH)
        if errors:
            raise ValidationError(errors)

        now = datetime.now(timezone.utc)

        # 1. Lookup; absence is indistinguishable from a wrong or expired code
        record = await self.otp_repository.get_unverified_by_email(email)
        if not record:
            raise AuthError(AuthErrorDetails.OTP_INVALID_OR_EXPIRED)

        # 2. Expiry
        if record["expires_at"] <= now:
            await self.otp_repository.delete_by_id(record["id"])
            raise AuthError(AuthErrorDetails.OTP_EXPIRED)

        # 3. Attempt ceiling
        if record["attempts"] >= self.max_attempts:
            await self.otp_repository.delete_by_id(record["id"])
            raise AuthError(AuthErrorDetails.OTP_ATTEMPTS_EXCEEDED)

        # 4. Compare hashed code
        if not self.hasher.verify(code, record["otp_hash"]):
            attempts = await self.otp_repository.increment_attempts(record["id"])
            remaining = self.max_attempts - attempts
            logger.info(f"Wrong verification code for {email}, {remaining} attempt(s) left")
            if remaining <= 0:
                await self.otp_repository.delete_by_id(record["id"])
                raise AuthError(AuthErrorDetails.OTP_INVALID_NONE_REMAINING, data={"remaining_attempts": 0})
            raise AuthError(
                AuthErrorDetails.OTP_INVALID_REMAINING.format(
                    remaining=remaining, noun="attempt" if remaining == 1 else "attempts"
                ),
                data={"remaining_attempts": remaining},
            )

        # 5. Materialize the account
        user_data = record["user_data"]
        try:
            user = await self.user_repository.insert({
                "email": email,
                "name": user_data["name"],
                "password_hash": user_data["password_hash"],
                "phone_number": user_data.get("phone_number"),
                "date_of_birth": date.fromisoformat(user_data["date_of_birth"]) if user_data.get("date_of_birth") else None,
                "profile_image_url": user_data.get("profile_image_url"),
                "is_active": True,
                "email_verified": True,
            })
        except ConflictError:
            await self.otp_repository.delete_by_id(record["id"])
            raise
        except AppException:
            raise
        except Exception as e:
            logger.exception(f"Account creation failed for {email}")
            raise InternalError(f"Failed to create account: {e}") from e

        # 6. Mark verified; the row is purged after the grace delay
        await self.otp_repository.mark_verified(record["id"], now)

        # 7. Sign in
        tokens = await self.auth_service.issue_tokens(user, claims={"registration_method": "email_otp"})
        await self.activity.record(
            ActivityAction.REGISTRATION_COMPLETED,
            user_id=user["id"],
            email=email,
            details={"resend_count": record.get("resend_count", 0)},
        )
        logger.info(f"Registration completed for {email} (user {user['id']})")
        return {"user": public_user(user), **tokens.to_dict()}

    async def resend_otp(self, email: Optional[str]) -> dict:
        """Send a new code for an existing pending registration.

        Raises:
            ValidationError: Malformed email
            RateLimitError: Hourly ceiling or cooldown reached
            NotFoundError: No pending registration for the email
            AuthError: The pending registration ran out of attempts
            InternalError: The code could not be mailed
        """
        email = normalize_email(email)
        errors = validate_email(email)
        if errors:
            raise ValidationError(errors)

        # 1. Throttle
        decision = await self.rate_limiter.check(email)
        if not decision.allowed:
            raise RateLimitError(decision.message, retry_after=decision.retry_after)

        # 2. Pending record
        record = await self.otp_repository.get_unverified_by_email(email)
        if not record:
            raise NotFoundError(AuthErrorDetails.NO_PENDING_REGISTRATION)

        if record["attempts"] >= self.max_attempts:
            await self.otp_repository.delete_by_id(record["id"])
            raise AuthError(AuthErrorDetails.OTP_ATTEMPTS_EXCEEDED)

        # 3. New code from the stored payload; counts as a resend only once mailed
        now = datetime.now(timezone.utc)
        resend_count = record.get("resend_count", 0) + 1
        updated = await self._dispatch_code(
            email, record["user_data"], now, resend_count=resend_count, last_resend_at=now
        )
        await self.activity.record(ActivityAction.OTP_RESENT, email=email, details={"resend_count": resend_count})

        remaining = await self.rate_limiter.remaining_attempts(email, now=now)
        logger.info(f"Verification code re-sent to {email} ({remaining} resend(s) left this hour)")
        return {
            "email": email,
            "expires_in": int(self.expiry.total_seconds()),
            "expires_at": updated["expires_at"],
            "remaining_resend_attempts": remaining,
            "next_resend_allowed_at": now + self.rate_limiter.cooldown,
        }
