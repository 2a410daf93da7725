"""Client-side registration state.

The flow is an immutable ``RegistrationSnapshot`` advanced by the pure
``transition`` function. The code countdown is not a timer: it is computed
from the snapshot's expiry whenever it is needed.

    details --OTPSent--> otp_pending --Verified--> completed
                         otp_pending --OTPResent--> otp_pending
                         otp_pending --Expired/Reset--> details
"""
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from typing import Any, Optional, Union

from app.client.auth_client import ApiError, AuthClient


class RegistrationStep(StrEnum):
    DETAILS = "details"
    OTP_PENDING = "otp_pending"
    COMPLETED = "completed"


@dataclass(frozen=True)
class RegistrationSnapshot:
    step: RegistrationStep = RegistrationStep.DETAILS
    pending_payload: Optional[dict] = None
    otp_email: Optional[str] = None
    expires_at: Optional[datetime] = None
    error: Optional[str] = None
    user: Optional[dict] = None
    resend_available_at: Optional[datetime] = None


@dataclass(frozen=True)
class OTPSent:
    payload: dict
    email: str
    expires_at: datetime


@dataclass(frozen=True)
class OTPResent:
    expires_at: datetime


@dataclass(frozen=True)
class RequestFailed:
    message: str
    retry_after: Optional[int] = None
    failed_at: Optional[datetime] = None


@dataclass(frozen=True)
class Verified:
    user: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Expired:
    pass


@dataclass(frozen=True)
class Reset:
    pass


RegistrationEvent = Union[OTPSent, OTPResent, RequestFailed, Verified, Expired, Reset]

CODE_EXPIRED_MESSAGE = "Verification code has expired. Please request a new one."


class InvalidTransition(ValueError):
    def __init__(self, step: RegistrationStep, event: RegistrationEvent):
        self.step = step
        self.event = event
        super().__init__(f"{type(event).__name__} is not valid in step '{step}'")


def initial_snapshot() -> RegistrationSnapshot:
    return RegistrationSnapshot()


def transition(snapshot: RegistrationSnapshot, event: RegistrationEvent) -> RegistrationSnapshot:
    """
    Return the snapshot that follows ``event``.

    ``completed`` is absorbing: every event leaves it unchanged.

    Raises:
        InvalidTransition: The event cannot happen in the current step
    """
    if snapshot.step == RegistrationStep.COMPLETED:
        return snapshot

    match snapshot.step, event:
        case RegistrationStep.DETAILS, OTPSent(payload=payload, email=email, expires_at=expires_at):
            return RegistrationSnapshot(
                step=RegistrationStep.OTP_PENDING,
                pending_payload=dict(payload),
                otp_email=email,
                expires_at=expires_at,
            )
        case RegistrationStep.OTP_PENDING, OTPResent(expires_at=expires_at):
            return replace(snapshot, expires_at=expires_at, error=None, resend_available_at=None)
        case RegistrationStep.OTP_PENDING, Verified(user=user):
            return RegistrationSnapshot(step=RegistrationStep.COMPLETED, otp_email=snapshot.otp_email, user=user)
        case RegistrationStep.OTP_PENDING, Expired():
            # Details are kept so the form can be resubmitted as-is
            return RegistrationSnapshot(
                step=RegistrationStep.DETAILS,
                pending_payload=snapshot.pending_payload,
                error=CODE_EXPIRED_MESSAGE,
            )
        case _, RequestFailed(message=message, retry_after=retry_after, failed_at=failed_at):
            resend_available_at = None
            if retry_after and failed_at is not None:
                resend_available_at = failed_at + timedelta(seconds=retry_after)
            return replace(snapshot, error=message, resend_available_at=resend_available_at)
        case _, Reset():
            return initial_snapshot()

    raise InvalidTransition(snapshot.step, event)


def remaining_seconds(snapshot: RegistrationSnapshot, now: Optional[datetime] = None) -> int:
    """Seconds left on the current code, 0 when there is none or it has lapsed."""
    if snapshot.step != RegistrationStep.OTP_PENDING or snapshot.expires_at is None:
        return 0
    now = now or datetime.now(timezone.utc)
    return max(math.ceil((snapshot.expires_at - now).total_seconds()), 0)


def resend_wait_seconds(snapshot: RegistrationSnapshot, now: Optional[datetime] = None) -> int:
    """Seconds until a rate-limited resend may be retried, 0 when it may be retried now."""
    if snapshot.resend_available_at is None:
        return 0
    now = now or datetime.now(timezone.utc)
    return max(math.ceil((snapshot.resend_available_at - now).total_seconds()), 0)


def _parse_expiry(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


async def submit_details(
    client: AuthClient,
    snapshot: RegistrationSnapshot,
    details: dict[str, Any]
) -> RegistrationSnapshot:
    try:
        data = await client.send_otp(details)
    except ApiError as e:
        return transition(snapshot, RequestFailed(e.message, e.retry_after, datetime.now(timezone.utc)))
    return transition(
        snapshot,
        OTPSent(payload=details, email=data["email"], expires_at=_parse_expiry(data["expires_at"]))
    )


async def submit_code(
    client: AuthClient,
    snapshot: RegistrationSnapshot,
    code: str,
    now: Optional[datetime] = None
) -> RegistrationSnapshot:
    """Verify ``code``; a lapsed countdown moves back to details without calling the API."""
    if snapshot.step == RegistrationStep.OTP_PENDING and remaining_seconds(snapshot, now) == 0:
        return transition(snapshot, Expired())
    if snapshot.step != RegistrationStep.OTP_PENDING:
        raise InvalidTransition(snapshot.step, Verified())

    try:
        data = await client.verify_otp(snapshot.otp_email, code)
    except ApiError as e:
        return transition(snapshot, RequestFailed(e.message, e.retry_after, now or datetime.now(timezone.utc)))
    return transition(snapshot, Verified(user=data["user"]))


async def request_resend(
    client: AuthClient,
    snapshot: RegistrationSnapshot,
    now: Optional[datetime] = None
) -> RegistrationSnapshot:
    if snapshot.step != RegistrationStep.OTP_PENDING:
        raise InvalidTransition(snapshot.step, OTPResent(expires_at=datetime.now(timezone.utc)))

    try:
        data = await client.resend_otp(snapshot.otp_email)
    except ApiError as e:
        return transition(snapshot, RequestFailed(e.message, e.retry_after, now or datetime.now(timezone.utc)))
    return transition(snapshot, OTPResent(expires_at=_parse_expiry(data["expires_at"])))
