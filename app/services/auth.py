import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from app.core.config import settings
from app.core.constants import ActivityAction, AuthErrorDetails, TokenStatus
from app.core.exceptions import AuthError, ValidationError
from app.core.security import CredentialHasher, TokenCodec, hasher as default_hasher, token_codec as default_codec
from app.interfaces.session import ISessionRepository
from app.interfaces.user import IUserRepository
from app.services.activity import ActivityRecorder
from app.utils.request import ClientInfo
from app.utils.validation import normalize_email, validate_password, validate_profile_update

logger = logging.getLogger(__name__)

PROFILE_COMPLETION_FIELDS = ("name", "email", "phone_number", "date_of_birth", "profile_image_url")


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int
    refresh_token_id: str
    refresh_expires_at: datetime
    token_type: str = "Bearer"

    def to_dict(self) -> dict:
        return {
            "token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_in": self.expires_in,
            "token_type": self.token_type,
        }


def hash_refresh_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def public_user(user: dict) -> dict:
    """User fields safe to return to clients."""
    return {key: value for key, value in user.items() if key != "password_hash"}


def profile_completion(user: dict) -> dict:
    completed = [field for field in PROFILE_COMPLETION_FIELDS if user.get(field)]
    missing = [field for field in PROFILE_COMPLETION_FIELDS if not user.get(field)]
    return {
        "percentage": round(len(completed) / len(PROFILE_COMPLETION_FIELDS) * 100),
        "completed_fields": len(completed),
        "total_fields": len(PROFILE_COMPLETION_FIELDS),
        "missing_fields": missing,
    }


class AuthService:
    """
    Issues, rotates and revokes token pairs and owns login and profile.

    Sessions (one row per issued refresh token) are written best-effort:
    tokens stay self-contained, so a failed session write is logged and
    the caller still gets its tokens.
    """

    def __init__(
        self,
        user_repository: IUserRepository,
        session_repository: ISessionRepository,
        activity: ActivityRecorder,
        codec: Optional[TokenCodec] = None,
        hasher: Optional[CredentialHasher] = None,
        client: Optional[ClientInfo] = None,
        revoke_rotated_tokens: Optional[bool] = None,
    ):
        self.user_repository = user_repository
        self.session_repository = session_repository
        self.activity = activity
        self.codec = codec or default_codec
        self.hasher = hasher or default_hasher
        self.client = client or ClientInfo()
        self.revoke_rotated_tokens = (
            settings.REVOKE_ROTATED_REFRESH_TOKENS if revoke_rotated_tokens is None else revoke_rotated_tokens
        )
        self._dummy_hash: Optional[str] = None

    def _equalize_timing(self, password: str) -> None:
        """Spend one bcrypt check so unknown emails cost the same as wrong passwords."""
        if self._dummy_hash is None:
            self._dummy_hash = self.hasher.hash("timing-equalizer")
        self.hasher.verify(password, self._dummy_hash)

    async def issue_tokens(
        self,
        user: dict,
        remember_me: bool = False,
        claims: Optional[dict[str, Any]] = None
    ) -> TokenPair:
        """Sign a new access/refresh pair for ``user`` and record its session."""
        now = datetime.now(timezone.utc)
        access_claims = {
            "name": user.get("name"),
            "email_verified": bool(user.get("email_verified")),
            **(claims or {}),
        }
        access = self.codec.issue_access(user["id"], user["email"], access_claims, now=now)
        refresh = self.codec.issue_refresh(user["id"], user["email"], remember_me=remember_me, now=now)

        try:
            await self.session_repository.create({
                "user_id": user["id"],
                "refresh_token_hash": hash_refresh_token(refresh.token),
                "token_id": refresh.token_id,
                "ip_address": self.client.ip_address,
                "user_agent": self.client.user_agent,
                "expires_at": refresh.expires_at,
            })
        except Exception as e:
            logger.warning(f"Could not store session for user {user['id']}: {e}")

        return TokenPair(
            access_token=access.token,
            refresh_token=refresh.token,
            expires_in=int((access.expires_at - now).total_seconds()),
            refresh_token_id=refresh.token_id,
            refresh_expires_at=refresh.expires_at,
        )

    async def login(self, email: Optional[str], password: Optional[str], remember_me: bool = False) -> dict:
        """Authenticate with email and password.

        Args:
            email: Account email (any case)
            password: Plaintext password
            remember_me: Extend the refresh token lifetime

        Returns:
            Dictionary with the public user and a token pair

        Raises:
            ValidationError: If email or password is missing
            AuthError: On any credential or account-state failure
        """
        email = normalize_email(email)
        errors = []
        if not email:
            errors.append({"field": "email", "message": AuthErrorDetails.EMAIL_REQUIRED.value})
        if not password:
            errors.append({"field": "password", "message": AuthErrorDetails.PASSWORD_REQUIRED.value})
        if errors:
            raise ValidationError(errors)

        # 1. Load user; unknown emails fail exactly like wrong passwords
        user = await self.user_repository.get_by_email(email)
        if not user:
            self._equalize_timing(password)
            await self.activity.record(ActivityAction.LOGIN_FAILED, email=email, details={"reason": "unknown_email"})
            raise AuthError(AuthErrorDetails.INVALID_CREDENTIALS)

        # 2. Verify password before revealing account state
        if not self.hasher.verify(password, user["password_hash"]):
            await self.activity.record(
                ActivityAction.LOGIN_FAILED, user_id=user["id"], email=email, details={"reason": "invalid_password"}
            )
            raise AuthError(AuthErrorDetails.INVALID_CREDENTIALS)

        # 3. Require an active account
        if not user["is_active"]:
            await self.activity.record(
                ActivityAction.LOGIN_FAILED, user_id=user["id"], email=email, details={"reason": "account_inactive"}
            )
            raise AuthError(AuthErrorDetails.ACCOUNT_DEACTIVATED)

        # 4. Stamp last login and issue tokens
        user = await self.user_repository.update(user["id"], {"last_login": datetime.now(timezone.utc)}) or user
        tokens = await self.issue_tokens(user, remember_me=remember_me)

        await self.activity.record(
            ActivityAction.LOGIN_SUCCESS,
            user_id=user["id"],
            email=email,
            details={"remember_me": remember_me, "token_id": tokens.refresh_token_id},
        )
        logger.info(f"User {user['id']} logged in")
        return {"user": public_user(user), **tokens.to_dict()}

    async def refresh(self, refresh_token: Optional[str]) -> dict:
        """Exchange a valid refresh token for a new token pair.

        The presented token stays valid until it expires unless
        REVOKE_ROTATED_REFRESH_TOKENS is enabled, in which case it must map
        to an active session which is then deactivated.
        """
        if not refresh_token:
            raise ValidationError(
                [{"field": "refresh_token", "message": AuthErrorDetails.REFRESH_TOKEN_REQUIRED.value}],
                message=AuthErrorDetails.REFRESH_TOKEN_REQUIRED,
            )

        verification = self.codec.verify(refresh_token)
        match verification.status:
            case TokenStatus.REFRESH:
                claims = verification.claims
            case TokenStatus.ACCESS:
                await self.activity.record(
                    ActivityAction.TOKEN_REFRESH_FAILED,
                    user_id=verification.claims.get("sub"),
                    details={"reason": "wrong_token_type"},
                )
                raise AuthError(AuthErrorDetails.TOKEN_TYPE_INVALID)
            case TokenStatus.INVALID:
                await self.activity.record(ActivityAction.TOKEN_REFRESH_FAILED, details={"reason": "invalid_token"})
                raise AuthError(AuthErrorDetails.REFRESH_TOKEN_INVALID)

        user = await self.user_repository.get_by_id(claims["sub"])
        if not user or not user["is_active"]:
            await self.activity.record(
                ActivityAction.TOKEN_REFRESH_FAILED, user_id=claims["sub"], details={"reason": "user_inactive"}
            )
            raise AuthError(AuthErrorDetails.USER_NOT_FOUND_OR_INACTIVE)

        if self.revoke_rotated_tokens:
            token_hash = hash_refresh_token(refresh_token)
            if not await self.session_repository.get_active_by_token_hash(token_hash):
                await self.activity.record(
                    ActivityAction.TOKEN_REFRESH_FAILED, user_id=user["id"], details={"reason": "session_revoked"}
                )
                raise AuthError(AuthErrorDetails.REFRESH_TOKEN_INVALID)
            await self.session_repository.deactivate_by_token_hash(token_hash)

        tokens = await self.issue_tokens(user, remember_me=bool(claims.get("remember_me")))
        await self.activity.record(
            ActivityAction.TOKEN_REFRESHED,
            user_id=user["id"],
            email=user["email"],
            details={"previous_token_id": claims.get("token_id"), "token_id": tokens.refresh_token_id},
        )
        return tokens.to_dict()

    async def logout(self, refresh_token: Optional[str], all_devices: bool = False) -> None:
        """Best-effort session invalidation. Never raises."""
        try:
            if not refresh_token:
                return
            verification = self.codec.verify(refresh_token)
            if not verification.is_refresh:
                logger.info("Logout called with a token that is not a valid refresh token")
                return

            user_id = verification.claims["sub"]
            if all_devices:
                changed = await self.session_repository.deactivate_all_for_user(user_id)
            else:
                changed = await self.session_repository.deactivate_by_token_hash(hash_refresh_token(refresh_token))

            await self.activity.record(
                ActivityAction.LOGOUT,
                user_id=user_id,
                email=verification.claims.get("email"),
                details={"all_devices": all_devices, "sessions_closed": changed},
            )
        except Exception as e:
            logger.warning(f"Logout cleanup failed: {e}")

    async def get_profile(self, user: dict) -> dict:
        await self.activity.record(ActivityAction.PROFILE_ACCESSED, user_id=user["id"], email=user["email"])
        return {
            "user": public_user(user),
            "last_login": user.get("last_login"),
            "account_created": user.get("created_at"),
            "profile_completion": profile_completion(user),
        }

    async def update_profile(self, user: dict, fields: dict) -> dict:
        """Apply a validated partial update to the caller's profile.

        Raises:
            ValidationError: If any field is invalid
            ConflictError: If the new email already belongs to another account
        """
        cleaned = validate_profile_update(fields)
        updated = await self.user_repository.update(user["id"], cleaned)
        if not updated:
            raise AuthError(AuthErrorDetails.USER_NOT_FOUND_OR_INACTIVE)

        await self.activity.record(
            ActivityAction.PROFILE_UPDATED,
            user_id=user["id"],
            email=updated["email"],
            details={"fields": sorted(cleaned)},
        )
        return {"user": public_user(updated), "profile_completion": profile_completion(updated)}

    async def change_password(self, user: dict, current_password: Optional[str], new_password: Optional[str]) -> None:
        errors = []
        if not current_password:
            errors.append({"field": "current_password", "message": AuthErrorDetails.CURRENT_PASSWORD_REQUIRED.value})
        errors.extend(validate_password(new_password, field="new_password"))
        if current_password and new_password and current_password == new_password:
            errors.append({"field": "new_password", "message": AuthErrorDetails.NEW_PASSWORD_SAME.value})
        if errors:
            raise ValidationError(errors)

        if not self.hasher.verify(current_password, user["password_hash"]):
            await self.activity.record(
                ActivityAction.PASSWORD_CHANGE_FAILED, user_id=user["id"], email=user["email"],
                details={"reason": "invalid_current_password"}
            )
            raise ValidationError(
                [{"field": "current_password", "message": AuthErrorDetails.CURRENT_PASSWORD_INCORRECT.value}],
                message=AuthErrorDetails.CURRENT_PASSWORD_INCORRECT,
            )

        await self.user_repository.update(user["id"], {"password_hash": self.hasher.hash(new_password)})
        await self.activity.record(ActivityAction.PASSWORD_CHANGED, user_id=user["id"], email=user["email"])
        logger.info(f"Password changed for user {user['id']}")
