"""Bearer-token check run in front of every protected endpoint."""
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from app.core.constants import AuthErrorDetails, TokenStatus
from app.core.exceptions import AuthError
from app.core.security import TokenCodec, token_codec as default_codec
from app.interfaces.user import IUserRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthContext:
    user: dict
    claims: dict[str, Any] = field(default_factory=dict)

    @property
    def user_id(self) -> str:
        return self.user["id"]


class RequestGate:
    def __init__(self, user_repository: IUserRepository, codec: Optional[TokenCodec] = None):
        self.user_repository = user_repository
        self.codec = codec or default_codec

    async def authenticate(self, token: Optional[str]) -> AuthContext:
        """
        Resolve an access token to its live user.

        Raises:
            AuthError: No token, invalid or expired token, a refresh token,
                or a user that is missing or inactive
        """
        if not token:
            raise AuthError(AuthErrorDetails.TOKEN_MISSING)

        verification = self.codec.verify(token)
        match verification.status:
            case TokenStatus.INVALID:
                raise AuthError(AuthErrorDetails.TOKEN_INVALID)
            case TokenStatus.REFRESH:
                raise AuthError(AuthErrorDetails.TOKEN_TYPE_INVALID)
            case TokenStatus.ACCESS:
                pass

        user = await self.user_repository.get_by_id(verification.claims["sub"])
        if not user or not user["is_active"]:
            logger.info(f"Token presented for missing or inactive user {verification.claims['sub']}")
            raise AuthError(AuthErrorDetails.USER_NOT_FOUND_OR_INACTIVE)

        return AuthContext(user=user, claims=verification.claims)
