"""Credential hashing and signed token handling."""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from jose import JWTError, jwt

from app.core.config import settings
from app.core.constants import TokenStatus, TokenType

logger = logging.getLogger(__name__)

BCRYPT_MAX_BYTES = 72


class CredentialHasher:
    """Salted bcrypt hashing shared by account passwords and OTP codes."""

    def __init__(self, rounds: int | None = None):
        self.rounds = rounds or settings.BCRYPT_ROUNDS

    @staticmethod
    def _encode(secret: str) -> bytes:
        # bcrypt only reads the first 72 bytes
        return secret.encode("utf-8")[:BCRYPT_MAX_BYTES]

    def hash(self, secret: str) -> str:
        """Hash a secret with a fresh salt."""
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(self._encode(secret), salt).decode("utf-8")

    def verify(self, secret: str, digest: str | None) -> bool:
        """Check a secret against a stored digest. Malformed digests never match."""
        if not secret or not digest:
            return False
        try:
            return bcrypt.checkpw(self._encode(secret), digest.encode("utf-8"))
        except ValueError:
            logger.warning("Stored credential digest is malformed")
            return False


@dataclass(frozen=True)
class TokenVerification:
    """Tri-state verification result. ``claims`` is empty unless valid."""
    status: TokenStatus
    claims: dict[str, Any] = field(default_factory=dict)

    @property
    def is_access(self) -> bool:
        return self.status is TokenStatus.ACCESS

    @property
    def is_refresh(self) -> bool:
        return self.status is TokenStatus.REFRESH


INVALID_TOKEN = TokenVerification(status=TokenStatus.INVALID)


@dataclass(frozen=True)
class IssuedToken:
    token: str
    token_id: str
    expires_at: datetime


class TokenCodec:
    """
    Signs and verifies access and refresh tokens.

    Both token classes carry issuer, audience, expiry and a ``type``
    discriminator. Refresh tokens may be signed with a separate secret
    when REFRESH_TOKEN_SECRET_KEY is configured.
    """

    def __init__(
        self,
        secret_key: str | None = None,
        refresh_secret_key: str | None = None,
        algorithm: str | None = None,
        issuer: str | None = None,
        audience: str | None = None,
        access_ttl: timedelta | None = None,
        refresh_ttl: timedelta | None = None,
        remember_me_ttl: timedelta | None = None,
    ):
        self.secret_key = secret_key or settings.SECRET_KEY
        self.refresh_secret_key = refresh_secret_key or settings.REFRESH_TOKEN_SECRET_KEY or self.secret_key
        self.algorithm = algorithm or settings.ALGORITHM
        self.issuer = issuer or settings.JWT_ISSUER
        self.audience = audience or settings.JWT_AUDIENCE
        self.access_ttl = access_ttl or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        self.refresh_ttl = refresh_ttl or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
        self.remember_me_ttl = remember_me_ttl or timedelta(days=settings.REMEMBER_ME_REFRESH_TOKEN_EXPIRE_DAYS)

    def _encode(self, payload: dict[str, Any], secret: str) -> str:
        return jwt.encode(payload, secret, algorithm=self.algorithm)

    def issue_access(
        self,
        user_id: str,
        email: str,
        claims: dict[str, Any] | None = None,
        now: datetime | None = None
    ) -> IssuedToken:
        """Create a signed access token for ``user_id``."""
        now = now or datetime.now(timezone.utc)
        expire = now + self.access_ttl
        token_id = uuid.uuid4().hex
        payload: dict[str, Any] = dict(claims or {})
        payload.update({
            "sub": user_id,
            "user_id": user_id,
            "email": email,
            "type": TokenType.ACCESS.value,
            "iss": self.issuer,
            "aud": self.audience,
            "iat": now,
            "exp": expire,
            "jti": token_id,
        })
        return IssuedToken(self._encode(payload, self.secret_key), token_id, expire)

    def issue_refresh(
        self,
        user_id: str,
        email: str,
        remember_me: bool = False,
        now: datetime | None = None
    ) -> IssuedToken:
        """Create a signed refresh token carrying a random token id."""
        now = now or datetime.now(timezone.utc)
        expire = now + (self.remember_me_ttl if remember_me else self.refresh_ttl)
        token_id = str(uuid.uuid4())
        payload = {
            "sub": user_id,
            "user_id": user_id,
            "email": email,
            "type": TokenType.REFRESH.value,
            "token_id": token_id,
            "remember_me": remember_me,
            "iss": self.issuer,
            "aud": self.audience,
            "iat": now,
            "exp": expire,
        }
        return IssuedToken(self._encode(payload, self.refresh_secret_key), token_id, expire)

    def _decode(self, token: str, secret: str) -> dict[str, Any] | None:
        try:
            return jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
            )
        except JWTError:
            return None

    def verify(self, token: str | None) -> TokenVerification:
        """
        Verify a token and report which class it belongs to.

        Never raises. Signature, expiry, issuer or audience failures, a
        missing subject and an unknown ``type`` claim all yield INVALID.
        """
        if not token:
            return INVALID_TOKEN

        claims = self._decode(token, self.secret_key)
        if claims is None and self.refresh_secret_key != self.secret_key:
            claims = self._decode(token, self.refresh_secret_key)
            if claims is not None and claims.get("type") != TokenType.REFRESH:
                # Only refresh tokens may be signed with the refresh secret
                return INVALID_TOKEN
        if claims is None or not claims.get("sub"):
            return INVALID_TOKEN

        match claims.get("type"):
            case TokenType.ACCESS:
                return TokenVerification(TokenStatus.ACCESS, claims)
            case TokenType.REFRESH:
                return TokenVerification(TokenStatus.REFRESH, claims)
            case _:
                return INVALID_TOKEN


hasher = CredentialHasher()
token_codec = TokenCodec()
