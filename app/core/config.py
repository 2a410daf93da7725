from pydantic import Field, field_validator, model_validator, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal, Optional
import logging

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    APP_NAME: str = Field(default="VR Supermarket", description="Display name used in emails and API title")
    ENVIRONMENT: Literal["dev", "prod"] = Field(default="dev", description="Application environment")
    LOG_LEVEL: str = Field(default="INFO", description="Root log level")

    BASE_URL: str = Field(default="http://localhost:8000", description="Base URL for the API")
    CORS_ORIGINS: list[str] = Field(
        default=["http://localhost:5173", "http://localhost:8888"],
        description="Origins allowed by the CORS middleware"
    )

    # Token configuration
    SECRET_KEY: str = Field(default="secret-key", description="Secret key for JWT signing")
    ALGORITHM: str = Field(default="HS256", description="JWT algorithm")
    JWT_ISSUER: str = Field(default="auth-system", description="Issuer stamped on every token")
    JWT_AUDIENCE: str = Field(default="auth-system-users", description="Audience stamped on every token")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60, description="Access token expiration in minutes")
    REFRESH_TOKEN_EXPIRE_DAYS: int = Field(default=7, description="Refresh token expiration in days")
    REMEMBER_ME_REFRESH_TOKEN_EXPIRE_DAYS: int = Field(
        default=30, description="Refresh token expiration in days when 'remember me' is requested"
    )
    REFRESH_TOKEN_SECRET_KEY: str | None = Field(default=None, description="Optional separate secret key for refresh tokens")
    REVOKE_ROTATED_REFRESH_TOKENS: bool = Field(
        default=False,
        description="Require an active session row on refresh and deactivate it once rotated"
    )

    # Credential hashing
    BCRYPT_ROUNDS: int = Field(default=12, description="bcrypt cost factor for passwords and OTP codes")

    # Storage backend
    AUTH_STORE: Literal["postgres", "memory"] = Field(default="postgres", description="Repository backend")

    # Database Configuration
    DB_HOST: str = Field(default="localhost", description="Database host")
    DB_PORT: int = Field(default=5432, description="Database port")
    DB_NAME: str = Field(default="vr_supermarket", description="Database name")
    DB_USER: str = Field(default="postgres", description="Database user")
    DB_PASSWORD: str = Field(default="", description="Database password")
    DATABASE_URL: Optional[str] = Field(default=None, description="Full database URL (overrides individual DB_* settings)")
    DB_POOL_SIZE: int = Field(default=5, description="Database connection pool size")
    DB_ECHO: bool = Field(default=False, description="Enable SQL query logging")

    # IP based limits (slowapi)
    LOGIN_RATE_LIMIT_PER_MINUTE: int = Field(default=5, description="Maximum login attempts per minute per IP")
    OTP_VERIFY_RATE_LIMIT_PER_MINUTE: int = Field(default=10, description="Maximum OTP verification attempts per minute per IP")

    @computed_field
    @property
    def database_url_computed(self) -> str:
        """
        Compute the database URL from individual settings or use DATABASE_URL if provided.

        Returns:
            str: PostgreSQL connection URL for asyncpg
        """
        if self.DATABASE_URL:
            url = self.DATABASE_URL
            if url.startswith("postgres://"):
                url = url.replace("postgres://", "postgresql+asyncpg://", 1)
            elif url.startswith("postgresql://"):
                url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
            elif not url.startswith("postgresql+asyncpg://"):
                url = f"postgresql+asyncpg://{url}"
            return url

        return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # OTP Configuration
    OTP_LENGTH: int = Field(default=4, description="Number of digits in a verification code")
    OTP_EXPIRY_MINUTES: int = Field(default=10, description="OTP expiration time in minutes")
    MAX_OTP_ATTEMPTS: int = Field(default=5, description="Maximum OTP verification attempts")
    OTP_VERIFIED_GRACE_SECONDS: int = Field(
        default=5, description="How long a verified registration record is kept before purge"
    )
    OTP_RESEND_MAX_PER_HOUR: int = Field(default=3, description="Maximum OTP resends per email per hour")
    OTP_RESEND_COOLDOWN_SECONDS: int = Field(default=30, description="Minimum seconds between two resends")
    FIXED_OTP: str | None = Field(default="", description="Fixed OTP for testing (leave empty for random OTP in production)")

    # Email Configuration
    EMAIL_PROVIDER: Literal["ses", "resend", "console"] = Field(
        default="console", description="Email provider: 'ses', 'resend' or 'console'"
    )
    EMAIL_FROM_ADDRESS: str = Field(default="no-reply@vrsupermarket.local", description="Sender email address")
    EMAIL_FROM_NAME: str = Field(default="VR Supermarket", description="From name displayed in emails")

    # AWS SES Configuration (used when EMAIL_PROVIDER=ses)
    AWS_SES_REGION: str = Field(default="us-east-1", description="AWS SES region")
    SES_CONFIGURATION_SET: str | None = Field(default=None, description="Optional SES configuration set name")

    # Resend Configuration (used when EMAIL_PROVIDER=resend)
    RESEND_API_KEY: str | None = Field(default=None, description="Resend API key")

    @field_validator("ACCESS_TOKEN_EXPIRE_MINUTES", "REFRESH_TOKEN_EXPIRE_DAYS", "REMEMBER_ME_REFRESH_TOKEN_EXPIRE_DAYS")
    @classmethod
    def validate_token_expiration(cls, v: int, info) -> int:
        if info.field_name == "ACCESS_TOKEN_EXPIRE_MINUTES" and v < 1:
            raise ValueError("Access token expiration must be at least 1 minute")
        if info.field_name != "ACCESS_TOKEN_EXPIRE_MINUTES" and v < 1:
            raise ValueError("Refresh token expiration must be at least 1 day")
        return v

    @field_validator("BCRYPT_ROUNDS")
    @classmethod
    def validate_bcrypt_rounds(cls, v: int) -> int:
        if not 4 <= v <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31")
        return v

    @field_validator("OTP_LENGTH")
    @classmethod
    def validate_otp_length(cls, v: int) -> int:
        if not 4 <= v <= 6:
            raise ValueError("OTP_LENGTH must be between 4 and 6 digits")
        return v

    @model_validator(mode="after")
    def set_environment_defaults(self):
        """Reject unsafe production configuration."""
        if self.ENVIRONMENT == "prod":
            if self.SECRET_KEY == "secret-key" or len(self.SECRET_KEY) < 32:
                raise ValueError(
                    "SECRET_KEY must be at least 32 characters long in production. "
                    "Set a strong secret key in your .env file."
                )
            if self.FIXED_OTP:
                raise ValueError("FIXED_OTP must not be set in production")
            if self.EMAIL_PROVIDER == "console":
                raise ValueError("EMAIL_PROVIDER=console is not allowed in production")
            if self.BCRYPT_ROUNDS < 10:
                raise ValueError("BCRYPT_ROUNDS must be at least 10 in production")

        if self.FIXED_OTP and (len(self.FIXED_OTP) != self.OTP_LENGTH or not self.FIXED_OTP.isdigit()):
            raise ValueError(f"FIXED_OTP must be exactly {self.OTP_LENGTH} digits")

        return self

    @property
    def is_dev(self) -> bool:
        return self.ENVIRONMENT == "dev"


settings = Settings()
