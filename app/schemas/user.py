"""Request and response DTOs for the auth endpoints.

Request models accept both snake_case and the camelCase names used by the
web client (``rememberMe``, ``refreshToken``...). Field validators reuse the
rules in ``app.utils.validation``; each field reports all of its violated
rules as one message, and pydantic collects the messages of every field.
"""
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel
from app.utils.validation import (
    normalize_email,
    normalize_name,
    parse_date_of_birth,
    validate_email,
    validate_name,
    validate_password,
    validate_phone_number,
    validate_url,
)


def _raise_on(errors: list[dict]) -> None:
    if errors:
        raise ValueError("; ".join(error["message"] for error in errors))


def _checked_email(v: str | None) -> str:
    v = normalize_email(v)
    _raise_on(validate_email(v))
    return v


def _checked_name(v: str | None) -> str:
    v = normalize_name(v)
    _raise_on(validate_name(v))
    return v


def _checked_optional_fields(v: str | None, field: str) -> str | None:
    if v is None:
        return v
    v = v.strip()
    match field:
        case "phone_number":
            _raise_on(validate_phone_number(v))
        case "date_of_birth":
            _raise_on(parse_date_of_birth(v)[1])
        case "profile_image_url":
            _raise_on(validate_url(v))
    return v


class RequestModel(BaseModel):
    model_config = ConfigDict(extra='forbid', alias_generator=to_camel, populate_by_name=True)


class RegistrationSendOTPRequest(RequestModel):
    email: str | None = Field(default=None, validate_default=True)
    password: str | None = Field(default=None, validate_default=True)
    name: str | None = Field(default=None, validate_default=True)
    phone_number: str | None = None
    date_of_birth: str | None = None
    profile_image_url: str | None = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str | None) -> str:
        return _checked_email(v)

    @field_validator('password')
    @classmethod
    def validate_password(cls, v: str | None) -> str | None:
        _raise_on(validate_password(v))
        return v

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str | None) -> str:
        return _checked_name(v)

    @field_validator('phone_number', 'date_of_birth', 'profile_image_url')
    @classmethod
    def validate_optional_fields(cls, v: str | None, info: ValidationInfo) -> str | None:
        return _checked_optional_fields(v, info.field_name)


class OTPVerifyRequest(RequestModel):
    email: str | None = None
    otp: str | None = None

    @field_validator('email', 'otp')
    @classmethod
    def strip_whitespace(cls, v: str | None) -> str | None:
        return v.strip() if v is not None else v


class ResendOTPRequest(RequestModel):
    email: str | None = None

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v: str | None) -> str | None:
        return normalize_email(v) if v is not None else v


class UserLoginRequest(RequestModel):
    email: str | None = None
    password: str | None = None
    remember_me: bool = False

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v: str | None) -> str | None:
        # Format is not checked here so every bad login gets the same answer
        return normalize_email(v) if v is not None else v


class RefreshTokenRequest(RequestModel):
    refresh_token: str | None = None


class LogoutRequest(RequestModel):
    refresh_token: str | None = None
    logout_from_all_devices: bool = False


class ProfileUpdateRequest(RequestModel):
    name: str | None = None
    email: str | None = None
    phone_number: str | None = None
    date_of_birth: str | None = None
    profile_image_url: str | None = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str | None) -> str | None:
        return _checked_name(v) if v is not None else v

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str | None) -> str | None:
        return _checked_email(v) if v is not None else v

    @field_validator('phone_number', 'date_of_birth', 'profile_image_url')
    @classmethod
    def validate_optional_fields(cls, v: str | None, info: ValidationInfo) -> str | None:
        return _checked_optional_fields(v, info.field_name)


class ChangePasswordRequest(RequestModel):
    current_password: str | None = None
    new_password: str | None = None

    @field_validator('new_password')
    @classmethod
    def validate_new_password(cls, v: str | None) -> str | None:
        if v is not None:
            _raise_on(validate_password(v, "new_password"))
        return v


class UserData(BaseModel):
    """Public view of an account. Never carries the password hash."""
    model_config = ConfigDict(extra='ignore')
    id: str
    email: str
    name: str
    phone_number: str | None = None
    date_of_birth: date | None = None
    profile_image_url: str | None = None
    is_active: bool
    email_verified: bool
    last_login: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class OTPSentResponse(BaseModel):
    email: str
    expires_in: int
    expires_at: datetime


class OTPResentResponse(OTPSentResponse):
    remaining_resend_attempts: int
    next_resend_allowed_at: datetime


class TokenResponse(BaseModel):
    token: str
    refresh_token: str
    expires_in: int
    token_type: str = "Bearer"


class AuthResponse(TokenResponse):
    user: UserData


class ProfileCompletion(BaseModel):
    percentage: int
    completed_fields: int
    total_fields: int
    missing_fields: list[str]


class ProfileResponse(BaseModel):
    user: UserData
    last_login: datetime | None = None
    account_created: datetime | None = None
    profile_completion: ProfileCompletion


class ProfileUpdateResponse(BaseModel):
    user: UserData
    profile_completion: ProfileCompletion
