"""Pydantic schemas for request/response validation."""
from app.schemas.user import (
    RegistrationSendOTPRequest,
    OTPVerifyRequest,
    ResendOTPRequest,
    UserLoginRequest,
    RefreshTokenRequest,
    LogoutRequest,
    ProfileUpdateRequest,
    ChangePasswordRequest,
    UserData,
    OTPSentResponse,
    OTPResentResponse,
    TokenResponse,
    AuthResponse,
    ProfileResponse,
    ProfileUpdateResponse,
)
from app.schemas.response import ApiResponse

__all__ = [
    # Requests
    "RegistrationSendOTPRequest",
    "OTPVerifyRequest",
    "ResendOTPRequest",
    "UserLoginRequest",
    "RefreshTokenRequest",
    "LogoutRequest",
    "ProfileUpdateRequest",
    "ChangePasswordRequest",
    # Responses
    "UserData",
    "OTPSentResponse",
    "OTPResentResponse",
    "TokenResponse",
    "AuthResponse",
    "ProfileResponse",
    "ProfileUpdateResponse",
    # Response wrapper
    "ApiResponse",
]
