from fastapi import APIRouter, status, Depends
from app.schemas.user import (
    RegistrationSendOTPRequest,
    OTPVerifyRequest,
    ResendOTPRequest,
    UserLoginRequest,
    RefreshTokenRequest,
    LogoutRequest,
    ProfileUpdateRequest,
    ChangePasswordRequest,
    OTPSentResponse,
    OTPResentResponse,
    AuthResponse,
    TokenResponse,
    ProfileResponse,
    ProfileUpdateResponse,
)
from app.schemas.response import ApiResponse
from app.services.auth import AuthService
from app.services.registration import RegistrationService
from app.core.constants import SuccessMessages
from app.core.dependencies import (
    check_login_rate_limit,
    check_otp_verify_rate_limit,
    get_auth_service,
    get_current_user,
    get_registration_service,
)

router = APIRouter()


@router.post("/register/send-otp", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def register_send_otp(
    request: RegistrationSendOTPRequest,
    registration_service: RegistrationService = Depends(get_registration_service)
):
    """Validate sign-up details and email a verification code."""
    result = await registration_service.send_otp(request.model_dump(exclude_none=True))

    return ApiResponse(
        success=True,
        message=SuccessMessages.OTP_SENT,
        data=OTPSentResponse(**result)
    )


@router.post("/register/verify", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def register_verify(
    request: OTPVerifyRequest,
    _: None = Depends(check_otp_verify_rate_limit),
    registration_service: RegistrationService = Depends(get_registration_service)
):
    """Verify the emailed code, create the account and sign it in."""
    result = await registration_service.verify_otp(email=request.email, code=request.otp)

    return ApiResponse(
        success=True,
        message=SuccessMessages.REGISTRATION_COMPLETE,
        data=AuthResponse(**result)
    )


@router.post("/register/resend", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def register_resend(
    request: ResendOTPRequest,
    registration_service: RegistrationService = Depends(get_registration_service)
):
    """Send a new code for a pending registration."""
    result = await registration_service.resend_otp(email=request.email)

    return ApiResponse(
        success=True,
        message=SuccessMessages.OTP_RESENT,
        data=OTPResentResponse(**result)
    )


@router.post("/login", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def login(
    request: UserLoginRequest,
    _: None = Depends(check_login_rate_limit),
    auth_service: AuthService = Depends(get_auth_service)
):
    result = await auth_service.login(
        email=request.email,
        password=request.password,
        remember_me=request.remember_me
    )

    return ApiResponse(
        success=True,
        message=SuccessMessages.LOGIN,
        data=AuthResponse(**result)
    )


@router.post("/refresh", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def refresh(
    request: RefreshTokenRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Rotate a refresh token into a new token pair."""
    result = await auth_service.refresh(request.refresh_token)

    return ApiResponse(
        success=True,
        message=SuccessMessages.TOKEN_REFRESHED,
        data=TokenResponse(**result)
    )


@router.post("/logout", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def logout(
    request: LogoutRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Invalidate the session(s) behind a refresh token. Always succeeds."""
    await auth_service.logout(request.refresh_token, all_devices=request.logout_from_all_devices)

    return ApiResponse(success=True, message=SuccessMessages.LOGOUT)


@router.get("/profile", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def get_profile(
    current_user: dict = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service)
):
    result = await auth_service.get_profile(current_user)

    return ApiResponse(
        success=True,
        message=SuccessMessages.PROFILE_RETRIEVED,
        data=ProfileResponse(**result)
    )


@router.put("/profile", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def update_profile(
    request: ProfileUpdateRequest,
    current_user: dict = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service)
):
    result = await auth_service.update_profile(current_user, request.model_dump(exclude_none=True))

    return ApiResponse(
        success=True,
        message=SuccessMessages.PROFILE_UPDATED,
        data=ProfileUpdateResponse(**result)
    )


@router.post("/change-password", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def change_password(
    request: ChangePasswordRequest,
    current_user: dict = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service)
):
    await auth_service.change_password(current_user, request.current_password, request.new_password)

    return ApiResponse(success=True, message=SuccessMessages.PASSWORD_CHANGED)
