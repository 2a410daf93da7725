"""Dependencies for FastAPI endpoints."""
from typing import AsyncGenerator, Callable
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from slowapi import Limiter
from slowapi.util import get_remote_address
from limits import parse_many
from app.core.config import settings
from app.core.constants import AuthErrorDetails
from app.core.database import db_manager
from app.core.exceptions import AppException, RateLimitError
from app.interfaces.mailer import IMailer
from app.repositories.shared import RepositoryBundle, memory_repositories
from app.services.activity import ActivityRecorder
from app.services.auth import AuthService
from app.services.email import get_mailer
from app.services.rate_limiter import OTPResendRateLimiter
from app.services.registration import RegistrationService
from app.services.request_gate import AuthContext, RequestGate
from app.utils.request import ClientInfo, get_client_info

# HTTP Bearer token scheme; missing headers are reported by the gate itself
security = HTTPBearer(auto_error=False)

# Can be changed to Redis later: storage_uri="redis://localhost:6379"
limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def create_rate_limit_dependency(limit: int, window_seconds: int, error_message: str) -> Callable:
    """
    Build a per-IP rate limiting dependency backed by the slowapi limiter.

    Args:
        limit: Maximum number of requests allowed
        window_seconds: Time window in seconds
        error_message: Error message to return when rate limit exceeded

    Returns:
        Dependency function that can be used with FastAPI Depends()
    """
    rate_limit = parse_many(f"{limit}/{window_seconds} second")[0]

    async def rate_limit_check(request: Request) -> None:
        app_limiter = request.app.state.limiter
        key = f"{request.url.path}:{get_remote_address(request)}"

        if not app_limiter._limiter.hit(rate_limit, key):
            raise RateLimitError(error_message, retry_after=window_seconds)

    return rate_limit_check


check_login_rate_limit = create_rate_limit_dependency(
    settings.LOGIN_RATE_LIMIT_PER_MINUTE, 60, AuthErrorDetails.RATE_LIMIT_EXCEEDED_LOGIN
)
check_otp_verify_rate_limit = create_rate_limit_dependency(
    settings.OTP_VERIFY_RATE_LIMIT_PER_MINUTE, 60, AuthErrorDetails.RATE_LIMIT_EXCEEDED_OTP_VERIFY
)


async def get_repositories() -> AsyncGenerator[RepositoryBundle, None]:
    """
    Yield the repositories for one request.

    For PostgreSQL, application errors still commit the work done before
    they were raised (attempt counters, compensating deletes); any other
    exception rolls back.
    """
    if settings.AUTH_STORE == "memory":
        yield memory_repositories
        return

    async with db_manager.session_scope(commit_on=(AppException,)) as session:
        yield RepositoryBundle.for_session(session)


def get_client(request: Request) -> ClientInfo:
    return get_client_info(request)


def get_mailer_dependency() -> IMailer:
    return get_mailer()


def get_activity_recorder(
    repositories: RepositoryBundle = Depends(get_repositories),
    client: ClientInfo = Depends(get_client)
) -> ActivityRecorder:
    return ActivityRecorder(repositories.activity, client)


def get_auth_service(
    repositories: RepositoryBundle = Depends(get_repositories),
    activity: ActivityRecorder = Depends(get_activity_recorder),
    client: ClientInfo = Depends(get_client)
) -> AuthService:
    """Dependency injection for AuthService with the request's repositories."""
    return AuthService(
        user_repository=repositories.users,
        session_repository=repositories.sessions,
        activity=activity,
        client=client,
    )


def get_registration_service(
    repositories: RepositoryBundle = Depends(get_repositories),
    auth_service: AuthService = Depends(get_auth_service),
    activity: ActivityRecorder = Depends(get_activity_recorder),
    mailer: IMailer = Depends(get_mailer_dependency),
    client: ClientInfo = Depends(get_client)
) -> RegistrationService:
    return RegistrationService(
        user_repository=repositories.users,
        otp_repository=repositories.otps,
        mailer=mailer,
        auth_service=auth_service,
        rate_limiter=OTPResendRateLimiter(repositories.activity),
        activity=activity,
        client=client,
    )


async def get_auth_context(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    repositories: RepositoryBundle = Depends(get_repositories)
) -> AuthContext:
    """
    Request Gate for protected endpoints.

    Verifies the bearer access token, loads the live user and attaches
    the resulting context to ``request.state.auth``.

    Raises:
        AuthError: If the token is missing, invalid, of the wrong type, or
            the user is missing or inactive
    """
    token = credentials.credentials if credentials else None
    context = await RequestGate(repositories.users).authenticate(token)
    request.state.auth = context
    return context


async def get_current_user(context: AuthContext = Depends(get_auth_context)) -> dict:
    return context.user
