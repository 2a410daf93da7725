"""Repository bundles handed to the auth services.

With AUTH_STORE=memory every request shares the singleton in-memory
instances below; with AUTH_STORE=postgres a bundle is built per request
around one AsyncSession.
"""
from dataclasses import dataclass
from sqlalchemy.ext.asyncio import AsyncSession
from app.interfaces.activity_log import IActivityLogRepository
from app.interfaces.otp import IOTPRepository
from app.interfaces.session import ISessionRepository
from app.interfaces.user import IUserRepository
from app.repositories.activity_log_repository import ActivityLogRepository
from app.repositories.memory import (
    InMemoryActivityLogRepository,
    InMemoryOTPRepository,
    InMemorySessionRepository,
    InMemoryUserRepository,
)
from app.repositories.otp_repository import OTPRepository
from app.repositories.session_repository import SessionRepository
from app.repositories.user_repository import UserRepository


@dataclass
class RepositoryBundle:
    users: IUserRepository
    otps: IOTPRepository
    activity: IActivityLogRepository
    sessions: ISessionRepository

    @classmethod
    def for_session(cls, session: AsyncSession) -> "RepositoryBundle":
        return cls(
            users=UserRepository(session),
            otps=OTPRepository(session),
            activity=ActivityLogRepository(session),
            sessions=SessionRepository(session),
        )

    @classmethod
    def in_memory(cls) -> "RepositoryBundle":
        return cls(
            users=InMemoryUserRepository(),
            otps=InMemoryOTPRepository(),
            activity=InMemoryActivityLogRepository(),
            sessions=InMemorySessionRepository(),
        )


# Singleton instances - shared across all requests when AUTH_STORE=memory
memory_repositories = RepositoryBundle.in_memory()
