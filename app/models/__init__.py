"""SQLAlchemy ORM models."""
from app.models.user import User
from app.models.registration import PendingRegistration
from app.models.session import UserSession
from app.models.activity_log import ActivityLog

__all__ = [
    "User",
    "PendingRegistration",
    "UserSession",
    "ActivityLog",
]
