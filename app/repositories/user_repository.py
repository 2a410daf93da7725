"""User repository implementation using PostgreSQL."""
import logging
from typing import Optional
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.constants import AuthErrorDetails
from app.core.exceptions import ConflictError
from app.interfaces.user import IUserRepository
from app.models.user import User

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {
    "email",
    "name",
    "password_hash",
    "phone_number",
    "date_of_birth",
    "profile_image_url",
    "is_active",
    "email_verified",
    "last_login",
}


class UserRepository(IUserRepository):
    """PostgreSQL implementation of user repository using SQLAlchemy."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _get_model_by_email(self, email: str) -> Optional[User]:
        stmt = select(User).where(func.lower(User.email) == email.strip().lower())
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> Optional[dict]:
        """Retrieve a user by email."""
        user = await self._get_model_by_email(email)
        return user.to_dict() if user else None

    async def get_by_id(self, user_id: str) -> Optional[dict]:
        """Retrieve a user by id."""
        user = await self._session.get(User, user_id)
        return user.to_dict() if user else None

    async def insert(self, user_data: dict) -> dict:
        """Create a user, raising ConflictError when the email is taken."""
        email = user_data["email"].strip().lower()
        if await self._get_model_by_email(email):
            raise ConflictError(AuthErrorDetails.EMAIL_ALREADY_EXISTS, data={"email": email})

        user = User(
            email=email,
            name=user_data["name"],
            password_hash=user_data["password_hash"],
            phone_number=user_data.get("phone_number"),
            date_of_birth=user_data.get("date_of_birth"),
            profile_image_url=user_data.get("profile_image_url"),
            is_active=user_data.get("is_active", True),
            email_verified=user_data.get("email_verified", False),
        )

        try:
            async with self._session.begin_nested():
                self._session.add(user)
                await self._session.flush()
        except IntegrityError as e:
            # Lost a race with a concurrent insert of the same email
            logger.warning(f"Unique violation inserting user {email}: {e.orig}")
            raise ConflictError(AuthErrorDetails.EMAIL_ALREADY_EXISTS, data={"email": email}) from e

        await self._session.refresh(user)
        return user.to_dict()

    async def update(self, user_id: str, fields: dict) -> Optional[dict]:
        """Update selected columns of a user."""
        user = await self._session.get(User, user_id)
        if not user:
            return None

        if "email" in fields:
            fields = {**fields, "email": fields["email"].strip().lower()}
            if fields["email"] != user.email:
                other = await self._get_model_by_email(fields["email"])
                if other and other.id != user.id:
                    raise ConflictError(AuthErrorDetails.EMAIL_ALREADY_EXISTS, data={"email": fields["email"]})

        for key, value in fields.items():
            if key not in UPDATABLE_FIELDS:
                raise ValueError(f"Field {key!r} cannot be updated")
            setattr(user, key, value)

        try:
            async with self._session.begin_nested():
                await self._session.flush()
        except IntegrityError as e:
            raise ConflictError(AuthErrorDetails.EMAIL_ALREADY_EXISTS) from e

        await self._session.refresh(user)
        return user.to_dict()
