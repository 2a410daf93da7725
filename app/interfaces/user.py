from abc import ABC, abstractmethod
from typing import Optional


class IUserRepository(ABC):
    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[dict]:
        """Retrieve a user by email (case-insensitive).

        Args:
            email: User's email address

        Returns:
            User data if found, None otherwise
        """
        pass

    @abstractmethod
    async def get_by_id(self, user_id: str) -> Optional[dict]:
        """Retrieve a user by id.

        Args:
            user_id: User identifier

        Returns:
            User data if found, None otherwise
        """
        pass

    @abstractmethod
    async def insert(self, user_data: dict) -> dict:
        """Create a new user.

        Args:
            user_data: Fields of the new account, including ``password_hash``

        Returns:
            The stored user

        Raises:
            ConflictError: If the email already belongs to an account
        """
        pass

    @abstractmethod
    async def update(self, user_id: str, fields: dict) -> Optional[dict]:
        """Update fields of an existing user.

        Args:
            user_id: User identifier
            fields: Column values to set

        Returns:
            The updated user, or None if no such user exists

        Raises:
            ConflictError: If ``email`` is changed to one already in use
        """
        pass
