from abc import ABC, abstractmethod
from typing import Optional


class ISessionRepository(ABC):
    @abstractmethod
    async def create(self, session_data: dict) -> dict:
        """Store a session for an issued refresh token.

        Args:
            session_data: Fields ``user_id``, ``refresh_token_hash``,
                ``token_id``, ``expires_at`` and optional client details

        Returns:
            The stored session
        """
        pass

    @abstractmethod
    async def get_active_by_token_hash(self, token_hash: str) -> Optional[dict]:
        pass

    @abstractmethod
    async def deactivate_by_token_hash(self, token_hash: str) -> int:
        """Mark the session for one refresh token inactive.

        Returns:
            Number of sessions changed
        """
        pass

    @abstractmethod
    async def deactivate_all_for_user(self, user_id: str) -> int:
        """Mark every active session of a user inactive.

        Returns:
            Number of sessions changed
        """
        pass
