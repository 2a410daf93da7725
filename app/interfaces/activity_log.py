from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional


class IActivityLogRepository(ABC):
    """Append-only activity log with the window queries used for throttling."""

    @abstractmethod
    async def append(self, entry: dict) -> dict:
        """Append an entry.

        Args:
            entry: Fields ``action`` and optionally ``user_id``, ``email``,
                ``details``, ``ip_address``, ``user_agent``, ``created_at``

        Returns:
            The stored entry
        """
        pass

    @abstractmethod
    async def count_since(self, email: str, action: str, since: datetime) -> int:
        """Count entries for an email and action created at or after ``since``."""
        pass

    @abstractmethod
    async def most_recent_since(self, email: str, action: str, since: datetime) -> Optional[dict]:
        """Newest matching entry created at or after ``since``, if any."""
        pass

    @abstractmethod
    async def oldest_since(self, email: str, action: str, since: datetime) -> Optional[dict]:
        """Oldest matching entry created at or after ``since``, if any."""
        pass
