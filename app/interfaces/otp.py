from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Optional


class IOTPRepository(ABC):
    """Pending registrations keyed by normalized email."""

    @abstractmethod
    async def upsert_by_email(self, record: dict) -> dict:
        """Create or replace the pending registration for ``record["email"]``.

        Any previous row for the email is overwritten, including its
        attempt counter and verified flag.

        Args:
            record: Fields ``email``, ``otp_hash``, ``user_data``,
                ``expires_at`` and optionally ``resend_count``,
                ``last_resend_at``, ``ip_address``, ``user_agent``

        Returns:
            The stored record
        """
        pass

    @abstractmethod
    async def get_unverified_by_email(self, email: str) -> Optional[dict]:
        """Retrieve the pending registration for an email, ignoring verified rows.

        Args:
            email: Normalized email address

        Returns:
            Record if an unverified one exists, None otherwise
        """
        pass

    @abstractmethod
    async def increment_attempts(self, record_id: str) -> int:
        """Increment failed verification attempts.

        Args:
            record_id: Record identifier

        Returns:
            The attempt count after the increment
        """
        pass

    @abstractmethod
    async def mark_verified(self, record_id: str, verified_at: datetime) -> None:
        """Flag a record as verified.

        Args:
            record_id: Record identifier
            verified_at: Time of successful verification
        """
        pass

    @abstractmethod
    async def delete_by_email(self, email: str) -> None:
        pass

    @abstractmethod
    async def delete_by_id(self, record_id: str) -> None:
        pass

    @abstractmethod
    async def purge_stale(self, now: datetime, verified_grace: timedelta) -> int:
        """Delete expired unverified rows and verified rows past the grace delay.

        Args:
            now: Reference time
            verified_grace: How long verified rows are kept after ``verified_at``

        Returns:
            Number of rows removed
        """
        pass
