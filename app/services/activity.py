"""Activity log side channel.

Auth operations report what happened through ActivityRecorder. A failed
append never fails the caller: the entry is logged, counted and parked in
a bounded per-process outbox. The next successful append in the same
process replays the outbox through the same repository.
"""
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Optional

from app.core.constants import ActivityAction
from app.interfaces.activity_log import IActivityLogRepository
from app.utils.request import ClientInfo

logger = logging.getLogger(__name__)

# Failed entries kept per process
OUTBOX_SIZE = 500

_failed_entries: deque[dict] = deque(maxlen=OUTBOX_SIZE)
_failure_count = 0


class ActivityRecorder:
    def __init__(self, repository: IActivityLogRepository, client: Optional[ClientInfo] = None):
        self.repository = repository
        self.client = client or ClientInfo()

    async def record(
        self,
        action: ActivityAction,
        *,
        user_id: Optional[str] = None,
        email: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> bool:
        """Append an entry. Returns False when it was parked in the outbox instead."""
        global _failure_count

        entry = {
            "action": action.value,
            "user_id": user_id,
            "email": email,
            "details": details or {},
            "ip_address": self.client.ip_address,
            "user_agent": self.client.user_agent,
            "created_at": datetime.now(timezone.utc),
        }
        try:
            await self.repository.append(entry)
        except Exception as e:
            _failure_count += 1
            _failed_entries.append(entry)
            logger.warning(
                f"Activity log append failed for action={action.value} email={email} "
                f"ip={self.client.ip_address} ua={self.client.user_agent}: {e}"
            )
            return False

        logger.debug(f"Activity recorded: {action.value} email={email} user_id={user_id}")
        if _failed_entries:
            replayed = await flush_failed(self.repository)
            if replayed:
                logger.info(f"Replayed {replayed} parked activity log entries")
        return True


async def flush_failed(repository: IActivityLogRepository) -> int:
    """Replay parked entries. Returns how many were written."""
    written = 0
    while _failed_entries:
        entry = _failed_entries[0]
        try:
            await repository.append(entry)
        except Exception as e:
            logger.warning(f"Activity outbox replay stopped: {e}")
            break
        _failed_entries.popleft()
        written += 1
    return written


def failed_entries() -> list[dict]:
    return list(_failed_entries)


def failure_count() -> int:
    return _failure_count


def reset_outbox() -> None:
    global _failure_count
    _failed_entries.clear()
    _failure_count = 0
