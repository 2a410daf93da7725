"""In-memory repositories for development and tests (AUTH_STORE=memory)."""
import asyncio
import copy
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional
from app.core.constants import AuthErrorDetails
from app.core.exceptions import ConflictError
from app.interfaces.activity_log import IActivityLogRepository
from app.interfaces.otp import IOTPRepository
from app.interfaces.session import ISessionRepository
from app.interfaces.user import IUserRepository


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryUserRepository(IUserRepository):
    def __init__(self):
        self._lock = asyncio.Lock()
        self._users: dict[str, dict] = {}  # id -> user data

    def _find_by_email(self, email: str) -> Optional[dict]:
        email = email.strip().lower()
        for user in self._users.values():
            if user["email"] == email:
                return user
        return None

    async def get_by_email(self, email: str) -> Optional[dict]:
        async with self._lock:
            user = self._find_by_email(email)
            return dict(user) if user else None

    async def get_by_id(self, user_id: str) -> Optional[dict]:
        async with self._lock:
            user = self._users.get(user_id)
            return dict(user) if user else None

    async def insert(self, user_data: dict) -> dict:
        async with self._lock:
            email = user_data["email"].strip().lower()
            if self._find_by_email(email):
                raise ConflictError(AuthErrorDetails.EMAIL_ALREADY_EXISTS, data={"email": email})
            now = _now()
            user = {
                "id": str(uuid.uuid4()),
                "email": email,
                "name": user_data["name"],
                "password_hash": user_data["password_hash"],
                "phone_number": user_data.get("phone_number"),
                "date_of_birth": user_data.get("date_of_birth"),
                "profile_image_url": user_data.get("profile_image_url"),
                "is_active": user_data.get("is_active", True),
                "email_verified": user_data.get("email_verified", False),
                "last_login": None,
                "created_at": now,
                "updated_at": now,
            }
            self._users[user["id"]] = user
            return dict(user)

    async def update(self, user_id: str, fields: dict) -> Optional[dict]:
        async with self._lock:
            user = self._users.get(user_id)
            if not user:
                return None
            if "email" in fields:
                fields = {**fields, "email": fields["email"].strip().lower()}
                other = self._find_by_email(fields["email"])
                if other and other["id"] != user_id:
                    raise ConflictError(AuthErrorDetails.EMAIL_ALREADY_EXISTS, data={"email": fields["email"]})
            user.update(fields)
            user["updated_at"] = _now()
            return dict(user)


class InMemoryOTPRepository(IOTPRepository):
    def __init__(self):
        self._lock = asyncio.Lock()
        self._records: dict[str, dict] = {}  # email -> record

    def _find_by_id(self, record_id: str) -> Optional[dict]:
        for record in self._records.values():
            if record["id"] == record_id:
                return record
        return None

    async def upsert_by_email(self, record: dict) -> dict:
        async with self._lock:
            email = record["email"].lower()
            now = _now()
            existing = self._records.get(email)
            stored = {
                "id": existing["id"] if existing else str(uuid.uuid4()),
                "email": email,
                "otp_hash": record["otp_hash"],
                "user_data": copy.deepcopy(record["user_data"]),
                "attempts": 0,
                "verified": False,
                "verified_at": None,
                "resend_count": record.get("resend_count", 0),
                "last_resend_at": record.get("last_resend_at"),
                "ip_address": record.get("ip_address"),
                "user_agent": record.get("user_agent"),
                "expires_at": record["expires_at"],
                "created_at": existing["created_at"] if existing else now,
                "updated_at": now,
            }
            self._records[email] = stored
            return copy.deepcopy(stored)

    async def get_unverified_by_email(self, email: str) -> Optional[dict]:
        async with self._lock:
            record = self._records.get(email.lower())
            if not record or record["verified"]:
                return None
            return copy.deepcopy(record)

    async def increment_attempts(self, record_id: str) -> int:
        async with self._lock:
            record = self._find_by_id(record_id)
            if not record:
                return 0
            record["attempts"] += 1
            record["updated_at"] = _now()
            return record["attempts"]

    async def mark_verified(self, record_id: str, verified_at: datetime) -> None:
        async with self._lock:
            record = self._find_by_id(record_id)
            if record:
                record["verified"] = True
                record["verified_at"] = verified_at

    async def delete_by_email(self, email: str) -> None:
        async with self._lock:
            self._records.pop(email.lower(), None)

    async def delete_by_id(self, record_id: str) -> None:
        async with self._lock:
            record = self._find_by_id(record_id)
            if record:
                self._records.pop(record["email"], None)

    async def purge_stale(self, now: datetime, verified_grace: timedelta) -> int:
        async with self._lock:
            stale = [
                email for email, record in self._records.items()
                if (not record["verified"] and record["expires_at"] < now)
                or (record["verified"] and record["verified_at"] < now - verified_grace)
            ]
            for email in stale:
                del self._records[email]
            return len(stale)

    async def get_any_by_email(self, email: str) -> Optional[dict]:
        """Test helper returning the row regardless of its verified flag."""
        async with self._lock:
            record = self._records.get(email.lower())
            return copy.deepcopy(record) if record else None

    async def set_fields(self, email: str, **fields) -> None:
        """Test helper for moving a record through time."""
        async with self._lock:
            self._records[email.lower()].update(fields)


class InMemoryActivityLogRepository(IActivityLogRepository):
    def __init__(self):
        self._lock = asyncio.Lock()
        self._entries: list[dict] = []

    def _window(self, email: str, action: str, since: datetime) -> list[dict]:
        email = email.lower()
        return sorted(
            (
                entry for entry in self._entries
                if entry["email"] == email and entry["action"] == action and entry["created_at"] >= since
            ),
            key=lambda entry: entry["created_at"],
        )

    async def append(self, entry: dict) -> dict:
        async with self._lock:
            stored = {
                "id": str(uuid.uuid4()),
                "user_id": entry.get("user_id"),
                "email": entry["email"].lower() if entry.get("email") else None,
                "action": str(entry["action"]),
                "details": dict(entry.get("details") or {}),
                "ip_address": entry.get("ip_address"),
                "user_agent": entry.get("user_agent"),
                "created_at": entry.get("created_at") or _now(),
            }
            self._entries.append(stored)
            return dict(stored)

    async def count_since(self, email: str, action: str, since: datetime) -> int:
        async with self._lock:
            return len(self._window(email, action, since))

    async def most_recent_since(self, email: str, action: str, since: datetime) -> Optional[dict]:
        async with self._lock:
            entries = self._window(email, action, since)
            return dict(entries[-1]) if entries else None

    async def oldest_since(self, email: str, action: str, since: datetime) -> Optional[dict]:
        async with self._lock:
            entries = self._window(email, action, since)
            return dict(entries[0]) if entries else None

    @property
    def entries(self) -> list[dict]:
        return [dict(entry) for entry in self._entries]


class InMemorySessionRepository(ISessionRepository):
    def __init__(self):
        self._lock = asyncio.Lock()
        self._sessions: dict[str, dict] = {}  # refresh_token_hash -> session

    async def create(self, session_data: dict) -> dict:
        async with self._lock:
            stored = {
                "id": str(uuid.uuid4()),
                "user_id": session_data["user_id"],
                "refresh_token_hash": session_data["refresh_token_hash"],
                "token_id": session_data["token_id"],
                "ip_address": session_data.get("ip_address"),
                "user_agent": session_data.get("user_agent"),
                "is_active": True,
                "expires_at": session_data["expires_at"],
                "created_at": _now(),
            }
            self._sessions[stored["refresh_token_hash"]] = stored
            return dict(stored)

    async def get_active_by_token_hash(self, token_hash: str) -> Optional[dict]:
        async with self._lock:
            session = self._sessions.get(token_hash)
            return dict(session) if session and session["is_active"] else None

    async def deactivate_by_token_hash(self, token_hash: str) -> int:
        async with self._lock:
            session = self._sessions.get(token_hash)
            if not session or not session["is_active"]:
                return 0
            session["is_active"] = False
            return 1

    async def deactivate_all_for_user(self, user_id: str) -> int:
        async with self._lock:
            changed = 0
            for session in self._sessions.values():
                if session["user_id"] == user_id and session["is_active"]:
                    session["is_active"] = False
                    changed += 1
            return changed

    @property
    def sessions(self) -> list[dict]:
        return [dict(session) for session in self._sessions.values()]
