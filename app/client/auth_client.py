"""Async HTTP client for the auth API.

Holds the caller's token pair and applies the refresh-once convention: a 401
from a protected call triggers exactly one refresh and one retry. A second
401, or a refresh that fails, clears the stored tokens and raises
``SessionExpiredError``.
"""
import logging
from typing import Any, Optional

import httpx

from app.core.constants import AuthErrorDetails

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1/auth"


class ApiError(Exception):
    """Non-success response from the auth API."""

    def __init__(self, status_code: int, message: str, payload: Optional[dict] = None):
        self.status_code = status_code
        self.message = message
        self.payload = payload or {}
        super().__init__(message)

    @property
    def kind(self) -> Optional[str]:
        error = self.payload.get("error") or {}
        return error.get("kind")

    @property
    def retry_after(self) -> Optional[int]:
        error = self.payload.get("error") or {}
        return error.get("retry_after")


class SessionExpiredError(ApiError):
    def __init__(self, payload: Optional[dict] = None):
        super().__init__(401, AuthErrorDetails.SESSION_EXPIRED, payload)


class AuthClient:
    def __init__(
        self,
        base_url: str,
        http_client: Optional[httpx.AsyncClient] = None,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        timeout: float = 10.0
    ):
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self.access_token = access_token
        self.refresh_token = refresh_token

    @property
    def is_authenticated(self) -> bool:
        return self.access_token is not None

    def clear_tokens(self) -> None:
        self.access_token = None
        self.refresh_token = None

    def _store_tokens(self, data: dict) -> None:
        self.access_token = data["token"]
        self.refresh_token = data.get("refresh_token", self.refresh_token)

    async def _send(self, method: str, path: str, json: Optional[dict], auth: bool) -> httpx.Response:
        headers = {}
        if auth and self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        try:
            return await self._http.request(method, f"{API_PREFIX}{path}", json=json, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(f"Network error calling {method} {path}: {e}")
            raise ApiError(0, "Network error while communicating with the auth service.") from e

    @staticmethod
    def _payload(response: httpx.Response) -> dict:
        try:
            payload = response.json()
        except ValueError:
            return {"success": False, "message": response.text}
        if not isinstance(payload, dict):
            return {"success": False, "message": response.text}
        return payload

    @classmethod
    def _unwrap(cls, response: httpx.Response) -> dict:
        payload = cls._payload(response)
        if response.is_success and payload.get("success", True):
            return payload
        raise ApiError(response.status_code, payload.get("message") or response.reason_phrase, payload)

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[dict] = None,
        auth: bool = True
    ) -> dict:
        """
        Call the API and return the response envelope.

        Protected calls (``auth=True``) that come back 401 are retried once
        after a token refresh.

        Raises:
            SessionExpiredError: The refresh failed or the retry was rejected
            ApiError: Any other non-success response
        """
        response = await self._send(method, path, json, auth)
        if auth and response.status_code == 401:
            if not await self.refresh():
                self.clear_tokens()
                raise SessionExpiredError()

            response = await self._send(method, path, json, auth)
            if response.status_code == 401:
                self.clear_tokens()
                raise SessionExpiredError(self._payload(response))

        return self._unwrap(response)

    async def refresh(self) -> bool:
        """Exchange the stored refresh token for a new pair. Returns False on any failure."""
        if not self.refresh_token:
            return False
        try:
            payload = await self.request(
                "POST", "/refresh", json={"refreshToken": self.refresh_token}, auth=False
            )
        except ApiError as e:
            logger.info(f"Token refresh rejected: {e.message}")
            return False

        self._store_tokens(payload["data"])
        return True

    async def send_otp(self, details: dict[str, Any]) -> dict:
        payload = await self.request("POST", "/register/send-otp", json=details, auth=False)
        return payload["data"]

    async def verify_otp(self, email: str, otp: str) -> dict:
        payload = await self.request(
            "POST", "/register/verify", json={"email": email, "otp": otp}, auth=False
        )
        self._store_tokens(payload["data"])
        return payload["data"]

    async def resend_otp(self, email: str) -> dict:
        payload = await self.request("POST", "/register/resend", json={"email": email}, auth=False)
        return payload["data"]

    async def login(self, email: str, password: str, remember_me: bool = False) -> dict:
        payload = await self.request(
            "POST",
            "/login",
            json={"email": email, "password": password, "rememberMe": remember_me},
            auth=False
        )
        self._store_tokens(payload["data"])
        return payload["data"]

    async def logout(self, all_devices: bool = False) -> None:
        body = {"refreshToken": self.refresh_token, "logoutFromAllDevices": all_devices}
        try:
            await self.request("POST", "/logout", json=body, auth=False)
        finally:
            self.clear_tokens()

    async def get_profile(self) -> dict:
        payload = await self.request("GET", "/profile")
        return payload["data"]

    async def update_profile(self, fields: dict[str, Any]) -> dict:
        payload = await self.request("PUT", "/profile", json=fields)
        return payload["data"]

    async def change_password(self, current_password: str, new_password: str) -> None:
        await self.request(
            "POST",
            "/change-password",
            json={"currentPassword": current_password, "newPassword": new_password}
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> "AuthClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
