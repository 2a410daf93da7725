"""Helpers for reading caller details off an incoming request."""
from dataclasses import dataclass
from fastapi import Request


@dataclass(frozen=True)
class ClientInfo:
    ip_address: str = "unknown"
    user_agent: str = "unknown"


def get_client_ip(request: Request) -> str:
    """Resolve the caller IP, honouring proxy headers."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


def get_client_info(request: Request) -> ClientInfo:
    return ClientInfo(
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent", "unknown"),
    )
