from datetime import datetime, timezone
from pydantic import BaseModel, Field
from typing import Optional, Any


class ApiResponse(BaseModel):
    """Envelope shared by every endpoint."""
    success: bool
    message: str
    data: Optional[Any] = None
    error: Optional[dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
