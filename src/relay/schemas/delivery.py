from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Attachment(BaseModel):
    model_config = ConfigDict(frozen=True)

    filename: str
    content: bytes
    content_type: str = "application/zip"


class DeliveryRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    destination: str
    payload: dict[str, Any]
    attachment: Attachment | None = None
    max_retries: int | None = Field(default=None, ge=0)


class DeliveryResult(BaseModel):
    success: bool
    status_code: int
    data: dict[str, Any] | None = None
    error: str | None = None
    upstream_status: int | None = None

    @property
    def thread_id(self) -> str | None:
        """Channel id of the thread a post created, when Discord returned one."""
        if not self.data:
            return None
        channel_id = self.data.get("channel_id")
        return str(channel_id) if channel_id else None

    @property
    def message_id(self) -> str | None:
        if not self.data or not self.data.get("id"):
            return None
        return str(self.data["id"])


class HandlerResult(BaseModel):
    status: int
    message: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300
