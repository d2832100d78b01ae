from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class IngestibleItem(BaseModel):
    stable_id: str
    title: str
    source_url: str
    published_at: datetime | None = None
    body: str = ""
    summary: str = ""


class PollResult(BaseModel):
    source: str
    success: bool
    processed_count: int = 0
    errors: list[str] = Field(default_factory=list)
    message: str = ""
