from __future__ import annotations

from typing import TypedDict

from relay.schemas.item import IngestibleItem


class PollState(TypedDict, total=False):
    source: str
    started_at: str
    text: str
    items: list[IngestibleItem]
    selected: list[IngestibleItem]
    processed_ids: list[str]
    processed_count: int
    errors: list[str]
    failed: bool
    message: str
