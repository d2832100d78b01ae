from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from relay.templates.markdown import truncate_text

DISCORD_CONTENT_LIMIT = 2000
DISCORD_TITLE_LIMIT = 256
DISCORD_DESCRIPTION_LIMIT = 4096
DISCORD_FIELD_VALUE_LIMIT = 1024
DISCORD_THREAD_NAME_LIMIT = 100
DISCORD_BUTTON_LABEL_LIMIT = 80
DISCORD_BUTTONS_PER_ROW = 5

EMBED_COLOR = 1190012
UNKNOWN_USER = "Unknown User"


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def iso_timestamp(value: datetime | None) -> str:
    if value is None:
        return iso_now()
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def with_ping(ping: str, text: str, separator: str = " ") -> str:
    return f"{ping}{separator}{text}" if ping else text


def link_button(label: str, url: str) -> dict[str, Any]:
    return {
        "type": 2,
        "style": 5,
        "label": truncate_text(label, DISCORD_BUTTON_LABEL_LIMIT),
        "url": url,
    }


def action_row(buttons: list[dict[str, Any]]) -> dict[str, Any]:
    return {"type": 1, "components": buttons[:DISCORD_BUTTONS_PER_ROW]}


def thread_name(title: str) -> str:
    return truncate_text(title, DISCORD_THREAD_NAME_LIMIT)
