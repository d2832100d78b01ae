from __future__ import annotations

from typing import Any

from relay.config import RelayConfig
from relay.schemas.events import MailEvent
from relay.templates.common import DISCORD_CONTENT_LIMIT, thread_name
from relay.templates.markdown import html_to_markdown, truncate_text

SUBJECT_LIMIT = 200


def mail_body(event: MailEvent) -> str:
    if event.plain and event.plain.strip():
        return event.plain.strip()
    if event.html and event.html.strip():
        return html_to_markdown(event.html) or "No content"
    return "No content"


def split_message(text: str, first_limit: int, limit: int = DISCORD_CONTENT_LIMIT) -> list[str]:
    """Split text into Discord-sized chunks, preferring line breaks near the end of each chunk."""
    chunks: list[str] = []
    remaining = text
    size = max(first_limit, 1)
    while len(remaining) > size:
        cut = remaining.rfind("\n", 0, size)
        if cut < size // 2:
            cut = size
        chunks.append(remaining[:cut].rstrip())
        remaining = remaining[cut:].lstrip("\n")
        size = limit
    chunks.append(remaining)
    return chunks


def mail_messages(event: MailEvent, config: RelayConfig) -> tuple[dict[str, Any], list[dict[str, Any]]]:
    """Build the thread-opening message and any follow-up messages for the overflow."""
    subject = truncate_text(event.subject, SUBJECT_LIMIT)
    header = f"📧 New E-Mail from *{event.sender}*:\n# {subject}\n\n"
    chunks = split_message(mail_body(event), DISCORD_CONTENT_LIMIT - len(header))

    username = f"{config.project_name} Mail Bot"
    first = {
        "username": username,
        "avatar_url": config.avatar_url,
        "content": header + chunks[0],
        "embeds": [],
        "thread_name": thread_name(event.subject),
        "applied_tags": [config.tags.mails] if config.tags.mails else [],
    }
    followups = [
        {"username": username, "avatar_url": config.avatar_url, "content": chunk}
        for chunk in chunks[1:]
        if chunk
    ]
    return first, followups
