from __future__ import annotations

import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import feedparser

from relay.errors import FeedParseError
from relay.schemas.item import IngestibleItem

logger = logging.getLogger(__name__)


def parse_entry_datetime(entry: dict[str, Any]) -> datetime | None:
    parsed_struct = entry.get("published_parsed") or entry.get("updated_parsed")
    if parsed_struct is not None:
        try:
            return datetime(
                parsed_struct.tm_year,
                parsed_struct.tm_mon,
                parsed_struct.tm_mday,
                parsed_struct.tm_hour,
                parsed_struct.tm_min,
                parsed_struct.tm_sec,
                tzinfo=timezone.utc,
            )
        except (AttributeError, ValueError):
            pass

    date_text = entry.get("published") or entry.get("updated")
    if not date_text:
        return None
    try:
        parsed = datetime.fromisoformat(str(date_text).replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = parsedate_to_datetime(str(date_text))
        except (TypeError, ValueError):
            return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def entry_content(entry: dict[str, Any]) -> str:
    content = entry.get("content") or []
    if isinstance(content, list):
        for block in content:
            if isinstance(block, dict) and block.get("value"):
                return str(block["value"])
    return str(entry.get("summary") or entry.get("description") or "")


def entry_to_item(entry: dict[str, Any]) -> IngestibleItem | None:
    entry_id = str(entry.get("id") or "").strip()
    title = str(entry.get("title") or "").strip()
    published_at = parse_entry_datetime(entry)
    if not entry_id or not title or published_at is None:
        return None

    link = str(entry.get("link") or "").strip()
    return IngestibleItem(
        stable_id=entry_id,
        title=title,
        source_url=link or entry_id,
        published_at=published_at,
        body=entry_content(entry),
        summary=str(entry.get("summary") or ""),
    )


def parse_feed(text: str) -> list[IngestibleItem]:
    """Parse an Atom/RSS document; entries lacking an id, title or date are skipped."""
    if not text or not text.strip():
        return []

    parsed = feedparser.parse(text)
    if parsed.bozo and not parsed.entries and not parsed.get("version"):
        raise FeedParseError(f"Unreadable feed document: {parsed.get('bozo_exception')}")

    items: list[IngestibleItem] = []
    for raw_entry in parsed.entries:
        entry = dict(raw_entry)
        try:
            item = entry_to_item(entry)
        except Exception as exc:
            logger.warning("Skipping malformed feed entry %r: %s", entry.get("id"), exc)
            continue
        if item is None:
            logger.warning("Skipping feed entry without id, title or date: %r", entry.get("title"))
            continue
        items.append(item)

    logger.info("Parsed %s entries from feed", len(items))
    return items
