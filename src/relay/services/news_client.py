from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Callable
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from relay.schemas.item import IngestibleItem
from relay.templates.markdown import truncate_text

logger = logging.getLogger(__name__)

TEASER_LIMIT = 200

_RELATIVE_DATE = re.compile(r"(\d{1,2})\s+(hour|day|week|month)s?\s+ago", re.IGNORECASE)
_ISO_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")
_ARTICLE_HREF = re.compile(r"/article")
_UNIT_HOURS = {"hour": 1, "day": 24, "week": 24 * 7, "month": 24 * 30}


def _has_class(fragment: str) -> Callable[[str | None], bool]:
    return lambda value: bool(value) and fragment in value


def _text(node: Tag) -> str:
    return " ".join(node.get_text(" ").split())


def parse_article_date(value: str, now: datetime | None = None) -> datetime | None:
    value = value.strip()
    if not value:
        return None

    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    except ValueError:
        pass

    now = now or datetime.now(timezone.utc)
    relative = _RELATIVE_DATE.search(value)
    if relative:
        amount = int(relative.group(1))
        return now - timedelta(hours=amount * _UNIT_HOURS[relative.group(2).lower()])

    iso = _ISO_DATE.search(value)
    if iso:
        return datetime.fromisoformat(iso.group(0)).replace(tzinfo=timezone.utc)
    return None


def extract_date(block: Tag) -> datetime | None:
    time_tag = block.find("time")
    if time_tag is not None:
        parsed = parse_article_date(str(time_tag.get("datetime") or _text(time_tag)))
        if parsed:
            return parsed

    date_span = block.find("span", class_=_has_class("date"))
    if date_span is not None:
        parsed = parse_article_date(_text(date_span))
        if parsed:
            return parsed

    return parse_article_date(_text(block))


def extract_teaser(block: Tag) -> str:
    for fragment in ("description", "teaser"):
        node = block.find(["p", "div"], class_=_has_class(fragment))
        if node is not None and _text(node):
            return truncate_text(_text(node), TEASER_LIMIT, suffix="")
    return ""


def block_to_item(block: Tag, base_url: str) -> IngestibleItem | None:
    link = block if block.name == "a" else block.find("a", href=True)
    heading = block.find(["h2", "h3", "h4"])
    if link is None or heading is None or not link.get("href"):
        return None

    url = urljoin(base_url, str(link["href"]))
    title = _text(heading)
    if "/article" not in url or not title:
        return None

    teaser = extract_teaser(block)
    return IngestibleItem(
        stable_id=url,
        title=title,
        source_url=url,
        published_at=extract_date(block),
        body=teaser,
        summary=teaser,
    )


def _article_tags(soup: BeautifulSoup) -> list[Tag]:
    return soup.find_all("article")


def _card_blocks(soup: BeautifulSoup) -> list[Tag]:
    return soup.find_all("div", class_=_has_class("card"))


def _article_links(soup: BeautifulSoup) -> list[Tag]:
    return soup.find_all("a", href=_ARTICLE_HREF)


def parse_news_page(html: str, base_url: str) -> list[IngestibleItem]:
    """Extract article cards from a news listing page, keyed by absolute article url."""
    if not html or not html.strip():
        return []

    soup = BeautifulSoup(html, "lxml")
    items: list[IngestibleItem] = []

    # Page layouts vary; the first strategy that yields anything wins.
    for find_blocks in (_article_tags, _card_blocks, _article_links):
        seen: set[str] = set()
        for block in find_blocks(soup):
            try:
                item = block_to_item(block, base_url)
            except Exception as exc:
                logger.warning("Skipping malformed article block: %s", exc)
                continue
            if item is None or item.stable_id in seen:
                continue
            seen.add(item.stable_id)
            items.append(item)
        if items:
            break

    logger.info("Parsed %s articles from news page", len(items))
    return items
