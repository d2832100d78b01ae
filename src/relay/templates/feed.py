from __future__ import annotations

from typing import Any

from relay.config import RelayConfig
from relay.schemas.item import IngestibleItem
from relay.templates.common import (
    DISCORD_CONTENT_LIMIT,
    DISCORD_TITLE_LIMIT,
    action_row,
    iso_timestamp,
    link_button,
    thread_name,
    with_ping,
)
from relay.templates.markdown import html_to_markdown, truncate_text

FEED_PREVIEW_LIMIT = 800


def feed_entry_payload(item: IngestibleItem, config: RelayConfig) -> dict[str, Any]:
    sources = config.sources
    body = html_to_markdown(item.body)
    if len(body) > FEED_PREVIEW_LIMIT:
        body = (
            f"{truncate_text(body, FEED_PREVIEW_LIMIT)}\n\n"
            f"[Read the full post on the {sources.feed_name} blog for complete details]({item.source_url})"
        )
    content = truncate_text(with_ping(config.pings.feed, body, separator="\n\n"), DISCORD_CONTENT_LIMIT)

    return {
        "username": f"{sources.feed_name} RSS Bot",
        "avatar_url": config.avatar_url,
        "content": content,
        "thread_name": thread_name(item.title),
        "embeds": [
            {
                "title": truncate_text(item.title, DISCORD_TITLE_LIMIT),
                "url": item.source_url,
                "timestamp": iso_timestamp(item.published_at),
                "footer": {"text": f"The original Post was made on the {sources.feed_name} RSS-Feed"},
            }
        ],
        "components": [
            action_row(
                [
                    link_button("Original Post", item.source_url),
                    link_button(f"{sources.feed_name} Feed", sources.feed_home_url),
                ]
            )
        ],
    }


def news_article_payload(item: IngestibleItem, config: RelayConfig) -> dict[str, Any]:
    sources = config.sources
    text = f"{item.summary}\n\n" if item.summary else ""
    text += f"*[Read the full article on {sources.news_site_name}]*"

    return {
        "username": f"{sources.news_name} News Bot",
        "avatar_url": config.news_avatar_url or config.avatar_url,
        "content": truncate_text(with_ping(config.pings.articles, text, separator="\n\n"), DISCORD_CONTENT_LIMIT),
        "thread_name": thread_name(item.title),
        "embeds": [
            {
                "title": truncate_text(item.title, DISCORD_TITLE_LIMIT),
                "url": item.source_url,
                "timestamp": iso_timestamp(item.published_at),
                "footer": {"text": f"The original article was published on {sources.news_site_name}"},
            }
        ],
        "components": [
            action_row(
                [
                    link_button("Read Article", item.source_url),
                    link_button("All Articles", sources.news_url),
                ]
            )
        ],
    }
