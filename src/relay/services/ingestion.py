from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from relay.config import RelayConfig, Settings
from relay.graph.state import PollState
from relay.graph.workflow import build_poll_workflow
from relay.nodes.deliver import Template
from relay.nodes.fetch import Fetcher
from relay.nodes.parse import Parser
from relay.nodes.select import IdOf, stable_id
from relay.schemas.item import PollResult
from relay.services.discord_client import Delivery
from relay.services.feed_client import parse_feed
from relay.services.kv_store import KeyValueStore
from relay.services.news_client import parse_news_page
from relay.services.source_client import SourceClient
from relay.templates.feed import feed_entry_payload, news_article_payload

logger = logging.getLogger(__name__)

FEED_SOURCE = "rss"
NEWS_SOURCE = "news"


async def poll_source(
    name: str,
    fetcher: Fetcher,
    parser: Parser,
    template: Template,
    destination: str,
    processed_ids_key: str,
    store: KeyValueStore,
    delivery: Delivery,
    max_items_per_run: int = 5,
    processed_ids_limit: int = 100,
    id_of: IdOf = stable_id,
) -> PollResult:
    """Fetch a source, deliver the entries not seen before and remember their ids.

    Individual delivery failures are reported in ``errors`` but still count as
    processed; only fetch, parse and state failures fail the run, and those
    leave the stored ids untouched.
    """
    workflow = build_poll_workflow(
        fetcher,
        parser,
        template,
        destination,
        processed_ids_key,
        store,
        delivery,
        max_items_per_run=max_items_per_run,
        processed_ids_limit=processed_ids_limit,
        id_of=id_of,
    )
    initial_state: PollState = {
        "source": name,
        "started_at": datetime.now(timezone.utc).isoformat(),
        "processed_count": 0,
        "errors": [],
    }
    final_state = await workflow.ainvoke(initial_state)

    result = PollResult(
        source=name,
        success=not final_state.get("failed", False),
        processed_count=final_state.get("processed_count", 0),
        errors=list(final_state.get("errors", [])),
        message=final_state.get("message", ""),
    )
    log = logger.info if result.success else logger.error
    log(
        "Poll complete | source=%s success=%s processed=%s errors=%s | %s",
        name,
        result.success,
        result.processed_count,
        len(result.errors),
        result.message,
    )
    return result


async def poll_feed(
    settings: Settings,
    config: RelayConfig,
    store: KeyValueStore,
    delivery: Delivery,
    source_client: SourceClient | None = None,
) -> PollResult:
    client = source_client or SourceClient(settings)
    sources = config.sources

    async def fetch() -> str:
        return await client.fetch(sources.feed_url)

    return await poll_source(
        FEED_SOURCE,
        fetch,
        parse_feed,
        lambda item: feed_entry_payload(item, config),
        config.webhooks.feed,
        sources.feed_processed_key,
        store,
        delivery,
        max_items_per_run=settings.max_items_per_run,
        processed_ids_limit=settings.processed_ids_limit,
    )


async def poll_news(
    settings: Settings,
    config: RelayConfig,
    store: KeyValueStore,
    delivery: Delivery,
    source_client: SourceClient | None = None,
) -> PollResult:
    client = source_client or SourceClient(settings)
    sources = config.sources

    async def fetch() -> str:
        return await client.fetch(sources.news_url)

    return await poll_source(
        NEWS_SOURCE,
        fetch,
        lambda text: parse_news_page(text, sources.news_url),
        lambda item: news_article_payload(item, config),
        config.webhooks.articles,
        sources.news_processed_key,
        store,
        delivery,
        max_items_per_run=settings.max_items_per_run,
        processed_ids_limit=settings.processed_ids_limit,
    )


async def run_scheduled_polls(
    settings: Settings,
    config: RelayConfig,
    store: KeyValueStore,
    delivery: Delivery,
    source_client: SourceClient | None = None,
) -> list[PollResult]:
    """Run every poll concurrently; a crash in one poll is reported as its failed result."""
    names = [FEED_SOURCE, NEWS_SOURCE]
    outcomes = await asyncio.gather(
        poll_feed(settings, config, store, delivery, source_client),
        poll_news(settings, config, store, delivery, source_client),
        return_exceptions=True,
    )

    results: list[PollResult] = []
    for name, outcome in zip(names, outcomes):
        if isinstance(outcome, BaseException):
            logger.error("Scheduled poll %s crashed: %s", name, outcome)
            results.append(PollResult(source=name, success=False, message=f"Error processing {name}: {outcome}"))
        else:
            results.append(outcome)
    return results
