from __future__ import annotations

import argparse
import asyncio
import logging

from relay.config import RelayConfig, Settings, configure_langsmith_env, get_settings, load_relay_config
from relay.errors import ConfigError
from relay.logging import setup_logging
from relay.schemas.item import PollResult
from relay.services.discord_client import Delivery, DiscordClient, DryRunClient
from relay.services.github_client import GitHubClient
from relay.services.ingestion import poll_feed, poll_news, run_scheduled_polls
from relay.services.kv_store import JsonFileStore, KeyValueStore, MemoryStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Discord webhook relay")
    subparsers = parser.add_subparsers(dest="command")

    serve_parser = subparsers.add_parser("serve", help="Serve the inbound webhook endpoints")
    serve_parser.add_argument("--host", default=None, help="Bind address (defaults to SERVER_HOST)")
    serve_parser.add_argument("--port", type=int, default=None, help="Bind port (defaults to SERVER_PORT)")
    serve_parser.add_argument("--verbose", action="store_true", help="Enable debug logs")

    poll_parser = subparsers.add_parser("poll", help="Poll sources once and post new entries")
    poll_parser.add_argument("source", choices=["rss", "news", "all"], help="Which source to poll")
    poll_parser.add_argument("--dry-run", action="store_true", help="Log payloads instead of posting and keep state")
    poll_parser.add_argument("--verbose", action="store_true", help="Enable debug logs")

    return parser


def load_config(settings: Settings) -> RelayConfig:
    config = load_relay_config(settings.relay_file)
    missing = config.missing_webhooks()
    if missing:
        logger.warning("Webhooks not configured (posts will be rejected): %s", ", ".join(missing))
    return config


async def seed_memory_store(store: KeyValueStore, keys: list[str]) -> MemoryStore:
    seeded: dict[str, str] = {}
    for key in keys:
        value = await store.get(key)
        if value is not None:
            seeded[key] = value
    return MemoryStore(seeded)


async def run_poll(args: argparse.Namespace) -> int:
    settings = get_settings()
    configure_langsmith_env(settings)
    dry_run = bool(args.dry_run)

    try:
        config = load_config(settings)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        print(f"Configuration error: {exc}")
        return 2

    store: KeyValueStore = JsonFileStore.for_namespace(settings.state_dir, settings.kv_namespace)
    delivery: Delivery
    if dry_run:
        keys = [config.sources.feed_processed_key, config.sources.news_processed_key]
        store = await seed_memory_store(store, keys)
        delivery = DryRunClient()
    else:
        delivery = DiscordClient(settings)

    results: list[PollResult]
    if args.source == "rss":
        results = [await poll_feed(settings, config, store, delivery)]
    elif args.source == "news":
        results = [await poll_news(settings, config, store, delivery)]
    else:
        results = await run_scheduled_polls(settings, config, store, delivery)

    failed = False
    for result in results:
        if not result.success:
            failed = True
        elif result.errors:
            failed = True
            logger.error("Sample delivery errors (%s): %s", result.source, " | ".join(result.errors[:3]))
        print(
            f"Poll {result.source}: success={result.success} processed={result.processed_count} "
            f"errors={len(result.errors)} dry_run={dry_run} | {result.message}"
        )
    return 1 if failed else 0


def run_server(args: argparse.Namespace) -> int:
    from relay.server import create_app

    settings = get_settings()
    configure_langsmith_env(settings)
    try:
        config = load_config(settings)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        print(f"Configuration error: {exc}")
        return 2

    app = create_app(
        settings,
        config,
        JsonFileStore.for_namespace(settings.state_dir, settings.kv_namespace),
        DiscordClient(settings),
        github=GitHubClient(settings),
    )
    app.run(host=args.host or settings.server_host, port=args.port or settings.server_port)
    return 0


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    if args.command not in ("serve", "poll"):
        parser.print_help()
        return

    setup_logging(verbose=bool(args.verbose))
    if args.command == "serve":
        exit_code = run_server(args)
    else:
        exit_code = asyncio.run(run_poll(args))
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
