from __future__ import annotations

import logging

from flask import Flask, jsonify, request

from relay.config import RelayConfig, Settings
from relay.services.discord_client import Delivery
from relay.services.github_client import GitHubClient
from relay.services.ingestion import poll_feed, poll_news
from relay.services.kv_store import KeyValueStore
from relay.services.router import classify_github_event, dispatch_github_event, dispatch_mail
from relay.services.source_client import SourceClient

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings,
    config: RelayConfig,
    store: KeyValueStore,
    delivery: Delivery,
    github: GitHubClient | None = None,
    source_client: SourceClient | None = None,
) -> Flask:
    """Build the inbound HTTP surface around explicitly constructed collaborators."""
    app = Flask(__name__)

    @app.errorhandler(404)
    @app.errorhandler(405)
    def not_found(_error):
        return "Not found", 404

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok", "missing_webhooks": config.missing_webhooks()})

    @app.route("/github", methods=["POST"])
    async def github_webhook():
        payload = request.get_json(force=True, silent=True)
        if payload is None:
            logger.warning("Rejected GitHub webhook with invalid JSON body")
            return "Invalid JSON", 400

        event = classify_github_event(payload)
        result = await dispatch_github_event(event, config, delivery, github)
        return result.message, result.status

    @app.route("/mails", methods=["POST"])
    async def mails():
        payload = request.get_json(force=True, silent=True)
        if payload is None:
            logger.warning("Rejected mail with invalid JSON body")
            return "Invalid JSON", 400

        result = await dispatch_mail(payload, config, delivery)
        return result.message, result.status

    @app.route("/rss", methods=["POST"])
    async def rss():
        result = await poll_feed(settings, config, store, delivery, source_client)
        return jsonify(result.model_dump()), 200 if result.success else 500

    @app.route("/news", methods=["POST"])
    async def news():
        result = await poll_news(settings, config, store, delivery, source_client)
        return jsonify(result.model_dump()), 200 if result.success else 500

    return app
