from __future__ import annotations

import os
from typing import Any

import pytest

from relay.config import Pings, RelayConfig, Settings, Sources, Tags, Webhooks
from relay.schemas.delivery import Attachment, DeliveryRequest, DeliveryResult
from relay.services.kv_store import MemoryStore

os.environ["LANGSMITH_TRACING"] = "false"

WEBHOOK = "https://discord.com/api/webhooks/123456/token-abc"


def webhook(name: str) -> str:
    return f"https://discord.com/api/webhooks/123456/{name}"


class FakeDelivery:
    """Records every delivery and answers with queued results (success by default)."""

    def __init__(self, results: list[DeliveryResult] | None = None) -> None:
        self.calls: list[dict[str, Any]] = []
        self._results = list(results or [])

    async def send(self, request: DeliveryRequest) -> DeliveryResult:
        return await self.deliver(
            request.destination,
            request.payload,
            max_retries=request.max_retries,
            attachment=request.attachment,
        )

    async def deliver(
        self,
        destination: str,
        payload: dict[str, Any],
        max_retries: int | None = None,
        attachment: Attachment | None = None,
    ) -> DeliveryResult:
        self.calls.append({"destination": destination, "payload": payload, "attachment": attachment})
        if self._results:
            return self._results.pop(0)
        return DeliveryResult(success=True, status_code=200)


class FailingStore(MemoryStore):
    def __init__(self, fail_get: bool = False, fail_put: bool = False, initial: dict[str, str] | None = None) -> None:
        super().__init__(initial)
        self.fail_get = fail_get
        self.fail_put = fail_put

    async def get(self, key: str) -> str | None:
        if self.fail_get:
            raise OSError("store unavailable")
        return await super().get(key)

    async def put(self, key: str, value: str) -> None:
        if self.fail_put:
            raise OSError("store unavailable")
        await super().put(key, value)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        state_dir=str(tmp_path / "state"),
        github_token=None,
        langsmith_tracing=False,
    )


@pytest.fixture
def config() -> RelayConfig:
    return RelayConfig(
        project_name="LotR ME Mod",
        repository_url="https://github.com/example/mod",
        changelog_channel_url="https://discord.com/channels/1/2",
        avatar_url="https://example.com/avatar.png",
        news_avatar_url="https://example.com/creeper.png",
        footer_text="This post originates from GitHub.",
        webhooks=Webhooks(
            news=webhook("news"),
            changelog=webhook("changelog"),
            suggestions=webhook("suggestions"),
            feed=webhook("feed"),
            articles=webhook("articles"),
            mails=webhook("mails"),
            issues=webhook("issues"),
            prs=webhook("prs"),
            wiki=webhook("wiki"),
            workflows=webhook("workflows"),
            forks=webhook("forks"),
        ),
        pings=Pings(
            news="<@&1>",
            monthly="<@&2>",
            release="<@&3>",
            feed="<@&4>",
            articles="<@&5>",
            maintainers="<@&6>",
            contributors="<@&7>",
        ),
        tags=Tags(suggestions="111", mails="222"),
        sources=Sources(
            feed_url="https://fabricmc.net/feed.xml",
            news_url="https://www.minecraft.net/en-us/articles",
        ),
    )


@pytest.fixture
def delivery() -> FakeDelivery:
    return FakeDelivery()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()
