from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from relay.errors import ConfigError


class Settings(BaseSettings):
    relay_file: str = "data/relay.yaml"
    state_dir: str = "state"
    kv_namespace: str = "FABRIC_KV"

    request_timeout_seconds: int = 20
    user_agent: str = "DiscordRelay/0.1"
    delivery_max_retries: int = 3
    max_items_per_run: int = 5
    processed_ids_limit: int = 100

    github_token: str | None = None
    github_api_url: str = "https://api.github.com"
    max_attachment_bytes: int = 8 * 1024 * 1024

    server_host: str = "127.0.0.1"
    server_port: int = 8787

    langsmith_api_key: str | None = None
    langsmith_project: str = "discord-relay"
    langsmith_tracing: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class Webhooks(BaseModel):
    news: str = ""
    changelog: str = ""
    suggestions: str = ""
    feed: str = ""
    articles: str = ""
    mails: str = ""
    issues: str = ""
    prs: str = ""
    wiki: str = ""
    workflows: str = ""
    forks: str = ""


class Pings(BaseModel):
    news: str = ""
    monthly: str = ""
    release: str = ""
    feed: str = ""
    articles: str = ""
    # PRs from forks (first-time contributors) vs. branches of the main repo
    maintainers: str = ""
    contributors: str = ""


class Tags(BaseModel):
    suggestions: str = ""
    mails: str = ""


class Sources(BaseModel):
    feed_name: str = "Fabric"
    news_name: str = "Minecraft"
    news_site_name: str = "Minecraft.net"
    feed_url: str = "https://fabricmc.net/feed.xml"
    feed_home_url: str = "https://fabricmc.net/blog/"
    feed_processed_key: str = "fabric_rss_processed_entries"
    news_url: str = "https://www.minecraft.net/en-us/articles"
    news_processed_key: str = "minecraft_processed_articles"


class RelayConfig(BaseModel):
    project_name: str = "LotR ME Mod"
    repository_url: str = ""
    changelog_channel_url: str = ""
    avatar_url: str = ""
    news_avatar_url: str = ""
    footer_text: str = "This post originates from GitHub."
    webhooks: Webhooks = Field(default_factory=Webhooks)
    pings: Pings = Field(default_factory=Pings)
    tags: Tags = Field(default_factory=Tags)
    sources: Sources = Field(default_factory=Sources)

    @property
    def wiki_url(self) -> str:
        return f"{self.repository_url}/wiki"

    @property
    def changelog_url(self) -> str:
        return f"{self.repository_url}/blob/master/CHANGELOG.md"

    def missing_webhooks(self) -> list[str]:
        return [
            name
            for name, url in self.webhooks.model_dump().items()
            if not url.strip() or "placeholder" in url.lower()
        ]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def load_relay_config(path: str | Path) -> RelayConfig:
    try:
        with open(path, "r", encoding="utf-8") as config_file:
            data = yaml.safe_load(config_file) or {}
    except OSError as exc:
        raise ConfigError(f"Cannot read relay config {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in relay config {path}: {exc}") from exc
    try:
        return RelayConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid relay config {path}: {exc}") from exc


def configure_langsmith_env(settings: Settings) -> None:
    if settings.langsmith_api_key:
        os.environ["LANGSMITH_API_KEY"] = settings.langsmith_api_key
    os.environ["LANGSMITH_PROJECT"] = settings.langsmith_project
    os.environ["LANGSMITH_TRACING"] = "true" if settings.langsmith_tracing else "false"
