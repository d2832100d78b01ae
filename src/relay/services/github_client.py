from __future__ import annotations

import logging
from typing import Any

import httpx

from relay.config import Settings
from relay.schemas.delivery import Attachment

logger = logging.getLogger(__name__)


def pick_artifact(artifacts: list[dict[str, Any]], max_bytes: int) -> dict[str, Any] | None:
    for artifact in artifacts:
        if artifact.get("expired"):
            continue
        size = artifact.get("size_in_bytes")
        if not isinstance(size, int) or size > max_bytes:
            logger.info("Skipping artifact %s (%s bytes)", artifact.get("name"), size)
            continue
        if artifact.get("archive_download_url"):
            return artifact
    return None


class GitHubClient:
    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
        self.settings = settings
        self._http_client = http_client

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self.settings.github_token}",
            "User-Agent": self.settings.user_agent,
            "X-GitHub-Api-Version": "2022-11-28",
        }

    async def fetch_run_artifact(self, artifacts_url: str) -> Attachment | None:
        """Download the first usable artifact of a workflow run as a zip attachment.

        Returns ``None`` without a token, when the run has no suitable
        artifact, or when either GitHub call fails.
        """
        if not self.settings.github_token:
            logger.info("No GitHub token configured, sending workflow run without artifact")
            return None
        # the token is only ever sent to the configured API host
        if not artifacts_url.startswith(self.settings.github_api_url.rstrip("/") + "/"):
            logger.warning("Refusing to fetch artifacts from %s", artifacts_url)
            return None

        try:
            if self._http_client is not None:
                return await self._fetch_with(self._http_client, artifacts_url)

            timeout = httpx.Timeout(self.settings.request_timeout_seconds)
            async with httpx.AsyncClient(timeout=timeout) as client:
                return await self._fetch_with(client, artifacts_url)
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Fetching workflow artifact from %s failed: %s", artifacts_url, exc)
            return None

    async def _fetch_with(self, client: httpx.AsyncClient, artifacts_url: str) -> Attachment | None:
        response = await client.get(artifacts_url, headers=self._headers())
        response.raise_for_status()
        data = response.json()
        artifacts = data.get("artifacts") or [] if isinstance(data, dict) else []

        artifact = pick_artifact(artifacts, self.settings.max_attachment_bytes)
        if artifact is None:
            logger.info("No downloadable artifact under %s bytes", self.settings.max_attachment_bytes)
            return None

        download = await client.get(
            artifact["archive_download_url"],
            headers=self._headers(),
            follow_redirects=True,
        )
        download.raise_for_status()
        if len(download.content) > self.settings.max_attachment_bytes:
            logger.warning("Artifact %s exceeds the attachment limit after download", artifact.get("name"))
            return None

        logger.info("Downloaded artifact %s (%s bytes)", artifact.get("name"), len(download.content))
        return Attachment(filename=f"{artifact.get('name') or 'artifact'}.zip", content=download.content)
