from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Awaitable, Callable, Protocol
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import httpx

from relay.config import Settings
from relay.schemas.delivery import Attachment, DeliveryRequest, DeliveryResult

logger = logging.getLogger(__name__)

PLACEHOLDER_MARKER = "placeholder"

_WEBHOOK_URL_RE = re.compile(
    r"^https://(canary\.|ptb\.)?discord(app)?\.com/api/webhooks/\d+/[\w-]+/?(\?.*)?$",
    re.IGNORECASE,
)

Sleep = Callable[[float], Awaitable[None]]


class Delivery(Protocol):
    async def send(self, request: DeliveryRequest) -> DeliveryResult: ...

    async def deliver(
        self,
        destination: str,
        payload: dict[str, Any],
        max_retries: int | None = None,
        attachment: Attachment | None = None,
    ) -> DeliveryResult: ...


def is_valid_webhook_url(url: str | None) -> bool:
    if not url or PLACEHOLDER_MARKER in url.lower():
        return False
    return bool(_WEBHOOK_URL_RE.match(url.strip()))


def with_query(url: str, **params: Any) -> str:
    """Set query parameters such as ``wait`` or ``thread_id`` on a webhook url."""
    parsed = urlparse(url)
    query = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if k not in params]
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        query.append((key, str(value)))
    return urlunparse(parsed._replace(query=urlencode(query)))


def backoff_seconds(attempt: int) -> float:
    return float(2 ** (attempt + 1))


def retry_after_seconds(response: httpx.Response) -> float | None:
    header = response.headers.get("retry-after")
    if header:
        try:
            value = float(header)
        except ValueError:
            value = -1.0
        if value >= 0:
            return value

    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        retry_after = data.get("retry_after")
        if isinstance(retry_after, (int, float)) and retry_after > 0:
            return float(retry_after)
    return None


def _short(url: str) -> str:
    return url[:50] + "..." if len(url) > 50 else url


class DiscordClient:
    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self._http_client = http_client
        self._sleep = sleep

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
        if not is_valid_webhook_url(destination):
            logger.error("Refusing to post to invalid Discord webhook URL: %r", _short(destination or ""))
            return DeliveryResult(success=False, status_code=400, error="Invalid Discord webhook URL")

        if max_retries is None:
            max_retries = self.settings.delivery_max_retries
        max_retries = max(max_retries, 0)
        if self._http_client is not None:
            return await self._post_with_retry(self._http_client, destination, payload, max_retries, attachment)

        timeout = httpx.Timeout(self.settings.request_timeout_seconds)
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await self._post_with_retry(client, destination, payload, max_retries, attachment)

    async def _post_with_retry(
        self,
        client: httpx.AsyncClient,
        destination: str,
        payload: dict[str, Any],
        max_retries: int,
        attachment: Attachment | None,
    ) -> DeliveryResult:
        attempts = max_retries + 1

        for attempt in range(attempts):
            logger.info("Posting to Discord webhook (attempt %s/%s): %s", attempt + 1, attempts, _short(destination))
            if attempt == 0:
                logger.debug("Payload: %s", json.dumps(payload, ensure_ascii=False))

            try:
                response = await self._post(client, destination, payload, attachment)
            except httpx.HTTPError as exc:
                if attempt < max_retries:
                    delay = backoff_seconds(attempt)
                    logger.warning(
                        "Network error posting to Discord: %s. Retrying in %ss (retry %s/%s)",
                        exc,
                        delay,
                        attempt + 1,
                        max_retries,
                    )
                    await self._sleep(delay)
                    continue
                logger.error("Discord posting failed after %s attempts: %s", attempts, exc)
                return DeliveryResult(success=False, status_code=500, error=f"Discord posting failed: {exc}")

            logger.info("Discord API response status: %s %s", response.status_code, response.reason_phrase)

            if response.status_code == 429:
                if attempt < max_retries:
                    hinted = retry_after_seconds(response)
                    delay = hinted if hinted is not None else backoff_seconds(attempt)
                    logger.warning(
                        "Rate limited by Discord. Retrying in %ss (retry %s/%s)",
                        delay,
                        attempt + 1,
                        max_retries,
                    )
                    await self._sleep(delay)
                    continue
                logger.error("Maximum retry attempts (%s) exceeded for rate limiting", max_retries)
                return DeliveryResult(
                    success=False,
                    status_code=429,
                    error=f"Discord rate limit exceeded: Maximum retries reached after {max_retries} attempts",
                    upstream_status=429,
                )

            if not response.is_success:
                details = response.text or response.reason_phrase
                if response.status_code >= 500 and attempt < max_retries:
                    delay = backoff_seconds(attempt)
                    logger.warning(
                        "Server error %s from Discord. Retrying in %ss (retry %s/%s)",
                        response.status_code,
                        delay,
                        attempt + 1,
                        max_retries,
                    )
                    await self._sleep(delay)
                    continue

                error = f"Discord Webhook Error: {response.status_code} {response.reason_phrase} - {details}"
                logger.error(error)
                return DeliveryResult(
                    success=False,
                    status_code=500,
                    error=error,
                    upstream_status=response.status_code,
                )

            return self._success_result(response)

        return DeliveryResult(success=False, status_code=500, error="Unknown Discord delivery failure.")

    async def _post(
        self,
        client: httpx.AsyncClient,
        destination: str,
        payload: dict[str, Any],
        attachment: Attachment | None,
    ) -> httpx.Response:
        headers = {"User-Agent": self.settings.user_agent}
        if attachment is None:
            return await client.post(destination, json=payload, headers=headers)

        files = {"files[0]": (attachment.filename, attachment.content, attachment.content_type)}
        return await client.post(
            destination,
            data={"payload_json": json.dumps(payload)},
            files=files,
            headers=headers,
        )

    def _success_result(self, response: httpx.Response) -> DeliveryResult:
        logger.info("Discord message posted successfully")
        if response.status_code == 204 or not response.content.strip():
            return DeliveryResult(success=True, status_code=200)

        try:
            data = response.json()
        except ValueError:
            logger.warning("Discord returned a success status without a JSON body")
            return DeliveryResult(success=True, status_code=200)

        if not isinstance(data, dict):
            logger.warning("Unexpected Discord response body type: %s", type(data).__name__)
            return DeliveryResult(success=True, status_code=200)

        return DeliveryResult(success=True, status_code=200, data=data)


class DryRunClient:
    """Delivery stand-in for ``--dry-run``: logs the payload instead of posting it."""

    async def send(self, request: DeliveryRequest) -> DeliveryResult:
        return await self.deliver(request.destination, request.payload, attachment=request.attachment)

    async def deliver(
        self,
        destination: str,
        payload: dict[str, Any],
        max_retries: int | None = None,
        attachment: Attachment | None = None,
    ) -> DeliveryResult:
        logger.info(
            "[dry-run] Would post to %s (attachment=%s): %s",
            _short(destination or ""),
            attachment.filename if attachment else None,
            json.dumps(payload, ensure_ascii=False),
        )
        return DeliveryResult(success=True, status_code=200)
