from __future__ import annotations

import json

import httpx
import pytest

from conftest import WEBHOOK
from relay.schemas.delivery import Attachment, DeliveryRequest
from relay.services.discord_client import DiscordClient, is_valid_webhook_url, with_query


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_client(settings, responses):
    """Client whose transport replays ``responses`` (Response objects or exceptions) in order."""
    requests: list[httpx.Request] = []
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        outcome = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    sleep = SleepRecorder()
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DiscordClient(settings, http_client=http_client, sleep=sleep), requests, sleep


def test_webhook_url_validation() -> None:
    assert is_valid_webhook_url(WEBHOOK)
    assert is_valid_webhook_url("https://canary.discordapp.com/api/webhooks/1/abc?wait=true")
    assert not is_valid_webhook_url("https://discord.com/api/webhooks/PLACEHOLDER/news")
    assert not is_valid_webhook_url("https://example.com/api/webhooks/1/abc")
    assert not is_valid_webhook_url("")
    assert not is_valid_webhook_url(None)


def test_with_query_sets_and_replaces_parameters() -> None:
    url = with_query(f"{WEBHOOK}?thread_id=1", wait=True, thread_id="999")
    assert url == f"{WEBHOOK}?wait=true&thread_id=999"


@pytest.mark.asyncio
async def test_invalid_destination_makes_no_request(settings) -> None:
    client, requests, sleep = make_client(settings, [httpx.Response(204)])

    result = await client.deliver("https://discord.com/api/webhooks/PLACEHOLDER/x", {"content": "hi"})

    assert result.status_code == 400
    assert result.error == "Invalid Discord webhook URL"
    assert requests == []
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_no_content_success_has_no_data(settings) -> None:
    client, requests, _ = make_client(settings, [httpx.Response(204)])

    result = await client.deliver(WEBHOOK, {"content": "hi"})

    assert result.success
    assert result.status_code == 200
    assert result.data is None
    assert len(requests) == 1
    assert json.loads(requests[0].content) == {"content": "hi"}
    assert requests[0].headers["user-agent"] == settings.user_agent


@pytest.mark.asyncio
async def test_json_success_body_is_surfaced(settings) -> None:
    body = {"id": "42", "channel_id": "777"}
    client, _, _ = make_client(settings, [httpx.Response(200, json=body)])

    result = await client.deliver(with_query(WEBHOOK, wait=True), {"content": "hi"})

    assert result.data == body
    assert result.thread_id == "777"
    assert result.message_id == "42"


@pytest.mark.asyncio
async def test_unparsable_success_body_still_succeeds(settings) -> None:
    client, _, _ = make_client(settings, [httpx.Response(200, text="<html>ok</html>")])

    result = await client.deliver(WEBHOOK, {"content": "hi"})

    assert result.success
    assert result.data is None


@pytest.mark.asyncio
async def test_rate_limit_honours_retry_after_header(settings) -> None:
    client, requests, sleep = make_client(
        settings,
        [httpx.Response(429, headers={"Retry-After": "1.5"}), httpx.Response(204)],
    )

    result = await client.deliver(WEBHOOK, {"content": "hi"})

    assert result.success
    assert len(requests) == 2
    assert sleep.delays == [1.5]


@pytest.mark.asyncio
async def test_rate_limit_falls_back_to_body_retry_after(settings) -> None:
    client, _, sleep = make_client(
        settings,
        [httpx.Response(429, json={"retry_after": 0.25}), httpx.Response(204)],
    )

    result = await client.deliver(WEBHOOK, {"content": "hi"})

    assert result.success
    assert sleep.delays == [0.25]


@pytest.mark.asyncio
async def test_rate_limit_exhaustion_returns_429(settings) -> None:
    client, requests, sleep = make_client(settings, [httpx.Response(429)])

    result = await client.deliver(WEBHOOK, {"content": "hi"}, max_retries=3)

    assert not result.success
    assert result.status_code == 429
    assert result.error == "Discord rate limit exceeded: Maximum retries reached after 3 attempts"
    assert len(requests) == 4
    assert sleep.delays == [2.0, 4.0, 8.0]


@pytest.mark.asyncio
async def test_two_retries_mean_three_calls(settings) -> None:
    client, requests, _ = make_client(settings, [httpx.Response(429, headers={"Retry-After": "2"})])

    result = await client.deliver(WEBHOOK, {"content": "hi"}, max_retries=2)

    assert result.status_code == 429
    assert len(requests) == 3


@pytest.mark.asyncio
async def test_configured_retry_count_is_the_default(settings) -> None:
    settings.delivery_max_retries = 1
    client, requests, _ = make_client(settings, [httpx.Response(429)])

    result = await client.deliver(WEBHOOK, {"content": "hi"})

    assert result.status_code == 429
    assert len(requests) == 2


@pytest.mark.asyncio
async def test_server_error_is_retried(settings) -> None:
    client, requests, sleep = make_client(settings, [httpx.Response(502), httpx.Response(204)])

    result = await client.deliver(WEBHOOK, {"content": "hi"})

    assert result.success
    assert len(requests) == 2
    assert sleep.delays == [2.0]


@pytest.mark.asyncio
async def test_server_error_exhaustion_reports_upstream_status(settings) -> None:
    client, requests, _ = make_client(settings, [httpx.Response(503, text="down")])

    result = await client.deliver(WEBHOOK, {"content": "hi"}, max_retries=1)

    assert result.status_code == 500
    assert result.upstream_status == 503
    assert result.error == "Discord Webhook Error: 503 Service Unavailable - down"
    assert len(requests) == 2


@pytest.mark.asyncio
async def test_client_error_is_not_retried(settings) -> None:
    client, requests, sleep = make_client(settings, [httpx.Response(400, text='{"embeds": ["0"]}')])

    result = await client.deliver(WEBHOOK, {"content": "hi"})

    assert result.status_code == 500
    assert result.upstream_status == 400
    assert result.error == 'Discord Webhook Error: 400 Bad Request - {"embeds": ["0"]}'
    assert len(requests) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_transport_errors_are_retried_then_reported(settings) -> None:
    client, requests, sleep = make_client(settings, [httpx.ConnectError("connection refused")])

    result = await client.deliver(WEBHOOK, {"content": "hi"}, max_retries=2)

    assert result.status_code == 500
    assert result.error == "Discord posting failed: connection refused"
    assert len(requests) == 3
    assert sleep.delays == [2.0, 4.0]


@pytest.mark.asyncio
async def test_attachment_is_sent_as_multipart(settings) -> None:
    client, requests, _ = make_client(settings, [httpx.Response(204)])
    request = DeliveryRequest(
        destination=WEBHOOK,
        payload={"content": "build"},
        attachment=Attachment(filename="mod.zip", content=b"PK\x03\x04"),
    )

    result = await client.send(request)

    assert result.success
    sent = requests[0]
    assert sent.headers["content-type"].startswith("multipart/form-data")
    body = sent.content
    assert b'name="payload_json"' in body
    assert b'{"content": "build"}' in body
    assert b'name="files[0]"; filename="mod.zip"' in body
    assert b"PK\x03\x04" in body


@pytest.mark.asyncio
async def test_negative_retry_count_still_posts_once(settings) -> None:
    client, requests, sleep = make_client(settings, [httpx.Response(204)])

    result = await client.deliver(WEBHOOK, {"content": "hi"}, max_retries=-1)

    assert result.success
    assert len(requests) == 1
    assert sleep.delays == []
