"""Tests for the retrying Telegram dispatcher."""

import asyncio
import json

import httpx
import pytest

from tele_reminder.delivery.dispatcher import (
    ParseMode,
    TelegramDispatcher,
    is_retryable_status,
)
from tele_reminder.metrics import DeliveryMetrics


def make_dispatcher(handler, **kwargs):
    """Dispatcher on a mock transport; backoff waits are recorded, not slept."""
    delays = []

    async def fake_sleep(seconds):
        delays.append(seconds)

    metrics = DeliveryMetrics()
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    options = {"max_retries": 3, "retry_base_delay_ms": 500}
    options.update(kwargs)
    dispatcher = TelegramDispatcher(
        "TOKEN",
        "42",
        metrics=metrics,
        client=client,
        sleep=fake_sleep,
        **options,
    )
    return dispatcher, delays, metrics


def responses(*statuses):
    """Handler returning the given statuses in order, recording requests."""
    requests = []

    def handler(request):
        requests.append(request)
        status = statuses[min(len(requests), len(statuses)) - 1]
        if isinstance(status, Exception):
            raise status
        return httpx.Response(status, json={"ok": status == 200, "description": f"status {status}"})

    return handler, requests


@pytest.mark.asyncio
async def test_server_errors_exhaust_all_attempts_with_exponential_backoff():
    handler, requests = responses(500)
    dispatcher, delays, metrics = make_dispatcher(handler)

    outcome = await dispatcher.send("hello")

    assert outcome.sent is False
    assert outcome.attempts == 3
    assert len(requests) == 3
    assert delays == [0.5, 1.0]
    assert "after 3 attempts" in outcome.detail
    assert "500" in outcome.detail
    assert metrics.snapshot() == {"success": 0, "failure": 1, "retry": 2}


@pytest.mark.asyncio
async def test_unauthorized_is_not_retried():
    handler, requests = responses(401)
    dispatcher, delays, metrics = make_dispatcher(handler)

    outcome = await dispatcher.send("hello")

    assert outcome.sent is False
    assert len(requests) == 1
    assert delays == []
    assert outcome.detail.startswith("Telegram send failed: 401")
    assert metrics.snapshot() == {"success": 0, "failure": 1, "retry": 0}


@pytest.mark.asyncio
async def test_success_on_second_attempt():
    handler, requests = responses(503, 200)
    dispatcher, delays, metrics = make_dispatcher(handler)

    outcome = await dispatcher.send("hello")

    assert outcome.sent is True
    assert outcome.attempts == 2
    assert len(requests) == 2
    assert delays == [0.5]
    assert metrics.snapshot() == {"success": 1, "failure": 0, "retry": 1}


@pytest.mark.asyncio
async def test_fatal_after_transient_stops_immediately():
    handler, requests = responses(429, 400, 200)
    dispatcher, delays, metrics = make_dispatcher(handler)

    outcome = await dispatcher.send("hello")

    assert outcome.sent is False
    assert outcome.attempts == 2
    assert len(requests) == 2
    assert "400" in outcome.detail
    assert metrics.snapshot() == {"success": 0, "failure": 1, "retry": 1}


@pytest.mark.asyncio
async def test_transport_error_is_retried():
    handler, requests = responses(httpx.ConnectError("connection refused"), 200)
    dispatcher, delays, metrics = make_dispatcher(handler)

    outcome = await dispatcher.send("hello")

    assert outcome.sent is True
    assert len(requests) == 2


@pytest.mark.asyncio
async def test_transport_error_detail_names_the_error():
    handler, _ = responses(httpx.ConnectError("connection refused"))
    dispatcher, _, _ = make_dispatcher(handler, max_retries=1)

    outcome = await dispatcher.send("hello")

    assert outcome.sent is False
    assert "transport error" in outcome.detail
    assert "ConnectError" in outcome.detail


@pytest.mark.asyncio
async def test_httpx_timeout_is_reported_as_timeout():
    handler, requests = responses(httpx.ReadTimeout("slow"), httpx.ReadTimeout("slow"))
    dispatcher, delays, _ = make_dispatcher(handler, max_retries=2, request_timeout_ms=250)

    outcome = await dispatcher.send("hello")

    assert outcome.sent is False
    assert len(requests) == 2
    assert "timed out after 250ms" in outcome.detail


@pytest.mark.asyncio
async def test_hung_request_is_cut_off_at_the_deadline():
    async def handler(request):
        await asyncio.sleep(5)
        return httpx.Response(200, json={"ok": True})

    dispatcher, _, metrics = make_dispatcher(handler, max_retries=1, request_timeout_ms=100)

    outcome = await asyncio.wait_for(dispatcher.send("hello"), timeout=2)

    assert outcome.sent is False
    assert "timed out" in outcome.detail
    assert metrics.snapshot()["failure"] == 1


@pytest.mark.asyncio
async def test_undecodable_response_becomes_a_failed_outcome():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not gzip")

    dispatcher, delays, metrics = make_dispatcher(handler)

    outcome = await dispatcher.send("hello")

    assert outcome.sent is False
    assert outcome.attempts == 1
    assert "DecodingError" in outcome.detail
    assert len(requests) == 1
    assert delays == []
    assert metrics.snapshot() == {"success": 0, "failure": 1, "retry": 0}


@pytest.mark.asyncio
async def test_redirect_loop_becomes_a_failed_outcome():
    def handler(request):
        return httpx.Response(302, headers={"Location": str(request.url)})

    metrics = DeliveryMetrics()
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)
    dispatcher = TelegramDispatcher("TOKEN", "42", metrics=metrics, client=client)

    outcome = await dispatcher.send("hello")

    assert outcome.sent is False
    assert "TooManyRedirects" in outcome.detail
    assert metrics.snapshot()["failure"] == 1


@pytest.mark.asyncio
async def test_request_payload_and_url():
    handler, requests = responses(200)
    dispatcher, _, _ = make_dispatcher(handler)

    await dispatcher.send("*bold*", ParseMode.MARKDOWN_V2)

    request = requests[0]
    assert request.method == "POST"
    assert request.url.path == "/botTOKEN/sendMessage"
    assert json.loads(request.content) == {
        "chat_id": "42",
        "text": "*bold*",
        "parse_mode": "MarkdownV2",
    }


@pytest.mark.asyncio
async def test_missing_credentials_skip_the_request():
    handler, requests = responses(200)
    metrics = DeliveryMetrics()
    dispatcher = TelegramDispatcher(
        "",
        "",
        metrics=metrics,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )

    outcome = await dispatcher.send("hello")

    assert outcome.sent is False
    assert "Skipping Telegram alert" in outcome.detail
    assert requests == []
    assert metrics.snapshot()["failure"] == 1


@pytest.mark.parametrize(
    "status, expected",
    [
        (408, True),
        (425, True),
        (429, True),
        (500, True),
        (502, True),
        (599, True),
        (400, False),
        (401, False),
        (403, False),
        (404, False),
    ],
)
def test_is_retryable_status(status, expected):
    assert is_retryable_status(status) is expected


def test_backoff_delay_doubles():
    dispatcher = TelegramDispatcher("TOKEN", "42", retry_base_delay_ms=200)

    assert [dispatcher.backoff_delay(n) for n in (1, 2, 3)] == [0.2, 0.4, 0.8]


def test_max_retries_must_be_positive():
    with pytest.raises(ValueError):
        TelegramDispatcher("TOKEN", "42", max_retries=0)
