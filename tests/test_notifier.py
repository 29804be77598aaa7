"""Email delivery: queueing, retries with backoff, the background worker."""

import asyncio

import httpx
import pytest

from homekrypto.config import settings
from homekrypto.notifications.notifier import (
    EmailDeliveryError,
    EmailMessage,
    EmailNotifier,
    EmailTransport,
    EmailWorker,
)

FAST = settings.model_copy(
    update={"email_retry_backoff_seconds": 0, "email_max_retries": 2}
)


class FlakyTransport(EmailTransport):
    """Fails the first `failures` deliveries, then succeeds."""

    def __init__(self, failures: int):
        super().__init__(FAST)
        self.failures = failures
        self.delivered: list[EmailMessage] = []
        self.calls = 0

    async def deliver(self, message: EmailMessage) -> None:
        self.calls += 1
        if self.calls <= self.failures:
            raise EmailDeliveryError("provider returned 503")
        self.delivered.append(message)


def _message(**kw) -> EmailMessage:
    return EmailMessage(to="a@x.com", subject="Hi", html="<p>Hi</p>", **kw)


def test_send_only_enqueues():
    transport = FlakyTransport(failures=0)
    notifier = EmailNotifier(FAST, transport)
    notifier.send(_message())
    assert notifier.queue.qsize() == 1
    assert transport.calls == 0


@pytest.mark.asyncio
async def test_retries_until_delivered():
    transport = FlakyTransport(failures=2)
    notifier = EmailNotifier(FAST, transport)
    message = _message()

    assert await notifier.deliver_with_retry(message) is True
    assert message.attempts == 3
    assert transport.delivered == [message]


@pytest.mark.asyncio
async def test_gives_up_after_max_retries():
    transport = FlakyTransport(failures=10)
    notifier = EmailNotifier(FAST, transport)
    message = _message()

    assert await notifier.deliver_with_retry(message) is False
    assert transport.calls == 1 + FAST.email_max_retries
    assert transport.delivered == []


@pytest.mark.asyncio
async def test_worker_drains_queue():
    transport = FlakyTransport(failures=1)
    notifier = EmailNotifier(FAST, transport)
    worker = EmailWorker(notifier)
    task = asyncio.create_task(worker.run_loop())

    notifier.send(_message(kind="password_reset"))
    notifier.send(_message(kind="agent_welcome"))
    await asyncio.wait_for(notifier.queue.join(), timeout=2)

    assert [m.kind for m in transport.delivered] == ["password_reset", "agent_welcome"]
    await _stop(worker, task)


@pytest.mark.asyncio
async def test_transport_skips_without_api_key():
    transport = EmailTransport(settings.model_copy(update={"email_api_key": ""}))
    # No provider configured: returns without touching the network
    await transport.deliver(_message())


@pytest.mark.asyncio
async def test_transport_posts_to_provider(monkeypatch):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["api_key"] = request.headers["api-key"]
        seen["body"] = request.read()
        return httpx.Response(201, json={"messageId": "abc"})

    _patch_client(monkeypatch, handler)
    config = settings.model_copy(update={"email_api_key": "test-key"})
    await EmailTransport(config).deliver(_message(text="Hi"))

    assert seen["url"] == config.email_api_url
    assert seen["api_key"] == "test-key"
    assert b'"htmlContent"' in seen["body"]
    assert b'"textContent"' in seen["body"]


@pytest.mark.asyncio
async def test_transport_raises_on_provider_error(monkeypatch):
    _patch_client(monkeypatch, lambda request: httpx.Response(500, text="boom"))
    config = settings.model_copy(update={"email_api_key": "test-key"})
    with pytest.raises(EmailDeliveryError, match="500"):
        await EmailTransport(config).deliver(_message())


def _patch_client(monkeypatch, handler):
    """Route the transport's httpx client through an in-process handler."""
    real_client = httpx.AsyncClient

    def client_factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", client_factory)


class StalledTransport(EmailTransport):
    """Never finishes a delivery, like a provider that stopped answering."""

    def __init__(self):
        super().__init__(FAST)
        self.release = asyncio.Event()

    async def deliver(self, message: EmailMessage) -> None:
        await self.release.wait()


async def _stop(worker: EmailWorker, task: asyncio.Task) -> None:
    worker.stop()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
async def test_drain_waits_for_queued_mail():
    transport = FlakyTransport(failures=0)
    notifier = EmailNotifier(FAST, transport)
    worker = EmailWorker(notifier)
    task = asyncio.create_task(worker.run_loop())

    for kind in ("password_changed", "agent_removed"):
        notifier.send(_message(kind=kind))
    assert await worker.drain(timeout=2) == 0
    assert len(transport.delivered) == 2
    await _stop(worker, task)


@pytest.mark.asyncio
async def test_drain_reports_undelivered_mail():
    notifier = EmailNotifier(FAST, StalledTransport())
    worker = EmailWorker(notifier)
    task = asyncio.create_task(worker.run_loop())

    for _ in range(3):
        notifier.send(_message())
    # One stuck in flight, two still queued
    assert await worker.drain(timeout=0.05) == 3
    await _stop(worker, task)
