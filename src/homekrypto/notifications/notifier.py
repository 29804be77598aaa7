"""Outbound email — fire-and-forget with a background delivery worker.

Request handlers call notifier.send(message), which only enqueues and
returns. EmailWorker (started in the app lifespan, like any other
background loop) drains the queue and delivers through EmailTransport,
retrying with exponential backoff:

    attempt 1 → wait backoff → attempt 2 → wait 2×backoff → ... → give up

A message that exhausts its retries is logged as email.delivery_failed.
Delivery problems never reach the request that queued the message and
never roll back the state change that caused it.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Optional

import httpx
import structlog

from homekrypto.config import Settings, settings as default_settings

logger = structlog.get_logger()


@dataclass
class EmailMessage:
    to: str
    subject: str
    html: str
    text: str = ""
    kind: str = "generic"  # for logs only
    attempts: int = field(default=0, compare=False)


class EmailDeliveryError(Exception):
    """Raised by a transport when the provider rejects or is unreachable."""


class EmailTransport:
    """Sends one message through the transactional email HTTP API."""

    def __init__(self, config: Settings = default_settings):
        self.config = config

    async def deliver(self, message: EmailMessage) -> None:
        if not self.config.email_api_key:
            # Development: no provider configured, log instead of sending.
            logger.info(
                "email.skipped_no_provider",
                to=message.to,
                subject=message.subject,
                kind=message.kind,
            )
            return

        payload = {
            "sender": {
                "name": self.config.email_sender_name,
                "email": self.config.email_sender,
            },
            "to": [{"email": message.to}],
            "subject": message.subject,
            "htmlContent": message.html,
        }
        if message.text:
            payload["textContent"] = message.text

        try:
            async with httpx.AsyncClient(
                timeout=self.config.email_timeout_seconds
            ) as client:
                response = await client.post(
                    self.config.email_api_url,
                    headers={
                        "api-key": self.config.email_api_key,
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.HTTPError as e:
            raise EmailDeliveryError(f"transport error: {e}") from e

        if response.status_code not in (200, 201, 202):
            raise EmailDeliveryError(
                f"provider returned {response.status_code}: {response.text[:200]}"
            )


class EmailNotifier:
    """Queue front-end used by services. send() never blocks or raises."""

    def __init__(
        self,
        config: Settings = default_settings,
        transport: Optional[EmailTransport] = None,
    ):
        self.config = config
        self.transport = transport or EmailTransport(config)
        self.queue: asyncio.Queue[EmailMessage] = asyncio.Queue()

    def send(self, message: EmailMessage) -> None:
        self.queue.put_nowait(message)
        logger.debug("email.queued", to=message.to, kind=message.kind)

    async def deliver_with_retry(self, message: EmailMessage) -> bool:
        """Try delivery up to 1 + email_max_retries times. True on success."""
        delay = self.config.email_retry_backoff_seconds
        while True:
            message.attempts += 1
            try:
                await self.transport.deliver(message)
                logger.info(
                    "email.delivered",
                    to=message.to,
                    kind=message.kind,
                    attempts=message.attempts,
                )
                return True
            except EmailDeliveryError as e:
                if message.attempts > self.config.email_max_retries:
                    logger.error(
                        "email.delivery_failed",
                        to=message.to,
                        kind=message.kind,
                        attempts=message.attempts,
                        error=str(e),
                    )
                    return False
                logger.warning(
                    "email.retrying",
                    to=message.to,
                    kind=message.kind,
                    attempt=message.attempts,
                    delay=delay,
                    error=str(e),
                )
                await asyncio.sleep(delay)
                delay *= 2


class EmailWorker:
    """Background loop that drains the notifier queue."""

    def __init__(self, notifier: EmailNotifier):
        self.notifier = notifier
        self._running = False
        self._current: Optional[EmailMessage] = None

    async def run_loop(self) -> None:
        self._running = True
        logger.info("email_worker.started")
        while self._running:
            message = await self.notifier.queue.get()
            self._current = message
            try:
                await self.notifier.deliver_with_retry(message)
            except Exception:
                logger.exception("email_worker.error", kind=message.kind)
            finally:
                self._current = None
                self.notifier.queue.task_done()

    async def drain(self, timeout: float) -> int:
        """Wait up to timeout for queued mail to go out. Returns how many are left."""
        try:
            await asyncio.wait_for(self.notifier.queue.join(), timeout)
        except asyncio.TimeoutError:
            pass
        left = self.notifier.queue.qsize() + (1 if self._current is not None else 0)
        if left:
            logger.warning("email_worker.dropped", count=left)
        return left

    def stop(self) -> None:
        logger.info("email_worker.stopping")
        self._running = False


# Process-wide notifier. Routes get it through get_notifier() so tests
# can substitute a recording notifier.
notifier = EmailNotifier()


def get_notifier() -> EmailNotifier:
    return notifier
