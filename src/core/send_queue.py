"""Single-consumer, rate-limited outbound send queue (core domain).

All network sends go through one consumer loop so outbound ordering is
preserved and the inter-message delay is enforced. Only rate-limit signals
are retried; a retried unit goes back to the head of the queue.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections import deque
from typing import Awaitable, Callable, Deque, Optional

from core.config import QueueConfig
from core.errors import RateLimitError
from core.models import GroupedSendUnit, QueuedSendUnit

LOGGER = logging.getLogger(__name__)

Dispatch = Callable[[QueuedSendUnit], Awaitable[None]]
Sleep = Callable[[float], Awaitable[None]]

_WAIT_PATTERN = re.compile(r"wait of (\d+) seconds", re.IGNORECASE)


def extract_wait_seconds(error: BaseException, default: int = 60) -> Optional[int]:
    """Return the signaled wait for rate-limit errors, None for anything else."""

    if isinstance(error, RateLimitError):
        return error.seconds

    is_flood_wait = type(error).__name__.startswith("FloodWait")
    seconds = getattr(error, "seconds", None)
    if is_flood_wait and isinstance(seconds, int):
        return seconds

    message = str(error)
    match = _WAIT_PATTERN.search(message)
    if match:
        return int(match.group(1))
    if is_flood_wait or "seconds is required" in message:
        return default
    return None


def describe_unit(unit: QueuedSendUnit) -> str:
    if isinstance(unit, GroupedSendUnit):
        return f"album {unit.grouped_id} ({len(unit.messages)} items) -> {unit.route.target_channel_id}"
    return f"message {unit.message.message_id} -> {unit.route.target_channel_id}"


class SendQueue:
    """FIFO of send units drained by a single consumer task."""

    def __init__(
        self,
        dispatch: Dispatch,
        config: QueueConfig = QueueConfig(),
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._dispatch = dispatch
        self._config = config
        self._sleep = sleep
        self._queue: Deque[QueuedSendUnit] = deque()
        self._task: Optional[asyncio.Task] = None
        LOGGER.info("Message delay set to %sms", int(config.message_delay_seconds * 1000))

    @property
    def size(self) -> int:
        return len(self._queue)

    @property
    def is_processing(self) -> bool:
        return self._task is not None and not self._task.done()

    def enqueue(self, unit: QueuedSendUnit) -> None:
        """Append `unit` and start the consumer unless it is already running."""

        self._queue.append(unit)
        LOGGER.info("Message added to queue. Queue size: %s", len(self._queue))
        if not self.is_processing:
            self._task = asyncio.get_running_loop().create_task(self._consume())

    async def join(self) -> None:
        """Wait until the consumer has drained the queue and gone idle."""

        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})

    async def _consume(self) -> None:
        LOGGER.info("Started processing message queue")
        while self._queue:
            unit = self._queue.popleft()
            try:
                await self._dispatch(unit)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                wait_seconds = extract_wait_seconds(exc, self._config.default_flood_wait_seconds)
                if wait_seconds is None:
                    LOGGER.exception("Error sending %s, dropping it", describe_unit(unit))
                    continue
                await self._retry_later(unit, wait_seconds)
                continue

            # Pause after every successful send so back-to-back enqueues stay spaced.
            await self._sleep(self._config.message_delay_seconds)
        LOGGER.info("Finished processing message queue")

    async def _retry_later(self, unit: QueuedSendUnit, wait_seconds: int) -> None:
        unit.retry_count += 1
        if unit.retry_count > self._config.max_retries:
            LOGGER.error(
                "Message exceeded max retry attempts (%s). Dropping %s",
                self._config.max_retries,
                describe_unit(unit),
            )
            return

        LOGGER.warning(
            "FloodWait: need to wait %s seconds. Re-queuing %s at the front (retry %s/%s)",
            wait_seconds,
            describe_unit(unit),
            unit.retry_count,
            self._config.max_retries,
        )
        self._queue.appendleft(unit)
        await self._sleep(wait_seconds)
