"""Outbound webhook notification adapter.

Posts a small JSON payload for every relayed message whose target channel
(or channel + topic) is listed in WEBHOOK_CHANNELS. Delivery runs in the
background and never blocks or fails the send pipeline.
"""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.error
import urllib.request
from typing import Iterable, Optional, Set

LOGGER = logging.getLogger(__name__)


def webhook_channel_key(channel_id: int, topic_id: Optional[int] = None) -> str:
    """Return ``channelId`` or ``channelId_topicId``."""

    if topic_id:
        return f"{channel_id}_{topic_id}"
    return str(channel_id)


def parse_webhook_channels(raw: Optional[str]) -> Set[str]:
    if not raw:
        return set()
    return {item.strip() for item in raw.split(",") if item.strip()}


class WebhookNotifier:
    """Fire-and-forget HTTP POST keyed by target channel membership."""

    def __init__(
        self,
        url: str,
        channels: Iterable[str],
        api_key: Optional[str] = None,
        timeout: float = 5.0,
    ) -> None:
        self._url = url
        self._channels = set(channels)
        self._api_key = api_key
        self._timeout = timeout
        self._tasks: Set[asyncio.Task] = set()
        if self._url and self._channels:
            LOGGER.info("Webhook enabled for %s channel(s): %s", len(self._channels), ", ".join(sorted(self._channels)))

    def should_notify(self, channel_id: int, topic_id: Optional[int] = None) -> bool:
        if not self._url or not self._channels:
            return False
        return webhook_channel_key(channel_id, topic_id) in self._channels

    def notify(self, message: str, channel_id: int, topic_id: Optional[int] = None) -> None:
        if not self.should_notify(channel_id, topic_id):
            return

        channel_key = webhook_channel_key(channel_id, topic_id)
        payload = {"message": message, "channelId": channel_key}
        task = asyncio.get_running_loop().create_task(asyncio.to_thread(self._post, payload))
        self._tasks.add(task)
        task.add_done_callback(lambda done: self._finished(done, channel_key))
        LOGGER.info("Webhook queued for channel %s", channel_key)

    def _finished(self, task: asyncio.Task, channel_key: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            LOGGER.error("Failed to send webhook for channel %s: %s", channel_key, error)
        else:
            LOGGER.info("Webhook sent successfully for channel %s", channel_key)

    def _post(self, payload: dict) -> None:
        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(self._url, data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        if self._api_key:
            request.add_header("X-API-Key", self._api_key)
        try:
            with urllib.request.urlopen(request, timeout=self._timeout):
                pass
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace")
            raise RuntimeError(f"Webhook error {e.code}: {body}") from e

    async def drain(self) -> None:
        """Wait for in-flight notifications (used on shutdown)."""

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
