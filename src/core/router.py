"""Routing orchestrator (core domain).

The router owns every piece of mutable relay state: the identity map, the
send queue and the album aggregator. One subscription is installed per
unique source channel and fanned out to the matching routes internally, so
an event is never delivered twice for routes sharing a source.

New message flow:
1) Select routes by source channel and originating topic
2) Drop messages without text or media
3) Per route: keyword filter (albums are filtered once collected)
4) Albums go to the aggregator, everything else straight to the queue

Edits resolve the relayed message through the identity map and are applied
once per distinct (target channel, target message).
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from core.aggregator import AlbumAggregator
from core.config import AlbumConfig, QueueConfig
from core.mapping import MessageMapper
from core.models import GroupedSendUnit, InboundMessage, Route, SingleSendUnit
from core.ports import ChatClientPort, ContentRewriterPort, WebhookPort
from core.send_queue import SendQueue, Sleep
from core.sender import MessageSender
from core.text_rewriter import TextRewriter

LOGGER = logging.getLogger(__name__)


def keyword_matches(keyword: Optional[str], texts: Iterable[str]) -> bool:
    """Case-insensitive substring check; no keyword matches everything."""

    if not keyword:
        return True
    needle = keyword.casefold()
    return any(needle in (text or "").casefold() for text in texts)


class Router:
    """Fan inbound events out to routes and feed the send pipeline."""

    def __init__(
        self,
        routes: Sequence[Route],
        client: ChatClientPort,
        mapper: MessageMapper,
        sender: MessageSender,
        queue_config: QueueConfig = QueueConfig(),
        album_config: AlbumConfig = AlbumConfig(),
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._routes = tuple(routes)
        self._client = client
        self._mapper = mapper
        self._sender = sender
        self._queue = SendQueue(sender.dispatch, queue_config, sleep)
        self._aggregator = AlbumAggregator(self._on_group_flushed, album_config, clock, sleep)
        self._routes_by_source: Dict[int, List[Route]] = {}
        for route in self._routes:
            self._routes_by_source.setdefault(route.source_channel_id, []).append(route)

    @classmethod
    def build(
        cls,
        routes: Sequence[Route],
        client: ChatClientPort,
        rewriter: Optional[TextRewriter] = None,
        webhook: Optional[WebhookPort] = None,
        content_rewriter: Optional[ContentRewriterPort] = None,
        **kwargs,
    ) -> "Router":
        """Wire a router with a fresh identity map and sender."""

        mapper = MessageMapper()
        sender = MessageSender(
            client,
            mapper,
            rewriter or TextRewriter(),
            webhook=webhook,
            content_rewriter=content_rewriter,
        )
        return cls(routes, client, mapper, sender, **kwargs)

    @property
    def routes(self) -> Tuple[Route, ...]:
        return self._routes

    @property
    def source_ids(self) -> List[int]:
        return list(self._routes_by_source)

    @property
    def mapper(self) -> MessageMapper:
        return self._mapper

    @property
    def queue(self) -> SendQueue:
        return self._queue

    @property
    def aggregator(self) -> AlbumAggregator:
        return self._aggregator

    async def start(self, ready_timeout: float = 30.0) -> None:
        """Wait for the client, then subscribe once per unique source channel."""

        await self._client.wait_until_ready(ready_timeout)
        LOGGER.info("Starting to watch %s channel(s) for %s route(s)", len(self._routes_by_source), len(self._routes))
        for source_id in self._routes_by_source:
            self._client.subscribe_new_message(source_id, self._new_message_handler(source_id))
            self._client.subscribe_edited_message(source_id, self._edited_message_handler(source_id))
            for route in self._routes_by_source[source_id]:
                LOGGER.info("Listening: %s", route.describe())

    def _new_message_handler(self, source_id: int):
        async def handler(message: InboundMessage) -> None:
            await self.handle_new_message(message, source_id)

        return handler

    def _edited_message_handler(self, source_id: int):
        async def handler(message: InboundMessage) -> None:
            await self.handle_edited_message(message, source_id)

        return handler

    async def shutdown(self) -> None:
        """Flush pending albums and wait for the queue to drain."""

        self._aggregator.flush_all()
        await self._queue.join()
        LOGGER.info("Send queue drained; %s relayed message(s) were mapped", len(self._mapper))

    def matching_routes(self, source_id: int, topic_id: Optional[int]) -> List[Route]:
        return [
            route
            for route in self._routes_by_source.get(source_id, [])
            if route.source_topic_id is None or route.source_topic_id == topic_id
        ]

    async def handle_new_message(self, message: InboundMessage, source_id: Optional[int] = None) -> None:
        try:
            self.route_new_message(message, message.chat_id if source_id is None else source_id)
        except Exception:
            LOGGER.exception("Error processing message %s", message.message_id)

    def route_new_message(self, message: InboundMessage, source_id: int) -> List[Route]:
        """Hand `message` to the queue or aggregator; return the accepted routes."""

        routes = self.matching_routes(source_id, message.topic_id)
        if not routes:
            LOGGER.debug("No route for message %s from %s (topic %s)", message.message_id, source_id, message.topic_id)
            return []

        if not message.has_content:
            LOGGER.info("Received message %s without text or media, skipping", message.message_id)
            return []

        accepted: List[Route] = []
        for route in routes:
            if message.grouped_id is not None:
                # Album captions usually sit on one item only, so keyword
                # routes are checked against the whole group at flush time.
                self._aggregator.add(message, route)
                accepted.append(route)
                continue

            if not keyword_matches(route.search_keyword, [message.text]):
                LOGGER.debug("Keyword %r not found in message %s", route.search_keyword, message.message_id)
                continue
            self._queue.enqueue(SingleSendUnit(message=message, route=route))
            accepted.append(route)
        return accepted

    def _on_group_flushed(self, unit: GroupedSendUnit) -> None:
        texts = [message.text for message in unit.messages]
        if not keyword_matches(unit.route.search_keyword, texts):
            LOGGER.debug("Keyword %r not found in album %s", unit.route.search_keyword, unit.grouped_id)
            return
        self._queue.enqueue(unit)

    async def handle_edited_message(self, message: InboundMessage, source_id: Optional[int] = None) -> None:
        try:
            await self.apply_edit(message, message.chat_id if source_id is None else source_id)
        except Exception:
            LOGGER.exception("Error handling edited message %s", message.message_id)

    async def apply_edit(self, message: InboundMessage, source_id: int) -> int:
        """Propagate an edit; return how many target messages were edited."""

        LOGGER.info("Message %s was edited in channel %s", message.message_id, source_id)
        seen: Set[Tuple[int, int]] = set()
        edited = 0
        for route in self.matching_routes(source_id, message.topic_id):
            target_id = self._mapper.get_mapping(message.message_id, route.target_channel_id, route.target_topic_id)
            if target_id is None:
                LOGGER.warning(
                    "No mapping found for edited message %s in channel %s, skipping edit",
                    message.message_id,
                    route.target_channel_id,
                )
                continue

            key = (route.target_channel_id, target_id)
            if key in seen:
                continue
            seen.add(key)

            try:
                changed = await self._sender.edit(message, route, target_id)
            except Exception:
                LOGGER.exception("Failed to edit message %s in channel %s", target_id, route.target_channel_id)
                continue
            if changed:
                edited += 1
        return edited
