"""Debounced album (grouped media) collection.

Each pending group is keyed by (grouped_id, target channel, target topic)
because one source album can fan out to several routes. A group is
*collecting* until its deadline passes without a new arrival; it is then
flushed as one `GroupedSendUnit` and forgotten.

Flush timing is driven by an injectable clock, so `flush_due(now)` can be
exercised in tests without real waits. At runtime a single ticker task
sleeps until the earliest deadline and flushes whatever is due.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from core.config import AlbumConfig
from core.models import GroupedSendUnit, InboundMessage, Route
from core.send_queue import Sleep

LOGGER = logging.getLogger(__name__)

GroupKey = Tuple[int, int, Optional[int]]


@dataclass
class PendingGroup:
    grouped_id: int
    route: Route
    first_seen: float
    deadline: float
    messages: List[InboundMessage] = field(default_factory=list)


class AlbumAggregator:
    """Collect burst-arriving album items into one logical send unit."""

    def __init__(
        self,
        on_flush: Callable[[GroupedSendUnit], None],
        config: AlbumConfig = AlbumConfig(),
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._on_flush = on_flush
        self._config = config
        self._clock = clock
        self._sleep = sleep
        self._groups: Dict[GroupKey, PendingGroup] = {}
        self._ticker: Optional[asyncio.Task] = None

    @property
    def pending(self) -> int:
        return len(self._groups)

    def add(self, message: InboundMessage, route: Route) -> None:
        if message.grouped_id is None:
            raise ValueError("message is not part of an album")

        key: GroupKey = (message.grouped_id, route.target_channel_id, route.target_topic_id)
        now = self._clock()
        group = self._groups.get(key)
        if group is None:
            group = PendingGroup(grouped_id=message.grouped_id, route=route, first_seen=now, deadline=now)
            self._groups[key] = group

        group.messages.append(message)
        group.deadline = self._next_deadline(group, now)
        LOGGER.info(
            "Collected message %s for group %s (target %s)",
            len(group.messages),
            message.grouped_id,
            route.target_channel_id,
        )
        self._ensure_ticker()

    def _next_deadline(self, group: PendingGroup, now: float) -> float:
        deadline = now + self._config.quiescence_seconds
        if self._config.max_wait_seconds is not None:
            deadline = min(deadline, group.first_seen + self._config.max_wait_seconds)
        return deadline

    def flush_due(self, now: Optional[float] = None) -> List[GroupedSendUnit]:
        """Flush every group whose deadline has passed."""

        if now is None:
            now = self._clock()
        due = [key for key, group in self._groups.items() if group.deadline <= now]
        return [self._flush(key) for key in due]

    def flush_all(self) -> List[GroupedSendUnit]:
        return [self._flush(key) for key in list(self._groups)]

    def _flush(self, key: GroupKey) -> GroupedSendUnit:
        group = self._groups.pop(key)
        unit = GroupedSendUnit(
            messages=tuple(group.messages),
            grouped_id=group.grouped_id,
            route=group.route,
        )
        LOGGER.info(
            "Flushing group %s with %s item(s) for channel %s",
            group.grouped_id,
            len(group.messages),
            group.route.target_channel_id,
        )
        try:
            self._on_flush(unit)
        except Exception:
            LOGGER.exception("Failed to hand off group %s", group.grouped_id)
        return unit

    def _ensure_ticker(self) -> None:
        if self._ticker is not None and not self._ticker.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (synchronous callers drive flush_due themselves).
            return
        self._ticker = loop.create_task(self._run_ticker())

    async def _run_ticker(self) -> None:
        while self._groups:
            next_deadline = min(group.deadline for group in self._groups.values())
            await self._sleep(max(0.0, next_deadline - self._clock()))
            self.flush_due()
