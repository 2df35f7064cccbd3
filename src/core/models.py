"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types. The Telethon adapter converts
incoming messages into `InboundMessage` so the core never inspects raw
Telegram objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Tuple, Union


@dataclass(frozen=True)
class Route:
    """One configured source -> target forwarding rule."""

    source_channel_id: int
    target_channel_id: int
    source_topic_id: Optional[int] = None
    target_topic_id: Optional[int] = None
    search_keyword: Optional[str] = None
    footer_override: Optional[Tuple[str, ...]] = None

    def describe(self) -> str:
        source = str(self.source_channel_id)
        if self.source_topic_id is not None:
            source = f"{source}, topic {self.source_topic_id}"
        target = str(self.target_channel_id)
        if self.target_topic_id is not None:
            target = f"{target}, topic {self.target_topic_id}"
        label = f"channel {source} -> channel {target}"
        if self.search_keyword:
            label = f'keyword="{self.search_keyword}" in {label}'
        return label


@dataclass(frozen=True)
class FormattingSpan:
    """Rich-text annotation; offsets and lengths are in UTF-16 code units."""

    offset: int
    length: int
    kind: str
    url: Optional[str] = None
    # Original client entity, kept so the adapter can rebuild it faithfully.
    raw: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class ReplyReference:
    """What an inbound message replies to."""

    msg_id: Optional[int] = None
    top_id: Optional[int] = None
    forum_topic: bool = False


@dataclass(frozen=True)
class InlineButton:
    text: str
    url: Optional[str] = None
    kind: str = "url"


@dataclass(frozen=True)
class InboundMessage:
    """Closed value type for a message observed in a source chat."""

    chat_id: int
    message_id: int
    text: str = ""
    spans: Tuple[FormattingSpan, ...] = ()
    reply_to: Optional[ReplyReference] = None
    buttons: Tuple[Tuple[InlineButton, ...], ...] = ()
    media: Any = None
    grouped_id: Optional[int] = None

    @property
    def topic_id(self) -> Optional[int]:
        """Forum topic this message belongs to, if any."""

        reply_to = self.reply_to
        if reply_to is None or not reply_to.forum_topic:
            return None
        if reply_to.top_id:
            return reply_to.top_id
        return reply_to.msg_id

    @property
    def has_content(self) -> bool:
        return bool(self.text) or self.media is not None


@dataclass
class SingleSendUnit:
    message: InboundMessage
    route: Route
    retry_count: int = 0


@dataclass
class GroupedSendUnit:
    messages: Tuple[InboundMessage, ...]
    grouped_id: int
    route: Route
    retry_count: int = 0


QueuedSendUnit = Union[SingleSendUnit, GroupedSendUnit]


@dataclass(frozen=True)
class SendRequest:
    """Everything the chat client needs to perform one outbound send."""

    text: str
    spans: Tuple[FormattingSpan, ...] = ()
    reply_to: Optional[int] = None
    media: Any = None


@dataclass(frozen=True)
class ParsedChannelConfiguration:
    """Result of parsing the routing configuration strings."""

    routes: Tuple[Route, ...]
    legacy_mode: bool
    legacy_source: Optional[int] = None
    legacy_target: Optional[int] = None

    @property
    def use_direct_ids(self) -> bool:
        return self.legacy_source is not None and self.legacy_target is not None
