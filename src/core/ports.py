"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for the chat client and the optional
side services so that the core can be exercised with fakes in tests.
"""

from __future__ import annotations

from typing import Awaitable, Callable, List, Optional, Protocol, Sequence, Union

from core.models import FormattingSpan, InboundMessage, SendRequest

MessageHandler = Callable[[InboundMessage], Awaitable[None]]


class ChatClientPort(Protocol):
    """Chat operations required by the router and the sender.

    `send` must raise `RateLimitError` when the platform asks for a wait so
    the queue can tell transient failures from permanent ones.
    """

    async def wait_until_ready(self, timeout: float) -> None:
        ...

    def subscribe_new_message(self, source_id: int, handler: MessageHandler) -> None:
        ...

    def subscribe_edited_message(self, source_id: int, handler: MessageHandler) -> None:
        ...

    async def send(self, target_id: int, request: SendRequest) -> Union[int, List[int], None]:
        ...

    async def edit_text(
        self,
        target_id: int,
        message_id: int,
        text: str,
        spans: Sequence[FormattingSpan] = (),
    ) -> None:
        ...


class WebhookPort(Protocol):
    """Fire-and-forget notification about a delivered message."""

    def notify(self, message: str, channel_id: int, topic_id: Optional[int] = None) -> None:
        ...


class ContentRewriterPort(Protocol):
    """Optional network-bound text transform (translation variant)."""

    async def rewrite(self, text: str) -> str:
        ...
