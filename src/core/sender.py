"""Outbound dispatch for queued send units.

`MessageSender.dispatch` is the function the SendQueue consumer invokes. It
builds the outbound text (substitutions, span remapping, button links or a
footer override), resolves the reply anchor, performs the send through the
chat client port, and records the resulting identity pair.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from core.buttons import extract_button_links
from core.errors import ContentRewriteError
from core.mapping import MessageMapper
from core.models import (
    FormattingSpan,
    GroupedSendUnit,
    InboundMessage,
    QueuedSendUnit,
    ReplyReference,
    Route,
    SendRequest,
    SingleSendUnit,
)
from core.ports import ChatClientPort, ContentRewriterPort, WebhookPort
from core.text_rewriter import TextRewriter, append_lines

LOGGER = logging.getLogger(__name__)


def is_topic_root_reply(reply: ReplyReference, route: Route) -> bool:
    """True when the reply only anchors the message inside a forum topic."""

    if route.source_topic_id is not None and reply.msg_id == route.source_topic_id:
        return True
    if reply.top_id and reply.msg_id == reply.top_id:
        return True
    # A plain post inside a topic points at the topic root without a top id.
    return reply.forum_topic and not reply.top_id


def _sent_ids(result: Union[int, List[int], None]) -> List[int]:
    if result is None:
        return []
    if isinstance(result, int):
        return [result]
    return [message_id for message_id in result if message_id is not None]


def _target_label(route: Route) -> str:
    if route.target_topic_id:
        return f"channel {route.target_channel_id}, topic {route.target_topic_id}"
    return f"channel {route.target_channel_id}"


class MessageSender:
    """Turn send units into chat client calls and remember what was sent."""

    def __init__(
        self,
        client: ChatClientPort,
        mapper: MessageMapper,
        rewriter: TextRewriter,
        webhook: Optional[WebhookPort] = None,
        content_rewriter: Optional[ContentRewriterPort] = None,
    ) -> None:
        self._client = client
        self._mapper = mapper
        self._rewriter = rewriter
        self._webhook = webhook
        self._content_rewriter = content_rewriter

    async def dispatch(self, unit: QueuedSendUnit) -> None:
        if isinstance(unit, GroupedSendUnit):
            await self.send_grouped(unit)
        else:
            await self.send_single(unit)

    def resolve_reply_to(self, message: InboundMessage, route: Route) -> Optional[int]:
        """Return the target message to reply to, or the target topic root."""

        reply = message.reply_to
        if reply is not None and reply.msg_id and not is_topic_root_reply(reply, route):
            target_id = self._mapper.get_mapping(reply.msg_id, route.target_channel_id, route.target_topic_id)
            if target_id:
                LOGGER.info("Replying to message %s -> target %s", reply.msg_id, target_id)
                return target_id
            LOGGER.warning("Reply to message %s not found in mappings", reply.msg_id)
        return route.target_topic_id

    async def compose(
        self, messages: Sequence[InboundMessage], route: Route
    ) -> Tuple[str, Tuple[FormattingSpan, ...]]:
        """Build outbound text and spans for one or more source messages."""

        text = ""
        spans: Tuple[FormattingSpan, ...] = ()
        text_source = next((message for message in messages if message.text), None)
        if text_source is not None:
            text, spans = self._rewriter.rewrite_with_spans(text_source.text, text_source.spans)
            if self._content_rewriter is not None:
                text, spans = await self._apply_content_rewriter(text, spans)

        if route.footer_override:
            text = append_lines(text, route.footer_override)
            LOGGER.info("Added footer override for channel %s", route.target_channel_id)
        else:
            links = self._button_links(messages)
            if links:
                LOGGER.info("Converted %s button(s) to links", len(links))
                text = append_lines(text, links)
        return text, spans

    async def _apply_content_rewriter(
        self, text: str, spans: Tuple[FormattingSpan, ...]
    ) -> Tuple[str, Tuple[FormattingSpan, ...]]:
        try:
            rewritten = await self._content_rewriter.rewrite(text)
        except Exception as exc:
            raise ContentRewriteError("Content rewrite failed") from exc
        return rewritten, self._rewriter.adjust_spans(text, rewritten, spans)

    @staticmethod
    def _button_links(messages: Iterable[InboundMessage]) -> List[str]:
        for message in messages:
            if message.buttons:
                return extract_button_links(message)
        return []

    async def send_single(self, unit: SingleSendUnit) -> None:
        message, route = unit.message, unit.route
        text, spans = await self.compose([message], route)
        request = SendRequest(
            text=text,
            spans=spans,
            reply_to=self.resolve_reply_to(message, route),
            media=message.media,
        )
        sent = _sent_ids(await self._client.send(route.target_channel_id, request))
        LOGGER.info("Message %s sent to %s", message.message_id, _target_label(route))

        if sent:
            self._mapper.set_mapping(message.message_id, route.target_channel_id, sent[0], route.target_topic_id)
        self._notify(text, route)

    async def send_grouped(self, unit: GroupedSendUnit) -> None:
        route = unit.route
        LOGGER.info("Sending grouped message (%s items) from queue...", len(unit.messages))
        text, spans = await self.compose(unit.messages, route)
        media_sources = [message for message in unit.messages if message.media is not None]
        request = SendRequest(
            text=text,
            spans=spans,
            reply_to=self.resolve_reply_to(unit.messages[0], route),
            media=[message.media for message in media_sources] or None,
        )
        sent = _sent_ids(await self._client.send(route.target_channel_id, request))
        if media_sources:
            LOGGER.info("Album with %s items sent to %s", len(media_sources), _target_label(route))
        else:
            LOGGER.info("Message sent to %s", _target_label(route))

        sources = media_sources or list(unit.messages[:1])
        if sent and len(sent) != len(sources):
            LOGGER.warning("Album size mismatch: sent %s, expected %s", len(sent), len(sources))
        for source, target_id in zip(sources, sent):
            self._mapper.set_mapping(source.message_id, route.target_channel_id, target_id, route.target_topic_id)

        # The caption lands on the first sent item, so edits of the caption
        # owner must target that item.
        caption_owner = next((message for message in unit.messages if message.text), None)
        if caption_owner is not None and sent:
            self._mapper.set_mapping(caption_owner.message_id, route.target_channel_id, sent[0], route.target_topic_id)
        self._notify(text, route)

    async def edit(self, message: InboundMessage, route: Route, target_message_id: int) -> bool:
        """Re-compose `message` for `route` and replace the relayed text.

        Messages without text of their own are skipped and False is returned;
        an uncaptioned album item maps to the sent item holding the album caption.
        """

        if not message.text:
            LOGGER.debug("Edited message %s has no text, leaving %s untouched", message.message_id, target_message_id)
            return False
        text, spans = await self.compose([message], route)
        await self._client.edit_text(route.target_channel_id, target_message_id, text, spans)
        LOGGER.info("Message %s edited in %s", target_message_id, _target_label(route))
        return True

    def _notify(self, text: str, route: Route) -> None:
        if self._webhook is None:
            return
        try:
            self._webhook.notify(text, route.target_channel_id, route.target_topic_id)
        except Exception:
            LOGGER.exception("Webhook notification failed for channel %s", route.target_channel_id)
