"""Telegram-to-core message mapping adapter.

This keeps Telethon-specific details out of the core pipeline: incoming
Telethon messages become `InboundMessage` values, and formatting spans are
turned back into Telethon entities for sending.
"""

from __future__ import annotations

import copy
from typing import Any, Iterable, List, Optional, Tuple

from telethon.tl import types
from telethon.tl.custom import Message

from core.models import FormattingSpan, InboundMessage, InlineButton, ReplyReference

_ENTITY_PREFIX = "MessageEntity"

# Entity kinds that can be rebuilt from (offset, length[, url]) alone.
_SIMPLE_ENTITIES = {
    "bold": types.MessageEntityBold,
    "italic": types.MessageEntityItalic,
    "underline": types.MessageEntityUnderline,
    "strike": types.MessageEntityStrike,
    "code": types.MessageEntityCode,
    "spoiler": types.MessageEntitySpoiler,
    "url": types.MessageEntityUrl,
    "mention": types.MessageEntityMention,
    "hashtag": types.MessageEntityHashtag,
    "email": types.MessageEntityEmail,
}


def _entity_kind(entity: Any) -> str:
    name = type(entity).__name__
    if name.startswith(_ENTITY_PREFIX):
        name = name[len(_ENTITY_PREFIX):]
    return name.lower()


def spans_from_entities(entities: Optional[Iterable[Any]]) -> Tuple[FormattingSpan, ...]:
    if not entities:
        return ()
    return tuple(
        FormattingSpan(
            offset=entity.offset,
            length=entity.length,
            kind=_entity_kind(entity),
            url=getattr(entity, "url", None),
            raw=entity,
        )
        for entity in entities
    )


def entities_from_spans(spans: Iterable[FormattingSpan]) -> List[Any]:
    """Rebuild Telethon entities, keeping the original entity type when known."""

    entities: List[Any] = []
    for span in spans:
        if span.raw is not None:
            entity = copy.copy(span.raw)
            entity.offset = span.offset
            entity.length = span.length
        elif span.kind == "texturl" and span.url:
            entity = types.MessageEntityTextUrl(offset=span.offset, length=span.length, url=span.url)
        elif span.kind in _SIMPLE_ENTITIES:
            entity = _SIMPLE_ENTITIES[span.kind](offset=span.offset, length=span.length)
        else:
            continue
        entities.append(entity)
    return entities


def _reply_reference(message: Message) -> Optional[ReplyReference]:
    reply_to = getattr(message, "reply_to", None)
    if reply_to is None:
        return None
    return ReplyReference(
        msg_id=getattr(reply_to, "reply_to_msg_id", None),
        top_id=getattr(reply_to, "reply_to_top_id", None),
        forum_topic=bool(getattr(reply_to, "forum_topic", False)),
    )


def _inline_buttons(message: Message) -> Tuple[Tuple[InlineButton, ...], ...]:
    markup = getattr(message, "reply_markup", None)
    rows = getattr(markup, "rows", None)
    if not isinstance(markup, types.ReplyInlineMarkup) or not rows:
        return ()

    converted = []
    for row in rows:
        buttons = []
        for button in getattr(row, "buttons", []):
            if isinstance(button, types.KeyboardButtonUrl):
                buttons.append(InlineButton(text=button.text, url=button.url, kind="url"))
            else:
                kind = type(button).__name__.replace("KeyboardButton", "").lower() or "button"
                buttons.append(InlineButton(text=getattr(button, "text", ""), kind=kind))
        converted.append(tuple(buttons))
    return tuple(converted)


def _media(message: Message) -> Any:
    media = getattr(message, "media", None)
    # Link previews are rendered by Telegram from the text, not re-uploadable.
    if media is None or isinstance(media, types.MessageMediaWebPage):
        return None
    return media


def build_inbound_message(message: Message) -> InboundMessage:
    """Build a core InboundMessage from a Telethon Message."""

    return InboundMessage(
        chat_id=message.chat_id,
        message_id=message.id,
        text=message.message or "",
        spans=spans_from_entities(getattr(message, "entities", None)),
        reply_to=_reply_reference(message),
        buttons=_inline_buttons(message),
        media=_media(message),
        grouped_id=getattr(message, "grouped_id", None),
    )
