"""Telethon implementation of the chat client port.

Wraps a connected `TelegramClient`: installs per-channel event handlers,
performs sends and edits, and turns Telethon's FloodWaitError into the
core's RateLimitError so the send queue can retry it.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, List, Optional, Sequence

from telethon import TelegramClient, errors, events, utils
from telethon.tl import functions, types

from adapters.telegram_mapper import build_inbound_message, entities_from_spans
from core.errors import RateLimitError, ReadyTimeoutError
from core.models import FormattingSpan, SendRequest
from core.ports import MessageHandler

LOGGER = logging.getLogger(__name__)

_TME_LINK = re.compile(r"t\.me/(.+)")


def _message_ids(sent: Any) -> List[int]:
    if sent is None:
        return []
    if isinstance(sent, (list, tuple)):
        return [message.id for message in sent if message is not None]
    return [sent.id]


class TelethonChatClient:
    """ChatClientPort backed by Telethon."""

    def __init__(self, client: TelegramClient) -> None:
        self._client = client
        self._ready = asyncio.Event()

    def mark_ready(self) -> None:
        self._ready.set()
        LOGGER.info("Telegram client is ready")

    async def wait_until_ready(self, timeout: float) -> None:
        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
        except asyncio.TimeoutError as exc:
            raise ReadyTimeoutError("Timeout waiting for Telegram client to be ready") from exc

    def _install(self, source_id: int, handler: MessageHandler, builder, label: str) -> None:
        async def on_event(event) -> None:
            try:
                await handler(build_inbound_message(event.message))
            except Exception:
                LOGGER.exception("Error handling %s from channel %s", label, source_id)

        self._client.add_event_handler(on_event, builder(chats=[source_id]))
        LOGGER.info("Listening to %s from channel: %s", label, source_id)

    def subscribe_new_message(self, source_id: int, handler: MessageHandler) -> None:
        self._install(source_id, handler, events.NewMessage, "messages")

    def subscribe_edited_message(self, source_id: int, handler: MessageHandler) -> None:
        self._install(source_id, handler, events.MessageEdited, "edited messages")

    async def send(self, target_id: int, request: SendRequest) -> List[int]:
        entities = entities_from_spans(request.spans) or None
        try:
            if request.media is None:
                sent = await self._client.send_message(
                    target_id,
                    request.text,
                    reply_to=request.reply_to,
                    formatting_entities=entities,
                    parse_mode=None,
                )
            else:
                sent = await self._client.send_file(
                    target_id,
                    request.media,
                    caption=request.text,
                    reply_to=request.reply_to,
                    formatting_entities=entities,
                    parse_mode=None,
                )
        except errors.FloodWaitError as exc:
            raise RateLimitError(exc.seconds) from exc
        return _message_ids(sent)

    async def edit_text(
        self,
        target_id: int,
        message_id: int,
        text: str,
        spans: Sequence[FormattingSpan] = (),
    ) -> None:
        try:
            await self._client.edit_message(
                target_id,
                message_id,
                text,
                formatting_entities=entities_from_spans(spans) or None,
                parse_mode=None,
            )
        except errors.MessageNotModifiedError:
            LOGGER.info("Message %s in channel %s already up to date", message_id, target_id)
        except errors.FloodWaitError as exc:
            raise RateLimitError(exc.seconds) from exc

    async def resolve_channel_id(self, identifier: str) -> int:
        """Resolve ``@name``, ``t.me/name`` or ``t.me/+hash`` to a marked peer id.

        Invite links are joined first; an invite to a chat we already belong
        to is resolved through the invite preview.
        """

        clean = identifier.strip()
        match = _TME_LINK.search(clean)
        if match:
            clean = match.group(1).strip("/")
            if clean.startswith("+") or clean.startswith("joinchat/"):
                entity = await self._join_invite(clean.split("/")[-1].lstrip("+"))
                return utils.get_peer_id(entity)
            clean = f"@{clean}"

        LOGGER.info("Resolving entity: %s -> %s", identifier, clean)
        entity = await self._client.get_entity(clean)
        peer_id = utils.get_peer_id(entity)
        LOGGER.info("Resolved entity %s -> ID: %s", identifier, peer_id)
        return peer_id

    async def _join_invite(self, invite_hash: str) -> Any:
        try:
            LOGGER.info("Attempting to join channel via invite link...")
            result = await self._client(functions.messages.ImportChatInviteRequest(hash=invite_hash))
            return result.chats[0]
        except errors.UserAlreadyParticipantError:
            invite = await self._client(functions.messages.CheckChatInviteRequest(hash=invite_hash))
            chat: Optional[Any] = getattr(invite, "chat", None)
            if isinstance(invite, types.ChatInviteAlready) and chat is not None:
                return chat
            raise

    async def disconnect(self) -> None:
        await self._client.disconnect()
        LOGGER.info("Telegram client disconnected")
