"""Application entry point for the channel relay."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Any, List, Optional

from art import tprint
from dotenv import load_dotenv

import settings
from adapters.telethon_client import TelethonChatClient
from adapters.webhook_notifier import WebhookNotifier, parse_webhook_channels
from client import build_client
from core.channel_config import apply_footer_overrides, parse_channel_configuration
from core.config import AlbumConfig, QueueConfig
from core.errors import ConfigurationError
from core.models import ParsedChannelConfiguration, Route
from core.router import Router
from core.text_rewriter import DEFAULT_REPLACEMENTS, Replacement, TextRewriter
from get_session import authorize

NAME = "RELAY"
FONT = "tarty-1"

DEFAULT_REDACT_PATTERNS = ["API_HASH", "SESSION_STRING", "WEBHOOK_API_KEY", "2FA"]


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", True):
        return []
    values = []
    for name in redact_cfg.get("patterns", DEFAULT_REDACT_PATTERNS):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", True):
        return

    load_dotenv()
    level_name = str(settings.LOG_LEVEL or config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = _RedactingFormatter(_collect_redaction_values(config), fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/relay.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        file_handler = RotatingFileHandler(
            path,
            maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
            backupCount=int(file_cfg.get("backup_count", 5)),
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)
    # Telethon is chatty at INFO about reconnects and updates.
    logging.getLogger("telethon").setLevel(max(level, logging.WARNING))


def _build_rewriter() -> TextRewriter:
    raw = settings.TEXT_REPLACEMENTS
    if raw is None:
        return TextRewriter(DEFAULT_REPLACEMENTS)
    replacements = [
        Replacement(pattern=str(item["pattern"]), replacement=str(item.get("replacement", "")))
        for item in raw
        if item.get("pattern")
    ]
    return TextRewriter(replacements)


def _build_webhook() -> Optional[WebhookNotifier]:
    channels = parse_webhook_channels(settings.WEBHOOK_CHANNELS)
    if not settings.WEBHOOK_URL or not channels:
        return None
    return WebhookNotifier(settings.WEBHOOK_URL, channels, api_key=settings.WEBHOOK_API_KEY or None)


def _parse_configuration() -> ParsedChannelConfiguration:
    parsed = parse_channel_configuration(
        channels_config=settings.CHANNELS_CONFIG,
        search_config=settings.SEARCH_CONFIG,
        source_channel_id=settings.SOURCE_CHANNEL_ID,
        target_channel_id=settings.TARGET_CHANNEL_ID,
    )
    if parsed.legacy_mode and not parsed.use_direct_ids:
        if not settings.SOURCE_CHANNEL_URL or not settings.TARGET_CHANNEL_URL:
            raise ConfigurationError(
                "Missing channel configuration. Provide CHANNELS_CONFIG, SEARCH_CONFIG, "
                "SOURCE_CHANNEL_ID + TARGET_CHANNEL_ID or SOURCE_CHANNEL_URL + TARGET_CHANNEL_URL"
            )
    return parsed


async def _resolve_routes(parsed: ParsedChannelConfiguration, chat: TelethonChatClient) -> List[Route]:
    """Return the routes to serve, resolving legacy channel URLs if needed."""

    routes = list(parsed.routes)
    if parsed.legacy_mode and not parsed.use_direct_ids:
        logging.getLogger(__name__).info("Resolving Telegram channel IDs from URLs...")
        source_id = await chat.resolve_channel_id(settings.SOURCE_CHANNEL_URL)
        target_id = await chat.resolve_channel_id(settings.TARGET_CHANNEL_URL)
        routes = [Route(source_channel_id=source_id, target_channel_id=target_id)]
    return apply_footer_overrides(routes, settings.FOOTER_OVERRIDES)


def _run() -> None:
    _print_banner()
    _configure_logging()
    logger = logging.getLogger(__name__)

    logger.info("Starting relay")

    # Configuration errors are fatal and checked before touching the network.
    parsed = _parse_configuration()

    client = build_client()
    client.loop.run_until_complete(client.connect())
    client.loop.run_until_complete(authorize(client))

    chat = TelethonChatClient(client)
    chat.mark_ready()

    routes = client.loop.run_until_complete(_resolve_routes(parsed, chat))
    webhook = _build_webhook()
    router = Router.build(
        routes,
        chat,
        rewriter=_build_rewriter(),
        webhook=webhook,
        queue_config=QueueConfig(
            message_delay_seconds=settings.MESSAGE_DELAY_MS / 1000,
            max_retries=settings.MAX_RETRY_ATTEMPTS,
            default_flood_wait_seconds=settings.DEFAULT_FLOOD_WAIT_SECONDS,
        ),
        album_config=AlbumConfig(
            quiescence_seconds=settings.ALBUM_QUIESCENCE_MS / 1000,
            max_wait_seconds=settings.ALBUM_MAX_WAIT_MS / 1000 if settings.ALBUM_MAX_WAIT_MS else None,
        ),
    )
    client.loop.run_until_complete(router.start(settings.READY_TIMEOUT_SECONDS))
    logger.info("%s route(s) are loaded", len(routes))

    logger.info("Client connected. Relaying messages...")
    try:
        client.loop.run_until_complete(client.disconnected)
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    finally:
        # Pending albums and queued sends still need a connected client.
        client.loop.run_until_complete(_shutdown(router, webhook, chat))


async def _shutdown(router: Router, webhook: Optional[WebhookNotifier], chat: TelethonChatClient) -> None:
    try:
        await router.shutdown()
        if webhook is not None:
            await webhook.drain()
    finally:
        await chat.disconnect()


def _dialog_type(dialog: Any) -> str:
    if getattr(dialog, "is_channel", False):
        entity = getattr(dialog, "entity", None)
        if getattr(entity, "megagroup", False):
            return "group"
        return "channel"
    if getattr(dialog, "is_group", False):
        return "group"
    return "chat"


async def _list_dialogs(client) -> None:
    # Only groups and channels can be relay sources or targets.
    rows = []
    async for dialog in client.iter_dialogs():
        if dialog.is_user:
            continue
        forum = " | forum" if getattr(dialog.entity, "forum", False) else ""
        rows.append(f"{_dialog_type(dialog)} | {dialog.name} | {dialog.id}{forum}")

    if not rows:
        print("No groups or channels found for this account.")
        return

    for index, row in enumerate(rows, start=1):
        print(f"{index}. {row}")


def _discover() -> None:
    _print_banner()
    client = build_client()

    async def _run_discover() -> None:
        await client.connect()
        if not await client.is_user_authorized():
            print("Authorization required. Starting login...")
            await authorize(client)
        await _list_dialogs(client)
        await client.disconnect()

    client.loop.run_until_complete(_run_discover())


def _session() -> None:
    _print_banner()
    from get_session import main as export_session

    asyncio.run(export_session())


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="relay")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start relaying messages")
    subparsers.add_parser("discover", help="List groups and channels with their ids")
    subparsers.add_parser("session", help="Log in and print a reusable SESSION_STRING")

    args = parser.parse_args(argv)
    if args.command == "discover":
        _discover()
        return
    if args.command == "session":
        _session()
        return
    _run()


if __name__ == "__main__":
    main()
