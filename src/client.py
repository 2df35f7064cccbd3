"""Telegram client factory for the relay.

We explicitly manage the client's lifecycle (connect/disconnect)
so it is obvious when the session is created and when it ends.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from telethon import TelegramClient
from telethon.sessions import StringSession

from core.errors import ConfigurationError


def build_client() -> TelegramClient:
    """Create a Telethon client from environment variables.

    API_ID/API_HASH are required. SESSION_STRING selects an in-memory
    StringSession (handy for containers); otherwise SESSION_NAME names a
    local .session file, defaulting to "relay".
    """

    load_dotenv()

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    session_string = os.getenv("SESSION_STRING")
    session_name = os.getenv("SESSION_NAME", "relay")

    # Fail fast on missing credentials to avoid an ambiguous login prompt.
    if not api_id or not api_hash:
        raise ConfigurationError("Missing API_ID or API_HASH in environment")
    try:
        api_id_value = int(api_id)
    except ValueError as exc:
        raise ConfigurationError("API_ID must be an integer") from exc

    session = StringSession(session_string) if session_string else session_name
    logging.getLogger(__name__).info("Initializing Telegram client")

    return TelegramClient(session, api_id_value, api_hash, auto_reconnect=True, connection_retries=None)
