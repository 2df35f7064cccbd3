"""Static configuration for the relay.

Routing and credentials come from environment variables (a local .env file
is loaded with python-dotenv). Structured settings that do not fit in an env
string, such as text replacements, footer overrides and logging, live in an
optional config.json at the project root.
"""

import json
import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

CONFIG_PATH = os.getenv("RELAY_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json if present; every key is optional."""

    if not os.path.exists(CONFIG_PATH):
        return {}

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return int(raw)


def _normalize_footers(raw_footers: dict) -> dict[int, list[str]]:
    """Footer overrides are keyed by target channel id (JSON keys are strings)."""

    footers: dict[int, list[str]] = {}
    for channel_id, lines in raw_footers.items():
        if not lines:
            continue
        footers[int(channel_id)] = [str(line) for line in lines]
    return footers


_CONFIG = _load_json_config()

# Routing strings, parsed once at startup by core.channel_config.
CHANNELS_CONFIG = os.getenv("CHANNELS_CONFIG", "")
SEARCH_CONFIG = os.getenv("SEARCH_CONFIG", "")
# Legacy single-pair mode: direct ids, or URLs resolved through the client.
SOURCE_CHANNEL_ID = os.getenv("SOURCE_CHANNEL_ID", "")
TARGET_CHANNEL_ID = os.getenv("TARGET_CHANNEL_ID", "")
SOURCE_CHANNEL_URL = os.getenv("SOURCE_CHANNEL_URL", "")
TARGET_CHANNEL_URL = os.getenv("TARGET_CHANNEL_URL", "")

# Send queue pacing. MESSAGE_DELAY_MS is the pause after every successful send.
MESSAGE_DELAY_MS = _env_int("MESSAGE_DELAY_MS", 2000)
MAX_RETRY_ATTEMPTS = _env_int("MAX_RETRY_ATTEMPTS", 3)
DEFAULT_FLOOD_WAIT_SECONDS = _env_int("DEFAULT_FLOOD_WAIT_SECONDS", 60)

# Album collection: flush after this much quiet time, optionally capped.
ALBUM_QUIESCENCE_MS = _env_int("ALBUM_QUIESCENCE_MS", 1000)
ALBUM_MAX_WAIT_MS = _env_optional_int("ALBUM_MAX_WAIT_MS")

# How long to wait for the client readiness handshake before giving up.
READY_TIMEOUT_SECONDS = _env_int("READY_TIMEOUT_SECONDS", 30)

# Webhook notifications (optional).
WEBHOOK_URL = os.getenv("WEBHOOK_URL", "")
WEBHOOK_API_KEY = os.getenv("WEBHOOK_API_KEY", "")
WEBHOOK_CHANNELS = os.getenv("WEBHOOK_CHANNELS", "")

# Ordered literal substitutions; None keeps the built-in defaults.
TEXT_REPLACEMENTS = _CONFIG.get("text_replacements")

# Fixed footer lines per target channel, used instead of button links.
FOOTER_OVERRIDES = _normalize_footers(_CONFIG.get("footer_overrides", {}))

# Logging configuration; LOG_LEVEL overrides the configured level.
LOGGING = _CONFIG.get("logging", {"enabled": True})
LOG_LEVEL = os.getenv("LOG_LEVEL")
