"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class QueueConfig:
    """Rate-limit settings for the outbound send queue."""

    message_delay_seconds: float = 2.0
    max_retries: int = 3
    default_flood_wait_seconds: int = 60


@dataclass(frozen=True)
class AlbumConfig:
    """Debounce settings for grouped-media collection."""

    quiescence_seconds: float = 1.0
    # None keeps collecting for as long as items keep arriving.
    max_wait_seconds: Optional[float] = None
