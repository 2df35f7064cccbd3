"""In-memory source -> target message identity map.

Entries live for the lifetime of the process; a restart forgets them, so
replies and edits that refer to messages relayed before the restart fall
back to plain sends and skipped edits.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

LOGGER = logging.getLogger(__name__)


def mapping_key(channel_id: int, topic_id: Optional[int] = None) -> str:
    """Return ``channelId`` or ``channelId:topicId``."""

    if topic_id:
        return f"{channel_id}:{topic_id}"
    return str(channel_id)


class MessageMapper:
    """Resolve where a source message was relayed to, per target channel and topic."""

    def __init__(self) -> None:
        self._mapping: Dict[int, Dict[str, int]] = {}

    def set_mapping(
        self,
        source_message_id: int,
        target_channel_id: int,
        target_message_id: int,
        target_topic_id: Optional[int] = None,
    ) -> None:
        key = mapping_key(target_channel_id, target_topic_id)
        self._mapping.setdefault(source_message_id, {})[key] = target_message_id
        LOGGER.info(
            "Stored mapping: source %s -> target %s (key: %s)",
            source_message_id,
            target_message_id,
            key,
        )

    def get_mapping(
        self,
        source_message_id: int,
        target_channel_id: int,
        target_topic_id: Optional[int] = None,
    ) -> Optional[int]:
        targets = self._mapping.get(source_message_id)
        if not targets:
            return None
        return targets.get(mapping_key(target_channel_id, target_topic_id))

    def __len__(self) -> int:
        return len(self._mapping)
