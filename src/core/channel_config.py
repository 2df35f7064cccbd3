"""Routing configuration parsing (core domain).

Supported inputs:
- SEARCH_CONFIG: ``s-<keyword>:<sourceId>:<sourceTopicId>:<targetChannelId>``
- CHANNELS_CONFIG: ``<sourceId>:<targetChannelId>[:<targetTopicId>]`` or
  ``<sourceId>:<sourceTopicId>:<targetChannelId>:<targetTopicId>``
- Legacy single pair: SOURCE_CHANNEL_ID + TARGET_CHANNEL_ID

Entries are comma-separated. Malformed entries are skipped with a warning;
parsing never touches the network.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, List, Mapping, Optional, Sequence

from core.errors import ConfigurationError
from core.models import ParsedChannelConfiguration, Route

LOGGER = logging.getLogger(__name__)

SEARCH_PREFIX = "s-"


def _parse_id(raw: Optional[str]) -> int:
    value = (raw or "").strip()
    if not value:
        raise ValueError("missing id")
    return int(value)


def _parse_topic(raw: Optional[str]) -> Optional[int]:
    """Topic ids are optional; empty or 0 means "no topic"."""

    value = (raw or "").strip()
    if not value:
        return None
    topic_id = int(value)
    return topic_id or None


def _split_entries(config: str) -> List[str]:
    return [entry.strip() for entry in config.split(",") if entry.strip()]


def parse_search_config(search_config: str) -> List[Route]:
    """Parse keyword-filtered routes."""

    routes: List[Route] = []
    for entry in _split_entries(search_config):
        if not entry.startswith(SEARCH_PREFIX):
            LOGGER.warning("Invalid search config entry (must start with %s): %s", SEARCH_PREFIX, entry)
            continue

        parts = entry.split(":")
        if len(parts) != 4:
            LOGGER.warning("Invalid search config entry: %s", entry)
            continue

        keyword = parts[0].strip()[len(SEARCH_PREFIX):]
        if not keyword:
            LOGGER.warning("Invalid search config entry (empty keyword): %s", entry)
            continue

        try:
            route = Route(
                source_channel_id=_parse_id(parts[1]),
                source_topic_id=_parse_topic(parts[2]),
                target_channel_id=_parse_id(parts[3]),
                search_keyword=keyword,
            )
        except ValueError:
            LOGGER.warning("Invalid search config entry: %s", entry)
            continue

        routes.append(route)
        LOGGER.info("Search configured: %s", route.describe())
    return routes


def parse_channels_config(channels_config: str) -> List[Route]:
    """Parse multi-channel routes (2, 3 or 4 colon-separated fields)."""

    routes: List[Route] = []
    for entry in _split_entries(channels_config):
        parts = entry.split(":")
        try:
            if len(parts) == 4:
                route = Route(
                    source_channel_id=_parse_id(parts[0]),
                    source_topic_id=_parse_topic(parts[1]),
                    target_channel_id=_parse_id(parts[2]),
                    target_topic_id=_parse_topic(parts[3]),
                )
            elif len(parts) in (2, 3):
                route = Route(
                    source_channel_id=_parse_id(parts[0]),
                    target_channel_id=_parse_id(parts[1]),
                    target_topic_id=_parse_topic(parts[2]) if len(parts) == 3 else None,
                )
            else:
                raise ValueError("unexpected number of fields")
        except ValueError:
            LOGGER.warning("Invalid channel config entry: %s", entry)
            continue

        routes.append(route)
        LOGGER.info("Configured %s", route.describe())
    return routes


def _parse_legacy_id(name: str, raw: Optional[str]) -> Optional[int]:
    if not raw or not raw.strip():
        return None
    try:
        return int(raw.strip())
    except ValueError:
        LOGGER.warning("Ignoring non-numeric %s: %s", name, raw)
        return None


def parse_channel_configuration(
    channels_config: Optional[str] = None,
    search_config: Optional[str] = None,
    source_channel_id: Optional[str] = None,
    target_channel_id: Optional[str] = None,
) -> ParsedChannelConfiguration:
    """Turn the configuration strings into routing rules.

    Search routes are collected first. A non-empty CHANNELS_CONFIG selects
    multi-channel mode and must yield at least one route overall, otherwise
    a ConfigurationError is raised. Without any routes the legacy single
    pair is used; its ids may be missing, in which case the app resolves
    them from channel URLs.
    """

    routes: List[Route] = []

    if search_config and search_config.strip():
        routes.extend(parse_search_config(search_config))

    if channels_config and channels_config.strip():
        LOGGER.info("Using multi-channel configuration mode")
        routes.extend(parse_channels_config(channels_config))
        if not routes:
            raise ConfigurationError("No valid channels configured in CHANNELS_CONFIG")
        return ParsedChannelConfiguration(routes=tuple(routes), legacy_mode=False)

    if routes:
        return ParsedChannelConfiguration(routes=tuple(routes), legacy_mode=False)

    LOGGER.info("Using legacy single-channel mode")
    legacy_source = _parse_legacy_id("SOURCE_CHANNEL_ID", source_channel_id)
    legacy_target = _parse_legacy_id("TARGET_CHANNEL_ID", target_channel_id)
    if legacy_source is None or legacy_target is None:
        return ParsedChannelConfiguration(routes=(), legacy_mode=True)

    LOGGER.info("Using direct channel IDs - Source: %s, Target: %s", legacy_source, legacy_target)
    return ParsedChannelConfiguration(
        routes=(Route(source_channel_id=legacy_source, target_channel_id=legacy_target),),
        legacy_mode=True,
        legacy_source=legacy_source,
        legacy_target=legacy_target,
    )


def apply_footer_overrides(
    routes: Iterable[Route],
    footer_overrides: Mapping[int, Sequence[str]],
) -> List[Route]:
    """Attach configured footer lines to routes by target channel id."""

    updated: List[Route] = []
    for route in routes:
        lines = footer_overrides.get(route.target_channel_id)
        if lines:
            route = replace(route, footer_override=tuple(lines))
        updated.append(route)
    return updated
