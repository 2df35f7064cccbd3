from __future__ import annotations

import pytest

from core.channel_config import (
    apply_footer_overrides,
    parse_channel_configuration,
    parse_channels_config,
    parse_search_config,
)
from core.errors import ConfigurationError
from core.models import Route


def test_three_part_entry_maps_positions() -> None:
    routes = parse_channels_config("-100111:-100222:5")
    assert routes == [Route(source_channel_id=-100111, target_channel_id=-100222, target_topic_id=5)]


def test_two_part_entry_has_no_topics() -> None:
    routes = parse_channels_config("-100111:-100222")
    assert routes == [Route(source_channel_id=-100111, target_channel_id=-100222)]


def test_four_part_entry_maps_positions() -> None:
    routes = parse_channels_config("-100111:6:-100222:5")
    assert routes == [
        Route(
            source_channel_id=-100111,
            source_topic_id=6,
            target_channel_id=-100222,
            target_topic_id=5,
        )
    ]


def test_zero_topic_means_no_topic() -> None:
    routes = parse_channels_config("-100111:-100222:0")
    assert routes[0].target_topic_id is None


def test_malformed_entries_are_skipped() -> None:
    routes = parse_channels_config("-100111, abc:-100222, -100111:xyz, -100111:-100222:3, 1:2:3:4:5")
    assert routes == [Route(source_channel_id=-100111, target_channel_id=-100222, target_topic_id=3)]


def test_search_entry_maps_positions() -> None:
    routes = parse_search_config("s-Gate:-100111:6:-100222")
    assert routes == [
        Route(
            source_channel_id=-100111,
            source_topic_id=6,
            target_channel_id=-100222,
            search_keyword="Gate",
        )
    ]


def test_search_entry_without_topic() -> None:
    routes = parse_search_config("s-gate:-100111::-100222")
    assert routes[0].source_topic_id is None
    assert routes[0].search_keyword == "gate"


def test_invalid_search_entries_are_skipped() -> None:
    routes = parse_search_config("gate:-100111:6:-100222,s-:-100111:6:-100222,s-x:-100111:6,s-y:a:6:-100222")
    assert routes == []


def test_channels_config_with_no_valid_routes_is_fatal() -> None:
    with pytest.raises(ConfigurationError):
        parse_channel_configuration(channels_config="garbage,also-bad")


def test_search_routes_count_toward_channels_mode() -> None:
    parsed = parse_channel_configuration(
        channels_config="garbage",
        search_config="s-gate:-100111:6:-100222",
    )
    assert not parsed.legacy_mode
    assert len(parsed.routes) == 1


def test_search_only_configuration() -> None:
    parsed = parse_channel_configuration(search_config="s-gate:-100111:6:-100222")
    assert not parsed.legacy_mode
    assert parsed.routes[0].search_keyword == "gate"


def test_legacy_direct_ids() -> None:
    parsed = parse_channel_configuration(source_channel_id="-100111", target_channel_id="-100222")
    assert parsed.legacy_mode
    assert parsed.use_direct_ids
    assert parsed.routes == (Route(source_channel_id=-100111, target_channel_id=-100222),)


def test_legacy_without_ids_leaves_resolution_to_caller() -> None:
    parsed = parse_channel_configuration(source_channel_id="not-a-number", target_channel_id="-100222")
    assert parsed.legacy_mode
    assert not parsed.use_direct_ids
    assert parsed.routes == ()


def test_parsing_is_idempotent() -> None:
    first = parse_channel_configuration(channels_config="-100111:-100222,-100111:6:-100333:5")
    second = parse_channel_configuration(channels_config="-100111:-100222,-100111:6:-100333:5")
    assert first == second


def test_footer_overrides_attach_by_target() -> None:
    routes = [
        Route(source_channel_id=-100111, target_channel_id=-100222),
        Route(source_channel_id=-100111, target_channel_id=-100333),
    ]
    updated = apply_footer_overrides(routes, {-100333: ["line one", "line two"]})
    assert updated[0].footer_override is None
    assert updated[1].footer_override == ("line one", "line two")
