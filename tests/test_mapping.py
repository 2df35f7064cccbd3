from __future__ import annotations

from core.mapping import MessageMapper, mapping_key


def test_mapping_key_format() -> None:
    assert mapping_key(-100222) == "-100222"
    assert mapping_key(-100222, 5) == "-100222:5"


def test_returns_most_recent_value() -> None:
    mapper = MessageMapper()
    mapper.set_mapping(10, -100222, 500)
    mapper.set_mapping(10, -100222, 501)
    assert mapper.get_mapping(10, -100222) == 501


def test_topics_do_not_leak_into_each_other() -> None:
    mapper = MessageMapper()
    mapper.set_mapping(10, -100222, 500, target_topic_id=5)
    mapper.set_mapping(10, -100222, 600, target_topic_id=7)

    assert mapper.get_mapping(10, -100222, 5) == 500
    assert mapper.get_mapping(10, -100222, 7) == 600
    assert mapper.get_mapping(10, -100222) is None
    assert mapper.get_mapping(10, -100222, 8) is None


def test_missing_mapping_is_none() -> None:
    mapper = MessageMapper()
    assert mapper.get_mapping(1, -100222) is None


def test_length_counts_source_messages() -> None:
    mapper = MessageMapper()
    mapper.set_mapping(1, -100222, 2)
    mapper.set_mapping(1, -100333, 3)
    mapper.set_mapping(4, -100222, 5)
    assert len(mapper) == 2
