from __future__ import annotations

import asyncio
import logging

from fakes import FakeChatClient, FakeWebhook, fast_sleep

from core.config import AlbumConfig, QueueConfig
from core.models import InboundMessage, InlineButton, ReplyReference, Route
from core.router import Router, keyword_matches

SOURCE = -100111
TARGET = -100222


def _router(routes, client, **kwargs) -> Router:
    return Router.build(
        routes,
        client,
        queue_config=QueueConfig(message_delay_seconds=0.0),
        album_config=AlbumConfig(quiescence_seconds=0.0),
        sleep=fast_sleep,
        **kwargs,
    )


def _message(message_id: int, text: str = "", **kwargs) -> InboundMessage:
    return InboundMessage(chat_id=SOURCE, message_id=message_id, text=text, **kwargs)


def test_plain_message_is_rewritten_and_sent() -> None:
    client = FakeChatClient()
    route = Route(source_channel_id=SOURCE, target_channel_id=TARGET)

    async def run() -> None:
        router = _router([route], client)
        accepted = router.route_new_message(_message(1, "hello @pass1fybot"), SOURCE)
        assert accepted == [route]
        assert router.queue.size == 1
        await router.shutdown()
        assert router.mapper.get_mapping(1, TARGET) == 1001

    asyncio.run(run())
    assert len(client.sent) == 1
    target, request = client.sent[0]
    assert target == TARGET
    assert request.text == "hello @cheapmirror"
    assert request.reply_to is None


def test_topic_root_reply_lands_in_target_topic() -> None:
    client = FakeChatClient()
    route = Route(source_channel_id=SOURCE, source_topic_id=6, target_channel_id=TARGET, target_topic_id=5)
    message = _message(10, "in topic", reply_to=ReplyReference(msg_id=6, forum_topic=True))

    async def run() -> None:
        router = _router([route], client)
        assert router.route_new_message(message, SOURCE) == [route]
        await router.shutdown()

    asyncio.run(run())
    assert client.sent[0][1].reply_to == 5


def test_reply_to_relayed_message_uses_mapping() -> None:
    client = FakeChatClient()
    route = Route(source_channel_id=SOURCE, source_topic_id=6, target_channel_id=TARGET, target_topic_id=5)

    async def run() -> None:
        router = _router([route], client)
        router.route_new_message(_message(10, "first", reply_to=ReplyReference(msg_id=6, forum_topic=True)), SOURCE)
        await router.queue.join()
        router.route_new_message(
            _message(11, "second", reply_to=ReplyReference(msg_id=10, top_id=6, forum_topic=True)),
            SOURCE,
        )
        router.route_new_message(
            _message(12, "third", reply_to=ReplyReference(msg_id=99, top_id=6, forum_topic=True)),
            SOURCE,
        )
        await router.shutdown()

    asyncio.run(run())
    first_id = 1001
    assert client.sent[1][1].reply_to == first_id
    # Unknown reply targets fall back to the topic root.
    assert client.sent[2][1].reply_to == 5


def test_messages_from_other_topics_are_ignored() -> None:
    client = FakeChatClient()
    route = Route(source_channel_id=SOURCE, source_topic_id=6, target_channel_id=TARGET)

    async def run() -> None:
        router = _router([route], client)
        message = _message(10, "elsewhere", reply_to=ReplyReference(msg_id=7, forum_topic=True))
        assert router.route_new_message(message, SOURCE) == []
        assert router.route_new_message(_message(11, "unknown source"), -100999) == []

    asyncio.run(run())
    assert client.sent == []


def test_keyword_route_filters_case_insensitively() -> None:
    client = FakeChatClient()
    route = Route(source_channel_id=SOURCE, target_channel_id=TARGET, search_keyword="gate")

    async def run() -> None:
        router = _router([route], client)
        assert router.route_new_message(_message(1, "Check out GATE now"), SOURCE) == [route]
        assert router.route_new_message(_message(2, "no match here"), SOURCE) == []
        await router.shutdown()

    asyncio.run(run())
    assert [request.text for _, request in client.sent] == ["Check out GATE now"]


def test_message_without_content_is_skipped() -> None:
    client = FakeChatClient()
    route = Route(source_channel_id=SOURCE, target_channel_id=TARGET)

    async def run() -> None:
        router = _router([route], client)
        assert router.route_new_message(_message(1, ""), SOURCE) == []

    asyncio.run(run())
    assert client.sent == []


def test_message_fans_out_to_every_matching_route() -> None:
    client = FakeChatClient()
    routes = [
        Route(source_channel_id=SOURCE, target_channel_id=TARGET),
        Route(source_channel_id=SOURCE, target_channel_id=-100333, target_topic_id=4),
    ]

    async def run() -> None:
        router = _router(routes, client)
        router.route_new_message(_message(1, "hi"), SOURCE)
        await router.shutdown()
        assert router.mapper.get_mapping(1, TARGET) is not None
        assert router.mapper.get_mapping(1, -100333, 4) is not None

    asyncio.run(run())
    assert [(target, request.reply_to) for target, request in client.sent] == [(TARGET, None), (-100333, 4)]


def test_button_links_are_appended() -> None:
    client = FakeChatClient()
    route = Route(source_channel_id=SOURCE, target_channel_id=TARGET)
    message = _message(1, "hi", buttons=((InlineButton("Site", "https://example.com"),),))

    async def run() -> None:
        router = _router([route], client)
        router.route_new_message(message, SOURCE)
        await router.shutdown()

    asyncio.run(run())
    assert client.sent[0][1].text == "hi\n\nSite → https://example.com"


def test_footer_override_replaces_button_links() -> None:
    client = FakeChatClient()
    route = Route(source_channel_id=SOURCE, target_channel_id=TARGET, footer_override=("line a", "line b"))
    message = _message(1, "hi", buttons=((InlineButton("Site", "https://example.com"),),))

    async def run() -> None:
        router = _router([route], client)
        router.route_new_message(message, SOURCE)
        await router.shutdown()

    asyncio.run(run())
    assert client.sent[0][1].text == "hi\n\nline a\nline b"


def test_album_is_sent_once_with_all_items() -> None:
    client = FakeChatClient()
    route = Route(source_channel_id=SOURCE, target_channel_id=TARGET, search_keyword="gate")
    items = [
        _message(1, media="photo-1", grouped_id=77),
        _message(2, "Gate pics", media="photo-2", grouped_id=77),
        _message(3, media="photo-3", grouped_id=77),
    ]

    async def run() -> Router:
        router = _router([route], client)
        for item in items:
            assert router.route_new_message(item, SOURCE) == [route]
        await asyncio.sleep(0.05)
        await router.shutdown()
        return router

    router = asyncio.run(run())
    assert len(client.sent) == 1
    request = client.sent[0][1]
    assert request.media == ["photo-1", "photo-2", "photo-3"]
    assert request.text == "Gate pics"
    assert router.mapper.get_mapping(1, TARGET) == 1001
    assert router.mapper.get_mapping(3, TARGET) == 1003
    # The caption owner maps to the item that carries the caption.
    assert router.mapper.get_mapping(2, TARGET) == 1001


def test_album_without_keyword_is_dropped() -> None:
    client = FakeChatClient()
    route = Route(source_channel_id=SOURCE, target_channel_id=TARGET, search_keyword="gate")

    async def run() -> None:
        router = _router([route], client)
        router.route_new_message(_message(1, "cats", media="photo-1", grouped_id=5), SOURCE)
        router.route_new_message(_message(2, media="photo-2", grouped_id=5), SOURCE)
        await asyncio.sleep(0.05)
        await router.shutdown()

    asyncio.run(run())
    assert client.sent == []


def test_start_subscribes_once_per_source() -> None:
    client = FakeChatClient()
    routes = [
        Route(source_channel_id=SOURCE, target_channel_id=TARGET),
        Route(source_channel_id=SOURCE, target_channel_id=-100333),
        Route(source_channel_id=-100444, target_channel_id=TARGET),
    ]

    async def run() -> None:
        router = _router(routes, client)
        await router.start(ready_timeout=12)
        await client.new_handlers[SOURCE][0](_message(1, "hi"))
        await router.shutdown()

    asyncio.run(run())
    assert client.ready_timeout == 12
    assert {source: len(handlers) for source, handlers in client.new_handlers.items()} == {SOURCE: 1, -100444: 1}
    assert {source: len(handlers) for source, handlers in client.edit_handlers.items()} == {SOURCE: 1, -100444: 1}
    assert [target for target, _ in client.sent] == [TARGET, -100333]


def test_webhook_is_notified_after_send() -> None:
    client = FakeChatClient()
    webhook = FakeWebhook()
    route = Route(source_channel_id=SOURCE, target_channel_id=TARGET, target_topic_id=3)

    async def run() -> None:
        router = _router([route], client, webhook=webhook)
        router.route_new_message(_message(1, "hello @pass1fybot"), SOURCE)
        await router.shutdown()

    asyncio.run(run())
    assert webhook.calls == [("hello @cheapmirror", TARGET, 3)]


def test_edit_is_propagated_with_rewrite() -> None:
    client = FakeChatClient()
    route = Route(source_channel_id=SOURCE, target_channel_id=TARGET)

    async def run() -> int:
        router = _router([route], client)
        router.route_new_message(_message(1, "hello"), SOURCE)
        await router.shutdown()
        return await router.apply_edit(_message(1, "hello @pass1fybot v2"), SOURCE)

    assert asyncio.run(run()) == 1
    assert client.edits == [(TARGET, 1001, "hello @cheapmirror v2", ())]


def test_edit_without_mapping_is_skipped(caplog) -> None:
    client = FakeChatClient()
    route = Route(source_channel_id=SOURCE, target_channel_id=TARGET)

    async def run() -> int:
        router = _router([route], client)
        return await router.apply_edit(_message(42, "changed"), SOURCE)

    with caplog.at_level(logging.WARNING):
        assert asyncio.run(run()) == 0
    assert client.edits == []
    assert "No mapping found for edited message 42" in caplog.text


def test_edit_is_applied_once_per_target_message() -> None:
    client = FakeChatClient()
    routes = [
        Route(source_channel_id=SOURCE, target_channel_id=TARGET),
        Route(source_channel_id=SOURCE, target_channel_id=TARGET, search_keyword="gate"),
    ]

    async def run() -> int:
        router = _router(routes, client)
        router.route_new_message(_message(1, "gate open"), SOURCE)
        await router.shutdown()
        return await router.apply_edit(_message(1, "gate closed"), SOURCE)

    assert asyncio.run(run()) == 1
    assert len(client.sent) == 2
    assert len(client.edits) == 1


def test_edit_failure_does_not_escape_handler() -> None:
    client = FakeChatClient()
    route = Route(source_channel_id=SOURCE, target_channel_id=TARGET)

    async def run() -> None:
        router = _router([route], client)
        router.route_new_message(_message(1, "hello"), SOURCE)
        await router.shutdown()
        client.fail_edits_with = RuntimeError("message to edit not found")
        await router.handle_edited_message(_message(1, "changed"), SOURCE)

    asyncio.run(run())
    assert client.edits == []


def test_keyword_matches() -> None:
    assert keyword_matches(None, ["anything"])
    assert keyword_matches("Gate", ["", "the GATE"])
    assert not keyword_matches("gate", ["", None])


def test_uncaptioned_album_item_edit_keeps_the_caption() -> None:
    client = FakeChatClient()
    route = Route(source_channel_id=SOURCE, target_channel_id=TARGET)
    items = [
        _message(1, media="photo-1", grouped_id=77),
        _message(2, "Caption", media="photo-2", grouped_id=77),
    ]

    async def run() -> int:
        router = _router([route], client)
        for item in items:
            router.route_new_message(item, SOURCE)
        await asyncio.sleep(0.05)
        await router.shutdown()
        return await router.apply_edit(_message(1, media="photo-1b", grouped_id=77), SOURCE)

    assert asyncio.run(run()) == 0
    assert client.sent[0][1].text == "Caption"
    assert client.edits == []
