from __future__ import annotations

from core.buttons import extract_button_links
from core.models import InboundMessage, InlineButton


def test_url_buttons_become_link_lines_in_row_order() -> None:
    message = InboundMessage(
        chat_id=-100111,
        message_id=1,
        text="hi",
        buttons=(
            (InlineButton("Site", "https://example.com"), InlineButton("Docs", "https://docs.example.com")),
            (InlineButton("Shop", "https://shop.example.com"),),
        ),
    )
    assert extract_button_links(message) == [
        "Site → https://example.com",
        "Docs → https://docs.example.com",
        "Shop → https://shop.example.com",
    ]


def test_non_url_buttons_are_ignored() -> None:
    message = InboundMessage(
        chat_id=-100111,
        message_id=1,
        text="hi",
        buttons=((InlineButton("Vote", kind="callback"), InlineButton("Go", "https://go.example.com")),),
    )
    assert extract_button_links(message) == ["Go → https://go.example.com"]


def test_no_buttons() -> None:
    assert extract_button_links(InboundMessage(chat_id=-100111, message_id=1, text="hi")) == []
