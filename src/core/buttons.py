"""Inline keyboard to plain-text link conversion."""

from __future__ import annotations

from typing import List

from core.models import InboundMessage


def extract_button_links(message: InboundMessage) -> List[str]:
    """Return one ``"<label> → <url>"`` line per URL button, row by row.

    Buttons of other kinds (callbacks, switch-inline, ...) are ignored.
    """

    links: List[str] = []
    for row in message.buttons:
        for button in row:
            if button.kind != "url" or not button.text or not button.url:
                continue
            links.append(f"{button.text} → {button.url}")
    return links
