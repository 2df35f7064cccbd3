"""Literal text substitutions and formatting-span bookkeeping (core domain).

Telegram measures entity offsets in UTF-16 code units, so every edit made by
a substitution is recorded in those units and span boundaries are shifted
through the recorded edits. Substitutions that change the text length keep
links and mentions aligned with the words they decorate.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Sequence, Tuple

from core.models import FormattingSpan

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Replacement:
    """Case-insensitive literal substitution."""

    pattern: str
    replacement: str


DEFAULT_REPLACEMENTS: Tuple[Replacement, ...] = (
    Replacement("@pass1fybot", "@cheapmirror"),
    Replacement("@shelbymirrorbot", "@cheapmirror"),
    Replacement("https://t.me/shelbymirrorbot", "@cheapmirror"),
    Replacement("https://t.me/pass1fybot", "@cheapmirror"),
)


@dataclass(frozen=True)
class _Edit:
    start: int
    old_length: int
    new_length: int

    @property
    def delta(self) -> int:
        return self.new_length - self.old_length


def utf16_length(text: str) -> int:
    return len(text.encode("utf-16-le")) // 2


def _shift(position: int, edits: Sequence[_Edit], is_end: bool) -> int:
    """Map a boundary from pre-edit to post-edit coordinates."""

    delta = 0
    for edit in edits:
        edit_end = edit.start + edit.old_length
        if position >= edit_end:
            delta += edit.delta
        elif position > edit.start:
            # Boundary falls inside replaced text: snap to the replacement.
            return edit.start + delta + (edit.new_length if is_end else 0)
        else:
            break
    return position + delta


def _remap(spans: Iterable[FormattingSpan], edits: Sequence[_Edit]) -> List[FormattingSpan]:
    remapped: List[FormattingSpan] = []
    for span in spans:
        start = _shift(span.offset, edits, is_end=False)
        end = _shift(span.offset + span.length, edits, is_end=True)
        if end <= start:
            continue
        if start == span.offset and end - start == span.length:
            remapped.append(span)
        else:
            remapped.append(replace(span, offset=start, length=end - start))
    return remapped


def append_lines(text: str, lines: Sequence[str]) -> str:
    """Append a blank line and then `lines`; no-op when `lines` is empty."""

    if not lines:
        return text
    block = "\n".join(lines)
    if not text:
        return block
    return f"{text}\n\n{block}"


class TextRewriter:
    """Apply an ordered list of literal substitutions."""

    def __init__(self, replacements: Iterable[Replacement] = DEFAULT_REPLACEMENTS) -> None:
        self._rules = [
            (re.compile(re.escape(item.pattern), re.IGNORECASE), item.replacement)
            for item in replacements
            if item.pattern
        ]

    def _apply(self, text: str) -> Tuple[str, List[List[_Edit]]]:
        passes: List[List[_Edit]] = []
        for regex, replacement in self._rules:
            new_length = utf16_length(replacement)
            edits: List[_Edit] = []
            pieces: List[str] = []
            cursor = 0
            cursor16 = 0
            for match in regex.finditer(text):
                before = text[cursor:match.start()]
                cursor16 += utf16_length(before)
                old_length = utf16_length(match.group(0))
                edits.append(_Edit(cursor16, old_length, new_length))
                pieces.append(before)
                pieces.append(replacement)
                cursor16 += old_length
                cursor = match.end()
            if not edits:
                continue
            pieces.append(text[cursor:])
            text = "".join(pieces)
            passes.append(edits)
        return text, passes

    def rewrite(self, text: Optional[str]) -> Optional[str]:
        if not text:
            return text
        rewritten, _ = self._apply(text)
        return rewritten

    def rewrite_with_spans(
        self, text: str, spans: Sequence[FormattingSpan]
    ) -> Tuple[str, Tuple[FormattingSpan, ...]]:
        """Rewrite `text` and move `spans` along with the substitutions."""

        if not text:
            return text, tuple(spans)
        rewritten, passes = self._apply(text)
        remapped: List[FormattingSpan] = list(spans)
        for edits in passes:
            remapped = _remap(remapped, edits)
        return rewritten, tuple(remapped)

    def adjust_spans(
        self,
        old_text: str,
        new_text: str,
        spans: Sequence[FormattingSpan],
    ) -> Tuple[FormattingSpan, ...]:
        """Recompute span offsets for `new_text` produced from `old_text`.

        When `new_text` is exactly what this rewriter produces from
        `old_text` the edits are replayed. Texts produced elsewhere keep their
        spans if the length is unchanged; otherwise spans that no longer fit
        are dropped.
        """

        if not spans or not old_text:
            return tuple(spans)

        rewritten, adjusted = self.rewrite_with_spans(old_text, spans)
        if rewritten == new_text:
            return adjusted
        if utf16_length(old_text) == utf16_length(new_text):
            return tuple(spans)

        limit = utf16_length(new_text)
        kept = tuple(span for span in spans if span.offset + span.length <= limit)
        if len(kept) != len(spans):
            LOGGER.debug("Dropped %s formatting span(s) after external rewrite", len(spans) - len(kept))
        return kept
