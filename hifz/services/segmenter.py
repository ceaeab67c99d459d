"""Split passage text into positional words and verse-end markers.

Passages arrive either as plain Uthmani text or as tajweed markup, where
tags wrap letters that carry a recitation rule.  Tags are invisible, so word
boundaries are found on the visible text and mapped back to raw offsets to
slice each word's markup.

Verse-end markers and words are produced by the same pass, so a marker's
``after_position`` always agrees with the word positions.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Optional

from hifz.services.normalizer import (
    IN_WORD_MARKS_RE,
    SEPARATOR_MARKS_RE,
    clean_passage_marks,
    normalize,
)

logger = logging.getLogger(__name__)

# <span class=end>٤</span> in markup, or the ayah sign followed by its number in plain text.
_VERSE_END_RE = re.compile(
    r"""<span[^>]*class=["']?end["']?[^>]*>(?P<markup>.*?)</span>"""
    "|\\u06DD\\s*(?P<plain>[\\u0660-\\u0669\\u06F0-\\u06F9]*)",
    re.IGNORECASE | re.DOTALL,
)
_TAG_RE = re.compile(r"<(/?)([A-Za-z][\w-]*)[^>]*>")
_ANY_TAG_RE = re.compile(r"<[^>]+>")


@dataclass(frozen=True)
class ExpectedWord:
    plain_text: str
    position: int
    markup_text: Optional[str] = None
    duplicate_index: Optional[int] = None
    duplicate_count: Optional[int] = None


@dataclass(frozen=True)
class VerseMarker:
    marker: str
    after_position: int


@dataclass(frozen=True)
class Segmentation:
    words: list[ExpectedWord] = field(default_factory=list)
    verse_markers: list[VerseMarker] = field(default_factory=list)


def segment(passage_text: str) -> list[ExpectedWord]:
    """Return the expected words of a passage."""
    return segment_passage(passage_text).words


def segment_passage(passage_text: str) -> Segmentation:
    """Tokenize a passage into words and verse-end markers in one pass."""
    if not passage_text or not passage_text.strip():
        return Segmentation()

    text, marker_offsets = _strip_verse_markers(passage_text)
    is_markup = _TAG_RE.search(text) is not None

    visible, offsets = _visible_text(text, is_markup)
    spans = _word_spans(visible)

    words: list[ExpectedWord] = []
    for position, (start, end) in enumerate(spans):
        plain = "".join(
            ch for ch in visible[start:end] if not IN_WORD_MARKS_RE.match(ch)
        )
        markup = None
        if is_markup:
            raw_start = offsets[start - 1] + 1 if start > 0 else 0
            raw_end = offsets[end] if end < len(visible) else len(text)
            markup = _markup_for(text[raw_start:raw_end], plain, position)
        words.append(ExpectedWord(plain_text=plain, position=position, markup_text=markup))

    markers = [
        VerseMarker(marker=marker, after_position=_words_before(spans, offsets, raw_offset))
        for raw_offset, marker in marker_offsets
    ]

    return Segmentation(words=_tag_duplicates(words), verse_markers=markers)


def _strip_verse_markers(text: str) -> tuple[str, list[tuple[int, str]]]:
    """Replace verse-end markers with a space, recording where each one was."""
    parts: list[str] = []
    markers: list[tuple[int, str]] = []
    length = 0
    last = 0
    for match in _VERSE_END_RE.finditer(text):
        chunk = text[last:match.start()]
        parts.append(chunk)
        length += len(chunk)
        number = match.group("markup")
        if number is None:
            number = match.group("plain") or ""
        markers.append((length, _ANY_TAG_RE.sub("", number).strip()))
        parts.append(" ")
        length += 1
        last = match.end()
    parts.append(text[last:])
    return "".join(parts), markers


def _visible_text(text: str, is_markup: bool) -> tuple[str, list[int]]:
    """Visible characters of *text* plus a map from visible to raw offsets."""
    if not is_markup:
        return text, list(range(len(text)))

    chars: list[str] = []
    offsets: list[int] = []
    in_tag = False
    for i, ch in enumerate(text):
        if in_tag:
            if ch == ">":
                in_tag = False
            continue
        if ch == "<":
            in_tag = True
            continue
        chars.append(ch)
        offsets.append(i)
    return "".join(chars), offsets


def _is_boundary(ch: str) -> bool:
    return ch.isspace() or SEPARATOR_MARKS_RE.match(ch) is not None


def _word_spans(visible: str) -> list[tuple[int, int]]:
    """(start, end) visible offsets of every non-empty word."""
    spans: list[tuple[int, int]] = []
    start: Optional[int] = None
    for i, ch in enumerate(visible):
        if _is_boundary(ch):
            if start is not None:
                spans.append((start, i))
                start = None
        elif start is None:
            start = i
    if start is not None:
        spans.append((start, len(visible)))

    # A token made only of in-word annotation marks is not a word.
    return [
        (s, e) for s, e in spans
        if IN_WORD_MARKS_RE.sub("", visible[s:e])
    ]


def _words_before(spans: list[tuple[int, int]], offsets: list[int], raw_offset: int) -> int:
    return sum(1 for start, _ in spans if offsets[start] < raw_offset)


def _markup_for(raw_slice: str, plain: str, position: int) -> Optional[str]:
    """Balance a word's markup slice, or None if it does not reproduce *plain*."""
    fragment = _balance_tags(raw_slice.strip())
    visible = clean_passage_marks(_ANY_TAG_RE.sub("", fragment))
    if visible != plain:
        logger.warning(
            "Markup slice for word %d does not match %r (got %r); using plain text",
            position, plain, visible,
        )
        return None
    return fragment


def _balance_tags(fragment: str) -> str:
    """Close tags left open at the end of *fragment* and drop orphan closers."""
    out: list[str] = []
    open_tags: list[str] = []
    last = 0
    for match in _TAG_RE.finditer(fragment):
        out.append(fragment[last:match.start()])
        last = match.end()
        closing, name = match.group(1), match.group(2).lower()
        if not closing:
            open_tags.append(name)
            out.append(match.group(0))
        elif name in open_tags:
            # close everything opened after the matching tag
            while open_tags:
                inner = open_tags.pop()
                out.append(f"</{inner}>")
                if inner == name:
                    break
        # else: the opener lives in a previous word's slice
    out.append(fragment[last:])
    for name in reversed(open_tags):
        out.append(f"</{name}>")
    return "".join(out)


def _tag_duplicates(words: list[ExpectedWord]) -> list[ExpectedWord]:
    occurrences: dict[str, list[int]] = defaultdict(list)
    for word in words:
        occurrences[normalize(word.plain_text)].append(word.position)

    tagged: list[ExpectedWord] = []
    for word in words:
        positions = occurrences[normalize(word.plain_text)]
        if len(positions) > 1:
            word = ExpectedWord(
                plain_text=word.plain_text,
                position=word.position,
                markup_text=word.markup_text,
                duplicate_index=positions.index(word.position) + 1,
                duplicate_count=len(positions),
            )
        tagged.append(word)

    duplicates = {k: v for k, v in occurrences.items() if len(v) > 1}
    if duplicates:
        logger.debug("Duplicate words in passage: %s", duplicates)
    return tagged
