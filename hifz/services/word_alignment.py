"""Word alignment between a passage and a live recitation transcript.

The recognizer re-sends the whole phrase on every update: interim chunks
grow word by word and are followed by one final chunk.  Tokens before the
cursor have already been consumed, so only the continuation is matched.

Advancement is strictly positional.  There is no lookahead: an unmatched
expected word holds the cursor and accumulates attempts until the reciter
gets it right (or it is revealed).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Optional, Sequence

from hifz.config import PracticeConfig
from hifz.services.matcher import matches

logger = logging.getLogger(__name__)

PENDING = "pending"
CURRENT = "current"
CORRECT = "correct"

# hints_shown value meaning the whole word is shown
FULL_REVEAL = 3


@dataclass
class WordState:
    position: int
    text: str
    status: str = PENDING
    attempts: int = 0
    is_perfect: bool = False
    hints_shown: int = 0
    is_revealed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "position": self.position,
            "text": self.text,
            "status": self.status,
            "attempts": self.attempts,
            "is_perfect": self.is_perfect,
            "hints_shown": self.hints_shown,
            "is_revealed": self.is_revealed,
        }


@dataclass(frozen=True)
class AlignmentResult:
    words: list[WordState]
    events: list[dict] = field(default_factory=list)
    cursor: int = 0
    dedupe_key: Optional[str] = None
    is_complete: bool = False
    accuracy: float = 0.0


def find_cursor(words: Sequence[WordState]) -> int:
    """Index of the first word not yet correct (len(words) when done)."""
    for i, word in enumerate(words):
        if word.status != CORRECT:
            return i
    return len(words)


def mark_current(words: Sequence[WordState]) -> int:
    """Make the cursor word the only ``current`` one; return the cursor."""
    cursor = find_cursor(words)
    for i, word in enumerate(words):
        if word.status == CORRECT:
            continue
        word.status = CURRENT if i == cursor else PENDING
    return cursor


def compute_accuracy(words: Sequence[WordState], memory_mode: bool) -> float:
    """Normal mode: correct / total.  Memory mode: correct / sum(max(1, attempts))."""
    if not words:
        return 0.0
    correct = sum(1 for w in words if w.status == CORRECT)
    if memory_mode:
        denominator = sum(max(1, w.attempts) for w in words)
    else:
        denominator = len(words)
    return min(1.0, correct / denominator)


def _is_token_list(tokens: Any) -> bool:
    return isinstance(tokens, (list, tuple)) and all(isinstance(t, str) for t in tokens)


def apply_transcript_update(
    words: Sequence[WordState],
    tokens: Sequence[str],
    is_final: bool,
    config: PracticeConfig,
    dedupe_key: Optional[str] = None,
) -> AlignmentResult:
    """
    Align one transcript update against the word states.

    Works on copies; the caller commits ``result.words``.

    Returns an AlignmentResult whose events look like:
      [{"word_index": int, "expected": str, "recognized": str,
        "match": "correct"|"mismatch", "attempts": int, "counted": bool}, ...]
    """
    states = [replace(w) for w in words]

    if not _is_token_list(tokens):
        logger.warning("Ignoring malformed transcript update: %r", tokens)
        return _result(states, [], dedupe_key, config)

    cleaned = [t.strip() for t in tokens if t.strip()]
    if not cleaned:
        return _result(states, [], dedupe_key, config)

    cursor = find_cursor(states)
    start_cursor = cursor

    # A phrase shorter than the cursor is a fresh phrase after a pause.
    remaining = cleaned[cursor:] if len(cleaned) >= cursor else cleaned
    if not remaining:
        logger.debug("No tokens beyond cursor %d; nothing new", cursor)
        return _result(states, [], dedupe_key, config)

    events: list[dict] = []
    for token in remaining:
        if cursor >= len(states):
            break
        word = states[cursor]

        if matches(token, word.text, config.strictness):
            word.status = CORRECT
            word.is_revealed = True
            word.is_perfect = word.attempts == 0
            events.append({
                "word_index": cursor,
                "expected": word.text,
                "recognized": token,
                "match": "correct",
                "attempts": word.attempts,
                "counted": False,
            })
            cursor += 1
            dedupe_key = None
            continue

        key = f"{cursor}-{token}"
        counted = config.memory_mode and is_final and key != dedupe_key
        if counted:
            word.attempts += 1
            dedupe_key = key
        events.append({
            "word_index": cursor,
            "expected": word.text,
            "recognized": token,
            "match": "mismatch",
            "attempts": word.attempts,
            "counted": counted,
        })

    if is_final:
        dedupe_key = None

    result = _result(states, events, dedupe_key, config)
    logger.debug(
        "Alignment: %d tokens -> %d events (final=%s), cursor %d -> %d",
        len(cleaned),
        len(events),
        is_final,
        start_cursor,
        result.cursor,
    )
    return result


def _result(
    states: list[WordState],
    events: list[dict],
    dedupe_key: Optional[str],
    config: PracticeConfig,
) -> AlignmentResult:
    cursor = mark_current(states)
    return AlignmentResult(
        words=states,
        events=events,
        cursor=cursor,
        dedupe_key=dedupe_key,
        is_complete=bool(states) and cursor >= len(states),
        accuracy=compute_accuracy(states, config.memory_mode),
    )
