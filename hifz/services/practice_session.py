"""Per-passage practice state: word states, stuck-word timer and hints.

``PracticeSession`` owns the mutable state of one recitation run.  Matching
itself is delegated to :func:`hifz.services.word_alignment.apply_transcript_update`;
this module commits its result and layers the memory-mode assistance on top:

  attempts == threshold       -> stuck timer starts
  attempts == threshold + 1   -> first letter hint
  attempts == threshold + 2   -> first two letters
  attempts >= threshold + 3   -> full word shown (still has to be recited)

Nothing here awaits or sleeps.  The host drives the timer through ``tick``.
"""

from __future__ import annotations

import logging
import time
import unicodedata
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional, Sequence, Union

from hifz.config import PracticeConfig, settings
from hifz.services.normalizer import split_transcript
from hifz.services.scoring import SessionSummary, summarize
from hifz.services.segmenter import ExpectedWord, VerseMarker, segment_passage
from hifz.services.word_alignment import (
    CORRECT,
    FULL_REVEAL,
    WordState,
    apply_transcript_update,
    compute_accuracy,
    find_cursor,
    mark_current,
)

logger = logging.getLogger(__name__)

# Placeholder width for a hidden word, hint letters included.
_PLACEHOLDER_WIDTH = 10


class InvalidSettingError(ValueError):
    """Raised when a strictness level or memory difficulty is not recognised."""


@dataclass
class StuckTimer:
    position: int
    remaining: float

    def to_dict(self) -> dict[str, Any]:
        return {"position": self.position, "remaining": round(max(self.remaining, 0.0), 2)}


def hint_prefix(text: str, letters: int) -> str:
    """First *letters* letters of *text* (with their marks) then underscores."""
    base_count = sum(1 for ch in text if not unicodedata.combining(ch))
    shown: list[str] = []
    seen = 0
    for ch in text:
        if not unicodedata.combining(ch):
            if seen == letters:
                break
            seen += 1
        shown.append(ch)
    hidden = min(base_count - seen, _PLACEHOLDER_WIDTH - seen)
    return "".join(shown) + "_" * max(hidden, 0)


class PracticeSession:
    def __init__(
        self,
        config: Optional[PracticeConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or PracticeConfig()
        self._clock = clock
        self._expected: list[ExpectedWord] = []
        self._markers: list[VerseMarker] = []
        self._words: list[WordState] = []
        self._dedupe_key: Optional[str] = None
        self._timer: Optional[StuckTimer] = None
        self._summary: Optional[SessionSummary] = None
        self._started_at: Optional[float] = None
        self._last_events: list[dict] = []

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def config(self) -> PracticeConfig:
        return self._config

    @property
    def words(self) -> list[WordState]:
        return list(self._words)

    @property
    def expected_words(self) -> list[ExpectedWord]:
        return list(self._expected)

    @property
    def verse_markers(self) -> list[VerseMarker]:
        return list(self._markers)

    @property
    def cursor(self) -> int:
        return find_cursor(self._words)

    @property
    def is_complete(self) -> bool:
        return bool(self._words) and self.cursor >= len(self._words)

    @property
    def accuracy(self) -> float:
        return compute_accuracy(self._words, self._config.memory_mode)

    @property
    def stuck_timer(self) -> Optional[StuckTimer]:
        return self._timer

    @property
    def last_events(self) -> list[dict]:
        return list(self._last_events)

    # ------------------------------------------------------------------
    # Passage lifecycle
    # ------------------------------------------------------------------

    def load_passage(self, text: str) -> list[ExpectedWord]:
        segmentation = segment_passage(text)
        self._expected = segmentation.words
        self._markers = segmentation.verse_markers
        self.reset()
        logger.info(
            "Loaded passage: %d words, %d verse markers",
            len(self._expected), len(self._markers),
        )
        return self.expected_words

    def reset(self) -> None:
        """Start the passage over.  Duplicate tags are kept."""
        self._words = [
            WordState(
                position=w.position,
                text=w.plain_text,
                is_revealed=not self._config.memory_mode,
            )
            for w in self._expected
        ]
        mark_current(self._words)
        self._dedupe_key = None
        self._timer = None
        self._summary = None
        self._started_at = None
        self._last_events = []

    # ------------------------------------------------------------------
    # Transcript updates
    # ------------------------------------------------------------------

    def apply_transcript_update(
        self, tokens: Union[Sequence[str], str], is_final: bool
    ) -> list[WordState]:
        """Align a recognizer update and commit the new word states."""
        if isinstance(tokens, str):
            tokens = split_transcript(tokens)

        result = apply_transcript_update(
            self._words, tokens, is_final, self._config, self._dedupe_key
        )
        # The clock starts with the first update that reaches the engine.
        if self._started_at is None and result.events:
            self._started_at = self._clock()

        for event in result.events:
            position = event["word_index"]
            if event["match"] == "correct":
                if self._timer is not None and self._timer.position == position:
                    self._timer = None
            elif event["counted"]:
                self._escalate(result.words[position], event["attempts"])

        self._words = result.words
        self._dedupe_key = result.dedupe_key
        self._last_events = result.events
        self._check_complete()
        return self.words

    def _escalate(self, word: WordState, attempts: int) -> None:
        threshold = self._config.hint_threshold
        if threshold is None or attempts < threshold or word.status == CORRECT:
            return
        if attempts == threshold:
            self._timer = StuckTimer(word.position, self._config.stuck_timer_seconds)
            logger.info("Word %d stuck after %d attempts", word.position, attempts)
            return

        self.cancel_stuck_timer()
        if attempts == threshold + 1:
            word.hints_shown = max(word.hints_shown, 1)
        elif attempts == threshold + 2:
            word.hints_shown = max(word.hints_shown, 2)
        else:
            word.hints_shown = FULL_REVEAL
            word.is_revealed = True
        logger.debug("Word %d hints -> %d", word.position, word.hints_shown)

    def _check_complete(self) -> None:
        if not self.is_complete or self._summary is not None:
            return
        self._timer = None
        elapsed = self._clock() - self._started_at if self._started_at is not None else 0.0
        self._summary = summarize(self._words, elapsed, self._config.memory_mode)
        logger.info(
            "Passage complete: accuracy %.2f, %d attempts",
            self._summary.accuracy, self._summary.total_attempts,
        )

    def on_complete(self) -> Optional[SessionSummary]:
        return self._summary

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def set_strictness(self, level: str) -> None:
        self._config = self._replace_config(strictness=level)

    def set_mode(self, memory_enabled: bool, difficulty: Optional[str] = None) -> None:
        """Switch memory mode and/or difficulty; toggling memory mode resets."""
        new_config = self._replace_config(
            memory_mode=bool(memory_enabled),
            difficulty=difficulty or self._config.difficulty,
        )
        toggled = new_config.memory_mode != self._config.memory_mode
        self._config = new_config
        if toggled:
            self.reset()

    def _replace_config(self, **changes: Any) -> PracticeConfig:
        try:
            return replace(self._config, **changes)
        except ValueError as e:
            raise InvalidSettingError(str(e)) from e

    # ------------------------------------------------------------------
    # Stuck word assistance
    # ------------------------------------------------------------------

    def tick(self, seconds: float) -> bool:
        """Advance the stuck timer; True when it expired on this tick."""
        if self._timer is None:
            return False
        self._timer.remaining -= seconds
        if self._timer.remaining > 0:
            return False
        position = self._timer.position
        self._timer = None
        self._show_first_letter(position)
        logger.debug("Stuck timer expired on word %d", position)
        return True

    def extend_stuck_timer(self, seconds: Optional[float] = None) -> None:
        if self._timer is not None:
            self._timer.remaining += (
                settings.stuck_timer_extension if seconds is None else seconds
            )

    def skip_stuck_timer(self) -> None:
        """Stop waiting and show the first-letter hint now."""
        if self._timer is None:
            return
        position = self._timer.position
        self._timer = None
        self._show_first_letter(position)

    def retry_stuck_word(self) -> None:
        """Hide hints on the current word and let the reciter try again."""
        self._timer = None
        self._dedupe_key = None
        cursor = self.cursor
        if cursor < len(self._words):
            word = self._words[cursor]
            word.hints_shown = 0
            word.is_revealed = not self._config.memory_mode

    def cancel_stuck_timer(self) -> None:
        self._timer = None

    def reveal_current_word(self) -> None:
        """Complete the current word without pronunciation."""
        cursor = self.cursor
        if cursor >= len(self._words):
            return
        if self._started_at is None:
            self._started_at = self._clock()
        word = self._words[cursor]
        word.status = CORRECT
        word.hints_shown = FULL_REVEAL
        word.is_revealed = True
        word.is_perfect = False
        self._timer = None
        self._dedupe_key = None
        mark_current(self._words)
        self._check_complete()

    def _show_first_letter(self, position: int) -> None:
        word = self._words[position]
        if word.status != CORRECT:
            word.hints_shown = max(word.hints_shown, 1)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def _display_text(self, word: WordState) -> str:
        if word.is_revealed:
            return word.text
        return hint_prefix(word.text, min(word.hints_shown, 2))

    def snapshot(self) -> dict[str, Any]:
        words = []
        for state, expected in zip(self._words, self._expected):
            item = state.to_dict()
            item.update({
                "display": self._display_text(state),
                "markup_text": expected.markup_text if state.is_revealed else None,
                "duplicate_index": expected.duplicate_index,
                "duplicate_count": expected.duplicate_count,
            })
            words.append(item)

        return {
            "config": {
                "strictness": self._config.strictness,
                "memory_mode": self._config.memory_mode,
                "difficulty": self._config.difficulty,
            },
            "words": words,
            "verse_markers": [
                {"marker": m.marker, "after_position": m.after_position}
                for m in self._markers
            ],
            "cursor": self.cursor,
            "is_complete": self.is_complete,
            "accuracy": round(self.accuracy, 4),
            "stuck_timer": self._timer.to_dict() if self._timer else None,
            "summary": self._summary.to_dict() if self._summary else None,
        }
