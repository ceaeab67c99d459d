"""Summarize a completed practice session.

Accuracy in memory mode charges every failed attempt, so a passage recited
perfectly on the first try scores 100% and each retry pulls it down.  The
summary also carries the feedback shown on the summary screen.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Sequence

from hifz.config import settings
from hifz.services.word_alignment import CORRECT, WordState, compute_accuracy


@dataclass(frozen=True)
class SessionSummary:
    total_words: int
    correct_words: int
    perfect_words: int
    total_attempts: int
    accuracy: float
    stuck_words: list[str] = field(default_factory=list)
    hints_used: int = 0
    is_perfect_run: bool = False
    elapsed_seconds: float = 0.0
    encouragement: str = ""
    suggestions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["accuracy_pct"] = round(self.accuracy * 100, 1)
        return data


def summarize(
    words: Sequence[WordState],
    elapsed_seconds: float,
    memory_mode: bool = False,
) -> SessionSummary:
    """
    Build the SessionSummary for a finished passage.

      - perfect_words:  words matched on the first try
      - total_attempts: sum of max(1, attempts) per word
      - stuck_words:    texts of words that needed more than one attempt
      - hints_used:     words for which at least one hint was shown
    """
    total = len(words)
    ordered = sorted(words, key=lambda w: w.position)

    correct = sum(1 for w in ordered if w.status == CORRECT)
    perfect = sum(1 for w in ordered if w.is_perfect)
    total_attempts = sum(max(1, w.attempts) for w in ordered)
    stuck = [w.text for w in ordered if w.attempts > 1][: settings.stuck_words_limit]
    hints_used = sum(1 for w in ordered if w.hints_shown > 0)
    is_perfect_run = total > 0 and all(w.is_perfect for w in ordered)
    accuracy = compute_accuracy(ordered, memory_mode)

    return SessionSummary(
        total_words=total,
        correct_words=correct,
        perfect_words=perfect,
        total_attempts=total_attempts,
        accuracy=accuracy,
        stuck_words=stuck,
        hints_used=hints_used,
        is_perfect_run=is_perfect_run,
        elapsed_seconds=round(max(elapsed_seconds, 0.0), 2),
        encouragement=_pick_encouragement(accuracy, is_perfect_run),
        suggestions=_suggestions(total, total_attempts, accuracy, stuck, hints_used),
    )


def _pick_encouragement(accuracy: float, is_perfect_run: bool) -> str:
    if is_perfect_run:
        return "Outstanding! Perfect recitation! 🌟"
    if accuracy >= 0.90:
        return "Excellent work! Keep it up! 💪"
    if accuracy >= 0.75:
        return "Great job! You're improving! 📈"
    if accuracy >= 0.60:
        return "Good effort! Practice makes perfect! 🎯"
    return "Keep practicing! You're making progress! 🌱"


def _suggestions(
    total_words: int,
    total_attempts: int,
    accuracy: float,
    stuck_words: list[str],
    hints_used: int,
) -> list[str]:
    suggestions: list[str] = []
    if stuck_words:
        suggestions.append(f"Focus on these words: {', '.join(stuck_words[:3])}")
    if accuracy < 0.75:
        suggestions.append("Try practicing with slower speech for better accuracy")
    if hints_used > total_words / 2:
        suggestions.append("Try to recall words before using hints")
    if total_attempts > total_words * 2:
        suggestions.append("Review the verse before starting practice")
    if not suggestions:
        suggestions.append("Keep up the excellent work!")
    return suggestions
