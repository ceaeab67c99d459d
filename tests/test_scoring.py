import pytest

from hifz.services.scoring import summarize
from hifz.services.word_alignment import CORRECT, FULL_REVEAL, WordState


def word(position, attempts=0, is_perfect=None, hints=0, text=None):
    return WordState(
        position=position,
        text=text or f"w{position}",
        status=CORRECT,
        attempts=attempts,
        is_perfect=attempts == 0 if is_perfect is None else is_perfect,
        hints_shown=hints,
        is_revealed=True,
    )


def test_perfect_run():
    summary = summarize([word(0), word(1), word(2)], 42.0, memory_mode=True)
    assert summary.is_perfect_run
    assert summary.accuracy == 1.0
    assert summary.perfect_words == 3
    assert summary.total_attempts == 3
    assert summary.stuck_words == []
    assert summary.encouragement.startswith("Outstanding! Perfect recitation!")
    assert summary.suggestions == ["Keep up the excellent work!"]
    assert summary.elapsed_seconds == 42.0


def test_memory_mode_accuracy_and_stuck_words():
    words = [word(0), word(1, attempts=3, hints=1), word(2, attempts=1)]
    summary = summarize(words, 10.0, memory_mode=True)

    assert summary.total_attempts == 5
    assert summary.accuracy == pytest.approx(3 / 5)
    assert summary.perfect_words == 1
    assert summary.stuck_words == ["w1"]
    assert summary.hints_used == 1
    assert not summary.is_perfect_run
    assert summary.encouragement.startswith("Good effort!")
    assert summary.suggestions[0] == "Focus on these words: w1"
    assert "Try practicing with slower speech for better accuracy" in summary.suggestions


def test_normal_mode_accuracy_ignores_attempts():
    words = [word(0), word(1, attempts=4)]
    summary = summarize(words, 5.0, memory_mode=False)
    assert summary.accuracy == 1.0
    assert summary.encouragement.startswith("Excellent work!")


def test_stuck_words_are_limited_and_ordered():
    words = [word(i, attempts=2) for i in reversed(range(7))]
    summary = summarize(words, 0.0, memory_mode=True)
    assert summary.stuck_words == ["w0", "w1", "w2", "w3", "w4"]
    assert summary.suggestions[0] == "Focus on these words: w0, w1, w2"


def test_revealed_words_count_as_hints():
    words = [word(0, is_perfect=False, hints=FULL_REVEAL), word(1, is_perfect=False, hints=2)]
    summary = summarize(words, 0.0, memory_mode=True)
    assert summary.hints_used == 2
    assert "Try to recall words before using hints" in summary.suggestions


def test_many_attempts_suggest_review():
    words = [word(0, attempts=5), word(1)]
    summary = summarize(words, 0.0, memory_mode=True)
    assert summary.total_attempts == 6
    assert "Review the verse before starting practice" in summary.suggestions


@pytest.mark.parametrize(
    "correct, total, prefix",
    [
        (19, 20, "Excellent work!"),
        (16, 20, "Great job!"),
        (13, 20, "Good effort!"),
        (10, 20, "Keep practicing!"),
    ],
)
def test_encouragement_bands(correct, total, prefix):
    words = [word(i) for i in range(correct)]
    words += [
        WordState(position=i, text=f"w{i}") for i in range(correct, total)
    ]
    summary = summarize(words, 0.0)
    assert summary.encouragement.startswith(prefix)


def test_empty_session():
    summary = summarize([], 0.0)
    assert summary.total_words == 0
    assert summary.accuracy == 0.0
    assert not summary.is_perfect_run


def test_to_dict_includes_percentage():
    data = summarize([word(0), word(1, attempts=1)], 3.0, memory_mode=True).to_dict()
    assert data["accuracy_pct"] == 100.0
    assert data["stuck_words"] == []
