import pytest

from hifz.config import PracticeConfig
from hifz.services.practice_session import (
    InvalidSettingError,
    PracticeSession,
    hint_prefix,
)
from hifz.services.word_alignment import CORRECT, CURRENT, FULL_REVEAL, PENDING


def memory_session(difficulty="easy", clock=None, text="الْحَمْدُ لِلَّهِ"):
    config = PracticeConfig(strictness="medium", memory_mode=True, difficulty=difficulty)
    session = PracticeSession(config, clock=clock) if clock else PracticeSession(config)
    session.load_passage(text)
    return session


def miss(session, times=1):
    for _ in range(times):
        session.apply_transcript_update(["كتاب"], True)


# ---- Scenarios ----


def test_recites_passage_perfectly():
    session = PracticeSession(PracticeConfig(strictness="medium", memory_mode=False))
    session.load_passage("بِسْمِ اللَّهِ")
    words = session.apply_transcript_update(["بسم", "الله"], True)

    assert [w.status for w in words] == [CORRECT, CORRECT]
    assert all(w.is_perfect for w in words)
    assert session.accuracy == 1.0
    summary = session.on_complete()
    assert summary is not None
    assert summary.is_perfect_run
    assert summary.accuracy == 1.0


def test_memory_mode_hint_escalation():
    session = memory_session(text="الْحَمْدُ")

    miss(session)
    assert session.stuck_timer is None
    miss(session)
    assert session.stuck_timer is not None
    assert session.stuck_timer.position == 0

    session.skip_stuck_timer()
    assert session.stuck_timer is None
    assert session.words[0].hints_shown == 1

    miss(session)
    assert session.words[0].hints_shown == 1
    miss(session)
    assert session.words[0].hints_shown == 2

    session.apply_transcript_update(["الحمد"], True)
    word = session.words[0]
    assert word.status == CORRECT
    assert word.is_perfect is False
    assert word.attempts == 4
    assert session.accuracy == pytest.approx(0.25)


def test_duplicates_are_matched_by_position():
    session = PracticeSession(PracticeConfig(memory_mode=False))
    expected = session.load_passage("قل هو الله احد ثم الله")
    assert (expected[2].duplicate_index, expected[2].duplicate_count) == (1, 2)
    assert (expected[5].duplicate_index, expected[5].duplicate_count) == (2, 2)

    session.apply_transcript_update(["قل", "هو", "الله"], True)
    session.apply_transcript_update(["الله"], True)
    assert session.cursor == 3
    assert session.words[5].status == PENDING


def test_interim_then_final():
    session = memory_session(text="الحمد لله")
    session.apply_transcript_update(["الحمد"], False)
    session.apply_transcript_update(["الحمد", "لله"], True)
    assert [w.attempts for w in session.words] == [0, 0]
    assert session.is_complete


# ---- Stuck timer ----


def test_timer_expiry_shows_first_letter():
    session = memory_session()
    miss(session, 2)
    assert session.stuck_timer.remaining == 5.0

    for _ in range(4):
        assert session.tick(1.0) is False
    assert session.tick(1.0) is True
    assert session.stuck_timer is None
    assert session.words[0].hints_shown == 1
    assert session.tick(1.0) is False


def test_extend_stuck_timer():
    session = memory_session()
    miss(session, 2)
    session.extend_stuck_timer()
    assert session.stuck_timer.remaining == 10.0
    session.extend_stuck_timer(2.5)
    assert session.stuck_timer.remaining == 12.5
    session.extend_stuck_timer(0)
    assert session.stuck_timer.remaining == 12.5


def test_cancel_is_idempotent():
    session = memory_session()
    miss(session, 2)
    session.cancel_stuck_timer()
    session.cancel_stuck_timer()
    assert session.stuck_timer is None
    assert session.words[0].hints_shown == 0


def test_match_cancels_timer():
    session = memory_session()
    miss(session, 2)
    session.apply_transcript_update(["الحمد"], True)
    assert session.stuck_timer is None
    assert session.words[0].status == CORRECT


def test_full_reveal_after_repeated_misses():
    session = memory_session()
    miss(session, 5)
    word = session.words[0]
    assert word.attempts == 5
    assert word.hints_shown == FULL_REVEAL
    assert word.is_revealed is True
    assert word.status == CURRENT
    assert session.stuck_timer is None


def test_hard_difficulty_never_escalates():
    session = memory_session(difficulty="hard")
    miss(session, 6)
    assert session.stuck_timer is None
    assert session.words[0].hints_shown == 0
    assert session.words[0].attempts == 6


def test_retry_clears_hints_but_keeps_attempts():
    session = memory_session()
    miss(session, 4)
    assert session.words[0].hints_shown == 2

    session.retry_stuck_word()
    assert session.words[0].hints_shown == 0
    assert session.words[0].attempts == 4
    assert session.words[0].is_revealed is False


def test_reveal_current_word():
    session = memory_session()
    session.reveal_current_word()
    word = session.words[0]
    assert word.status == CORRECT
    assert word.hints_shown == FULL_REVEAL
    assert word.is_revealed is True
    assert word.is_perfect is False
    assert session.cursor == 1
    assert session.words[1].status == CURRENT


def test_reveal_last_word_completes_session():
    session = memory_session(text="الحمد")
    session.reveal_current_word()
    assert session.is_complete
    assert session.on_complete() is not None
    assert session.on_complete().is_perfect_run is False


# ---- Settings & reset ----


def test_reset_restores_initial_state():
    session = memory_session()
    miss(session, 3)
    session.apply_transcript_update(["الحمد"], True)
    session.reset()

    assert [w.status for w in session.words] == [CURRENT, PENDING]
    assert all(w.attempts == 0 and w.hints_shown == 0 for w in session.words)
    assert all(w.is_revealed is False for w in session.words)
    assert session.stuck_timer is None
    assert session.on_complete() is None


def test_toggling_memory_mode_resets():
    session = memory_session()
    miss(session, 1)
    session.set_mode(False)
    assert session.config.memory_mode is False
    assert session.words[0].attempts == 0
    assert all(w.is_revealed for w in session.words)


def test_changing_only_difficulty_keeps_progress():
    session = memory_session()
    miss(session, 1)
    session.set_mode(True, "hard")
    assert session.config.difficulty == "hard"
    assert session.words[0].attempts == 1


def test_invalid_settings_keep_previous_config():
    session = memory_session()
    before = session.config
    with pytest.raises(InvalidSettingError):
        session.set_strictness("extreme")
    with pytest.raises(ValueError):
        session.set_mode(True, "impossible")
    assert session.config == before


def test_strictness_change_applies_to_next_update():
    session = PracticeSession(PracticeConfig(memory_mode=False))
    session.load_passage("والكتاب")
    session.set_strictness("strict")
    session.apply_transcript_update(["الكتاب"], True)
    assert session.words[0].status == CURRENT

    session.set_strictness("medium")
    session.apply_transcript_update(["الكتاب"], True)
    assert session.words[0].status == CORRECT


# ---- Summary & clock ----


def test_summary_uses_injected_clock(fake_clock):
    session = memory_session(clock=fake_clock, text="الحمد لله")
    session.apply_transcript_update(["الحمد"], True)
    fake_clock.advance(12.5)
    session.apply_transcript_update(["الحمد", "لله"], True)

    summary = session.on_complete()
    assert summary.elapsed_seconds == 12.5
    assert summary.total_words == 2
    assert summary.perfect_words == 2


def test_empty_updates_do_not_start_the_clock(fake_clock):
    session = memory_session(clock=fake_clock, text="الحمد لله")
    session.apply_transcript_update("", False)
    session.apply_transcript_update([], True)
    session.apply_transcript_update(["   "], True)
    fake_clock.advance(40)

    session.apply_transcript_update(["الحمد"], True)
    fake_clock.advance(10)
    session.apply_transcript_update(["الحمد", "لله"], True)

    assert session.on_complete().elapsed_seconds == 10.0


def test_summary_is_computed_once(fake_clock):
    session = memory_session(clock=fake_clock, text="الحمد")
    session.apply_transcript_update(["الحمد"], True)
    first = session.on_complete()
    fake_clock.advance(30)
    session.apply_transcript_update(["الحمد"], True)
    assert session.on_complete() is first


def test_empty_passage():
    session = PracticeSession()
    assert session.load_passage("   ") == []
    assert session.words == []
    assert session.is_complete is False
    session.apply_transcript_update(["بسم"], True)
    assert session.on_complete() is None


# ---- Hints & snapshot ----


def test_hint_prefix():
    assert hint_prefix("الحمد", 1) == "ا____"
    assert hint_prefix("الحمد", 2) == "ال___"
    assert hint_prefix("بسم", 0) == "___"
    assert hint_prefix("بِسْمِ", 1) == "بِ__"


def test_hint_prefix_caps_placeholder():
    assert hint_prefix("ابتثجحخدذرزس", 0) == "_" * 10
    assert hint_prefix("ابتثجحخدذرزس", 2) == "اب" + "_" * 8


def test_snapshot_hides_words_in_memory_mode():
    session = memory_session()
    miss(session, 3)
    snap = session.snapshot()

    assert snap["cursor"] == 0
    assert snap["config"]["memory_mode"] is True
    first = snap["words"][0]
    assert first["attempts"] == 3
    assert first["display"] == "ا____"
    assert snap["words"][1]["display"] == "___"
    assert snap["summary"] is None


def test_snapshot_reports_verse_markers():
    session = PracticeSession(PracticeConfig(memory_mode=False))
    session.load_passage("الحمد لله \N{ARABIC END OF AYAH}\N{ARABIC-INDIC DIGIT ONE} رب")
    snap = session.snapshot()
    assert snap["verse_markers"] == [
        {"marker": "\N{ARABIC-INDIC DIGIT ONE}", "after_position": 2}
    ]
    assert [w["display"] for w in snap["words"]] == ["الحمد", "لله", "رب"]
