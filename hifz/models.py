"""SQLAlchemy ORM models for practice history and per-passage progress."""

from __future__ import annotations

import datetime as dt
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hifz.database import Base


# ---------------------------------------------------------------------------
# Practice sessions & word attempts
# ---------------------------------------------------------------------------


class PracticeRecord(Base):
    __tablename__ = "practice_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    passage_key: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    completed_at: Mapped[dt.datetime] = mapped_column(
        DateTime, server_default=func.now()
    )
    accuracy: Mapped[float] = mapped_column(Float, nullable=False)  # 0..1
    total_words: Mapped[int] = mapped_column(Integer, nullable=False)
    total_attempts: Mapped[int] = mapped_column(Integer, nullable=False)
    perfect_words: Mapped[int] = mapped_column(Integer, default=0)
    hints_used: Mapped[int] = mapped_column(Integer, default=0)
    duration_seconds: Mapped[float] = mapped_column(Float, default=0.0)
    memory_mode: Mapped[bool] = mapped_column(Boolean, default=False)
    difficulty: Mapped[str] = mapped_column(String(10), nullable=False)  # easy | medium | hard
    strictness: Mapped[str] = mapped_column(String(10), nullable=False)  # strict | medium | lenient
    summary_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    word_attempts: Mapped[list["WordAttemptRecord"]] = relationship(
        back_populates="practice", cascade="all, delete-orphan"
    )


class WordAttemptRecord(Base):
    __tablename__ = "word_attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    practice_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("practice_sessions.id")
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    word: Mapped[str] = mapped_column(String(100), nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    is_perfect: Mapped[bool] = mapped_column(Boolean, default=False)
    hints_shown: Mapped[int] = mapped_column(Integer, default=0)

    practice: Mapped["PracticeRecord"] = relationship(back_populates="word_attempts")


# ---------------------------------------------------------------------------
# Per-passage progress aggregate
# ---------------------------------------------------------------------------


class VerseProgress(Base):
    __tablename__ = "verse_progress"

    passage_key: Mapped[str] = mapped_column(String(100), primary_key=True)
    total_sessions: Mapped[int] = mapped_column(Integer, default=0)
    best_accuracy: Mapped[float] = mapped_column(Float, default=0.0)
    average_accuracy: Mapped[float] = mapped_column(Float, default=0.0)
    is_perfect: Mapped[bool] = mapped_column(Boolean, default=False)
    last_practiced_at: Mapped[dt.datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )
