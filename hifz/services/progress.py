"""Persist completed practice sessions and maintain per-passage progress."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hifz.config import PracticeConfig
from hifz.models import PracticeRecord, VerseProgress, WordAttemptRecord
from hifz.services.scoring import SessionSummary
from hifz.services.word_alignment import WordState

logger = logging.getLogger(__name__)


async def record_practice_session(
    db: AsyncSession,
    passage_key: str,
    summary: SessionSummary,
    words: Sequence[WordState],
    config: PracticeConfig,
) -> dict[str, Any]:
    """
    Store one completed session with its word history and fold it into
    the passage's running progress.  Everything lands in a single commit.

    Returns the passage progress after the update (see ``progress_to_dict``).
    """
    record = PracticeRecord(
        passage_key=passage_key,
        accuracy=summary.accuracy,
        total_words=summary.total_words,
        total_attempts=summary.total_attempts,
        perfect_words=summary.perfect_words,
        hints_used=summary.hints_used,
        duration_seconds=summary.elapsed_seconds,
        memory_mode=config.memory_mode,
        difficulty=config.difficulty,
        strictness=config.strictness,
        summary_json=json.dumps(summary.to_dict(), ensure_ascii=False),
    )
    record.word_attempts = [
        WordAttemptRecord(
            position=w.position,
            word=w.text,
            attempts=w.attempts,
            is_perfect=w.is_perfect,
            hints_shown=w.hints_shown,
        )
        for w in words
    ]
    db.add(record)

    result = await db.execute(
        select(VerseProgress).where(VerseProgress.passage_key == passage_key)
    )
    progress = result.scalar_one_or_none()
    if progress is None:
        progress = VerseProgress(
            passage_key=passage_key,
            total_sessions=1,
            best_accuracy=summary.accuracy,
            average_accuracy=summary.accuracy,
            is_perfect=summary.is_perfect_run,
        )
        db.add(progress)
    else:
        sessions = progress.total_sessions + 1
        progress.average_accuracy = (
            progress.average_accuracy * progress.total_sessions + summary.accuracy
        ) / sessions
        progress.total_sessions = sessions
        progress.best_accuracy = max(progress.best_accuracy, summary.accuracy)
        progress.is_perfect = progress.is_perfect or summary.is_perfect_run

    await db.commit()
    logger.info(
        "Recorded session for %s: accuracy %.2f (%d sessions)",
        passage_key, summary.accuracy, progress.total_sessions,
    )
    return progress_to_dict(progress)


async def get_progress(
    db: AsyncSession, passage_key: Optional[str] = None
) -> list[dict[str, Any]]:
    """Progress for one passage, or every practiced passage (best first)."""
    query = select(VerseProgress)
    if passage_key is not None:
        query = query.where(VerseProgress.passage_key == passage_key)
    else:
        query = query.order_by(VerseProgress.best_accuracy.desc())
    result = await db.execute(query)
    return [progress_to_dict(p) for p in result.scalars().all()]


async def get_recent_sessions(
    db: AsyncSession, passage_key: str, limit: int = 10
) -> list[dict[str, Any]]:
    result = await db.execute(
        select(PracticeRecord)
        .where(PracticeRecord.passage_key == passage_key)
        .order_by(PracticeRecord.id.desc())
        .limit(limit)
    )
    return [
        {
            "id": r.id,
            "accuracy": round(r.accuracy, 4),
            "total_words": r.total_words,
            "total_attempts": r.total_attempts,
            "perfect_words": r.perfect_words,
            "hints_used": r.hints_used,
            "duration_seconds": r.duration_seconds,
            "memory_mode": r.memory_mode,
            "difficulty": r.difficulty,
            "strictness": r.strictness,
            "completed_at": r.completed_at.isoformat() if r.completed_at else None,
        }
        for r in result.scalars().all()
    ]


def progress_to_dict(progress: VerseProgress) -> dict[str, Any]:
    return {
        "passage_key": progress.passage_key,
        "total_sessions": progress.total_sessions,
        "best_accuracy": round(progress.best_accuracy, 4),
        "average_accuracy": round(progress.average_accuracy, 4),
        "is_perfect": progress.is_perfect,
    }
