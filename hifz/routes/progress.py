"""Per-passage practice progress APIs."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from hifz.database import get_db
from hifz.services.progress import get_progress, get_recent_sessions

router = APIRouter()


@router.get("/progress")
async def list_progress(db: AsyncSession = Depends(get_db)):
    """Progress for every practiced passage, best accuracy first."""
    return JSONResponse({"progress": await get_progress(db)})


@router.get("/progress/{passage_key}")
async def passage_progress(passage_key: str, db: AsyncSession = Depends(get_db)):
    rows = await get_progress(db, passage_key)
    if not rows:
        return JSONResponse({"error": "No progress for this passage"}, status_code=404)
    return JSONResponse({
        **rows[0],
        "recent_sessions": await get_recent_sessions(db, passage_key),
    })
