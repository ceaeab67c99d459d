"""Practice session APIs including the live WebSocket recitation channel."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
import uuid
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from hifz.config import PracticeConfig, settings
from hifz.database import async_session, get_db
from hifz.services.normalizer import normalize
from hifz.services.practice_session import PracticeSession
from hifz.services.progress import record_practice_session
from hifz.services.stt import transcribe_recitation

logger = logging.getLogger(__name__)

router = APIRouter()

# session_id -> {"session": PracticeSession, "passage_key": str, "saved": bool,
#                "touched": float, "live": bool}
_sessions: dict[str, dict[str, Any]] = {}


def _passage_key_for(text: str) -> str:
    digest = hashlib.sha1(normalize(text).encode("utf-8")).hexdigest()
    return f"passage-{digest[:12]}"


def _not_found() -> JSONResponse:
    return JSONResponse({"error": "Session not found"}, status_code=404)


def _parse_bool(value: Any, default: bool) -> bool:
    """JSON booleans only; strings such as "false" are rejected."""
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ValueError(f"Expected a boolean, got {value!r}")
    return value


def _parse_seconds(value: Any, default: float) -> float:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Expected a number of seconds, got {value!r}")
    return float(value)


def _get_entry(session_id: str) -> Optional[dict[str, Any]]:
    entry = _sessions.get(session_id)
    if entry is not None:
        entry["touched"] = time.monotonic()
    return entry


def _prune_idle_sessions() -> None:
    """Drop sessions nobody has touched for ``session_idle_seconds``."""
    cutoff = time.monotonic() - settings.session_idle_seconds
    idle = [
        sid for sid, entry in _sessions.items()
        if not entry["live"] and entry["touched"] < cutoff
    ]
    for sid in idle:
        del _sessions[sid]
    if idle:
        logger.info("Dropped %d idle sessions", len(idle))


def _state(session_id: str, entry: dict[str, Any]) -> dict[str, Any]:
    return {
        "session_id": session_id,
        "passage_key": entry["passage_key"],
        **entry["session"].snapshot(),
    }


async def _persist_if_complete(
    db: AsyncSession, entry: dict[str, Any]
) -> Optional[dict[str, Any]]:
    """Store the finished session once; return the passage progress when stored."""
    session: PracticeSession = entry["session"]
    summary = session.on_complete()
    if summary is None or entry["saved"]:
        return None
    entry["saved"] = True
    return await record_practice_session(
        db, entry["passage_key"], summary, session.words, session.config
    )


# ---- Create / inspect / discard ----


@router.post("/sessions")
async def create_session(request: Request):
    """Start a practice session.

    Body: {text: str, passage_key?: str, strictness?: str,
           memory_mode?: bool, difficulty?: str, stuck_timer_seconds?: number}
    """
    _prune_idle_sessions()
    body = await request.json()
    text = (body.get("text") or "").strip()
    if not text:
        return JSONResponse({"error": "No passage text provided"}, status_code=400)

    try:
        config = PracticeConfig(
            strictness=body.get("strictness") or settings.default_strictness,
            memory_mode=_parse_bool(body.get("memory_mode"), settings.default_memory_mode),
            difficulty=body.get("difficulty") or settings.default_difficulty,
            stuck_timer_seconds=_parse_seconds(
                body.get("stuck_timer_seconds"), settings.stuck_timer_seconds
            ),
        )
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)

    session = PracticeSession(config)
    if not session.load_passage(text):
        return JSONResponse({"error": "Passage contains no words"}, status_code=400)

    session_id = uuid.uuid4().hex
    entry = {
        "session": session,
        "passage_key": body.get("passage_key") or _passage_key_for(text),
        "saved": False,
        "touched": time.monotonic(),
        "live": False,
    }
    _sessions[session_id] = entry
    logger.info("Session %s started for %s", session_id, entry["passage_key"])
    return JSONResponse(_state(session_id, entry))


@router.get("/sessions/{session_id}")
async def get_session(session_id: str):
    entry = _get_entry(session_id)
    if entry is None:
        return _not_found()
    return JSONResponse(_state(session_id, entry))


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str):
    if _sessions.pop(session_id, None) is None:
        return _not_found()
    logger.info("Session %s discarded", session_id)
    return JSONResponse({"deleted": session_id})


# ---- Transcript updates ----


@router.post("/sessions/{session_id}/transcript")
async def post_transcript(
    session_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Apply a recognizer update. Body: {text: str | tokens: [str], is_final: bool}."""
    entry = _get_entry(session_id)
    if entry is None:
        return _not_found()

    body = await request.json()
    try:
        is_final = _parse_bool(body.get("is_final"), False)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    tokens = body.get("tokens")
    if tokens is None:
        tokens = body.get("text") or ""
    session: PracticeSession = entry["session"]
    session.apply_transcript_update(tokens, is_final)

    progress = await _persist_if_complete(db, entry)
    return JSONResponse({
        **_state(session_id, entry),
        "events": session.last_events,
        "progress": progress,
    })


@router.post("/sessions/{session_id}/audio")
async def post_audio(
    session_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Transcribe an uploaded recitation and apply it as a final chunk."""
    entry = _get_entry(session_id)
    if entry is None:
        return _not_found()

    audio_bytes = await request.body()
    try:
        text = await transcribe_recitation(audio_bytes)
    except Exception as e:
        logger.exception("Transcription failed for session %s", session_id)
        return JSONResponse({"error": f"Transcription failed: {e}"}, status_code=502)

    session: PracticeSession = entry["session"]
    session.apply_transcript_update(text, True)

    progress = await _persist_if_complete(db, entry)
    return JSONResponse({
        **_state(session_id, entry),
        "transcript": text,
        "events": session.last_events,
        "progress": progress,
    })


# ---- Settings & controls ----


@router.post("/sessions/{session_id}/settings")
async def update_settings(session_id: str, request: Request):
    """Body: {strictness?: str, memory_mode?: bool, difficulty?: str}."""
    entry = _get_entry(session_id)
    if entry is None:
        return _not_found()

    body = await request.json()
    session: PracticeSession = entry["session"]
    try:
        memory_mode = _parse_bool(body.get("memory_mode"), session.config.memory_mode)
        if body.get("strictness") is not None:
            session.set_strictness(body["strictness"])
        if body.get("memory_mode") is not None or body.get("difficulty") is not None:
            session.set_mode(memory_mode, body.get("difficulty"))
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)

    if not session.is_complete:
        entry["saved"] = False
    return JSONResponse(_state(session_id, entry))


_CONTROLS = {
    "reset": lambda s: s.reset(),
    "reveal": lambda s: s.reveal_current_word(),
    "stuck/extend": lambda s: s.extend_stuck_timer(),
    "stuck/skip": lambda s: s.skip_stuck_timer(),
    "stuck/retry": lambda s: s.retry_stuck_word(),
    "stuck/cancel": lambda s: s.cancel_stuck_timer(),
}


async def _control(session_id: str, action: str, db: AsyncSession) -> JSONResponse:
    entry = _get_entry(session_id)
    if entry is None:
        return _not_found()
    session: PracticeSession = entry["session"]
    _CONTROLS[action](session)
    if action == "reset":
        entry["saved"] = False
    progress = await _persist_if_complete(db, entry)
    return JSONResponse({**_state(session_id, entry), "progress": progress})


@router.post("/sessions/{session_id}/reset")
async def reset_session(session_id: str, db: AsyncSession = Depends(get_db)):
    return await _control(session_id, "reset", db)


@router.post("/sessions/{session_id}/reveal")
async def reveal_word(session_id: str, db: AsyncSession = Depends(get_db)):
    return await _control(session_id, "reveal", db)


@router.post("/sessions/{session_id}/stuck/extend")
async def extend_stuck(session_id: str, db: AsyncSession = Depends(get_db)):
    return await _control(session_id, "stuck/extend", db)


@router.post("/sessions/{session_id}/stuck/skip")
async def skip_stuck(session_id: str, db: AsyncSession = Depends(get_db)):
    return await _control(session_id, "stuck/skip", db)


@router.post("/sessions/{session_id}/stuck/retry")
async def retry_stuck(session_id: str, db: AsyncSession = Depends(get_db)):
    return await _control(session_id, "stuck/retry", db)


@router.post("/sessions/{session_id}/stuck/cancel")
async def cancel_stuck(session_id: str, db: AsyncSession = Depends(get_db)):
    return await _control(session_id, "stuck/cancel", db)


# ---- WebSocket: live recitation ----


@router.websocket("/ws/sessions/{session_id}")
async def practice_session_ws(websocket: WebSocket, session_id: str):
    """
    Live channel for an in-browser recognizer.

    Client frames: {"type": "transcript", "text": str, "is_final": bool},
    {"type": "extend" | "skip" | "retry" | "reveal" | "reset" | "stop"}.
    Server frames: alignment, stuck, complete, error.
    """
    await websocket.accept()

    entry = _get_entry(session_id)
    if entry is None:
        await websocket.send_json({"type": "error", "message": "Session not found"})
        await websocket.close()
        return

    session: PracticeSession = entry["session"]
    entry["live"] = True
    stop_event = asyncio.Event()

    ws_controls = {
        "extend": "stuck/extend",
        "skip": "stuck/skip",
        "retry": "stuck/retry",
        "reveal": "reveal",
        "reset": "reset",
    }

    async def send_state(events: Optional[list[dict]] = None) -> None:
        await websocket.send_json({
            "type": "alignment",
            **_state(session_id, entry),
            "events": events or [],
        })
        if session.is_complete and not entry["saved"]:
            async with async_session() as db:
                progress = await _persist_if_complete(db, entry)
            summary = session.on_complete()
            await websocket.send_json({
                "type": "complete",
                "summary": summary.to_dict() if summary else None,
                "progress": progress,
            })

    async def receive_messages():
        """Task A: apply transcript events and control commands from the client."""
        try:
            while not stop_event.is_set():
                try:
                    raw = await asyncio.wait_for(websocket.receive_text(), timeout=1.0)
                except asyncio.TimeoutError:
                    continue

                try:
                    msg = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Session %s: ignoring non-JSON frame", session_id)
                    await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                    continue

                if not isinstance(msg, dict):
                    logger.warning("Session %s: ignoring non-object frame", session_id)
                    await websocket.send_json({"type": "error", "message": "Invalid message"})
                    continue

                msg_type = msg.get("type")
                if msg_type == "transcript":
                    try:
                        is_final = _parse_bool(msg.get("is_final"), False)
                    except ValueError as e:
                        await websocket.send_json({"type": "error", "message": str(e)})
                        continue
                    tokens = msg.get("tokens")
                    if tokens is None:
                        tokens = msg.get("text") or ""
                    session.apply_transcript_update(tokens, is_final)
                    await send_state(session.last_events)
                elif msg_type in ws_controls:
                    action = ws_controls[msg_type]
                    _CONTROLS[action](session)
                    if action == "reset":
                        entry["saved"] = False
                    await send_state()
                elif msg_type == "stop":
                    stop_event.set()
                    return
                else:
                    await websocket.send_json({
                        "type": "error",
                        "message": f"Unknown message type: {msg_type}",
                    })
        except WebSocketDisconnect:
            logger.info("Session %s: client disconnected", session_id)
            stop_event.set()
        except Exception:
            logger.exception("Session %s: receive loop failed", session_id)
            stop_event.set()

    async def tick_stuck_timer():
        """Task B: advance the stuck-word countdown every tick."""
        try:
            while not stop_event.is_set():
                await asyncio.sleep(settings.stuck_tick_seconds)
                if stop_event.is_set() or session.stuck_timer is None:
                    continue
                position = session.stuck_timer.position
                expired = session.tick(settings.stuck_tick_seconds)
                timer = session.stuck_timer
                await websocket.send_json({
                    "type": "stuck",
                    "position": position,
                    "expired": expired,
                    "stuck_timer": timer.to_dict() if timer else None,
                })
                if expired:
                    await send_state()
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("Session %s: tick loop failed", session_id)
            stop_event.set()

    try:
        await asyncio.gather(receive_messages(), tick_stuck_timer())
    finally:
        # A live session is owned by its socket; stopping discards it.
        _sessions.pop(session_id, None)
        logger.info(
            "Session %s ended at word %d/%d",
            session_id, session.cursor, len(session.words),
        )
        try:
            await websocket.close()
        except (RuntimeError, WebSocketDisconnect):
            pass
