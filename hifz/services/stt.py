"""Speech-to-text via OpenAI Whisper API."""

from __future__ import annotations

import io
import logging

from openai import AsyncOpenAI

from hifz.config import settings

logger = logging.getLogger(__name__)

# Minimum audio payload size (bytes) to bother sending.
# Very small blobs are usually silence / recorder artefacts.
MIN_AUDIO_BYTES = 1000

_client: AsyncOpenAI | None = None


def _get_client() -> AsyncOpenAI:
    global _client
    if _client is None:
        _client = AsyncOpenAI(api_key=settings.openai_api_key)
    return _client


async def transcribe_recitation(audio_bytes: bytes, filename: str = "recitation.webm") -> str:
    """
    Send a recorded recitation to Whisper and return the Arabic transcript.

    Returns "" when no API key is configured or the blob is too small.
    """
    if not settings.openai_api_key:
        logger.warning("OpenAI API key not set – returning empty transcript")
        return ""

    if len(audio_bytes) < MIN_AUDIO_BYTES:
        logger.debug("Audio too small (%d bytes), skipping STT", len(audio_bytes))
        return ""

    client = _get_client()

    # The SDK infers the container format from the file name.
    audio_file = io.BytesIO(audio_bytes)
    audio_file.name = filename

    try:
        transcript = await client.audio.transcriptions.create(
            model=settings.openai_stt_model,
            file=audio_file,
            language=settings.stt_language,
        )
    except Exception as e:
        logger.error("Whisper STT failed (audio %d bytes): %s", len(audio_bytes), e)
        raise

    text = transcript.text or ""
    logger.debug("Transcribed %d bytes -> %d chars", len(audio_bytes), len(text))
    return text
