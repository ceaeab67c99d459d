"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR / "data"


@dataclass(frozen=True)
class Settings:
    # --- Database ---
    database_url: str = os.getenv(
        "HIFZ_DB_URL", f"sqlite+aiosqlite:///{DATA_DIR / 'hifz.db'}"
    )

    # --- OpenAI (optional server-side transcription) ---
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    openai_stt_model: str = os.getenv("OPENAI_STT_MODEL", "whisper-1")
    stt_language: str = "ar"

    # --- Practice defaults ---
    default_strictness: str = os.getenv("HIFZ_DEFAULT_STRICTNESS", "medium")
    default_difficulty: str = os.getenv("HIFZ_DEFAULT_DIFFICULTY", "medium")
    default_memory_mode: bool = os.getenv("HIFZ_MEMORY_MODE", "false").lower() in (
        "1", "true", "yes",
    )

    # --- Fuzzy matching: strictness -> (similarity, containment ratio) ---
    strictness_thresholds: dict[str, tuple[float, float]] = field(default_factory=lambda: {
        "strict": (0.95, 0.90),
        "medium": (0.80, 0.70),
        "lenient": (0.65, 0.50),
    })

    # --- Memory mode: failed attempts before the stuck prompt (None = never) ---
    hint_thresholds: dict[str, Optional[int]] = field(default_factory=lambda: {
        "easy": 2,
        "medium": 3,
        "hard": None,
    })

    # --- Stuck word timer ---
    stuck_timer_seconds: float = 5.0
    stuck_timer_extension: float = 5.0
    stuck_tick_seconds: float = 1.0

    # --- In-memory sessions without a live socket are dropped after this idle time ---
    session_idle_seconds: float = float(os.getenv("HIFZ_SESSION_IDLE_SECONDS", "1800"))

    # --- Session summary ---
    stuck_words_limit: int = 5


settings = Settings()


@dataclass(frozen=True)
class PracticeConfig:
    """Per-session matching configuration, passed into every engine call."""

    strictness: str = settings.default_strictness
    memory_mode: bool = settings.default_memory_mode
    difficulty: str = settings.default_difficulty
    stuck_timer_seconds: float = settings.stuck_timer_seconds

    def __post_init__(self) -> None:
        if self.strictness not in settings.strictness_thresholds:
            raise ValueError(f"Unknown strictness level: {self.strictness!r}")
        if self.difficulty not in settings.hint_thresholds:
            raise ValueError(f"Unknown memory difficulty: {self.difficulty!r}")
        if self.stuck_timer_seconds <= 0:
            raise ValueError("stuck_timer_seconds must be positive")

    @property
    def hint_threshold(self) -> Optional[int]:
        return settings.hint_thresholds[self.difficulty]


# Ensure directories exist
DATA_DIR.mkdir(parents=True, exist_ok=True)
