import os
import tempfile
from pathlib import Path

import pytest

# Settings are read at import time, so point the app at a throwaway database
# before anything under hifz is imported.
_TMP_DIR = tempfile.mkdtemp(prefix="hifz-tests-")
os.environ["HIFZ_DB_URL"] = f"sqlite+aiosqlite:///{Path(_TMP_DIR) / 'test.db'}"
os.environ["OPENAI_API_KEY"] = ""
os.environ.setdefault("HIFZ_DEFAULT_STRICTNESS", "medium")
os.environ.setdefault("HIFZ_DEFAULT_DIFFICULTY", "medium")
os.environ["HIFZ_MEMORY_MODE"] = "false"


@pytest.fixture(scope="session")
def client():
    from fastapi.testclient import TestClient

    from main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def fake_clock():
    return FakeClock()


class FakeClock:
    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
