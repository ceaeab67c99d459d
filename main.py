"""Hifz Coach – FastAPI application entry point."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI

from hifz.database import init_db

# --- Configure logging so hifz.* loggers are visible alongside uvicorn ---
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:    %(name)s - %(message)s",
    stream=sys.stdout,
    force=True,  # override uvicorn's config
)

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    await init_db()
    log.info("Database ready")
    yield


app = FastAPI(title="Hifz Coach", version="0.1.0", lifespan=lifespan)

# --- Register routers ---
from hifz.routes.practice import router as practice_router  # noqa: E402
from hifz.routes.progress import router as progress_router  # noqa: E402

app.include_router(practice_router, prefix="/api")
app.include_router(progress_router, prefix="/api")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
