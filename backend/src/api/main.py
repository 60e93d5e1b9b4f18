"""
Backend API: scheduler trigger for the live score sync.

Every request builds its own run context (config, Supabase client, provider
clients) and releases it before responding.
"""

import logging
import sys
from pathlib import Path
from typing import Callable

from dotenv import load_dotenv

# Load .env and ensure backend/src is on path
backend_dir = Path(__file__).resolve().parent.parent.parent
load_dotenv(backend_dir / ".env")
sys.path.insert(0, str(backend_dir / "src"))

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import Config
from live_sync.orchestrator import LiveSyncOrchestrator, RunContext, build_context

logger = logging.getLogger(__name__)

app = FastAPI(title="Live Score Sync API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_context_factory() -> Callable[[], RunContext]:
    """Dependency: how to build a run context. Overridden in tests."""
    return lambda: build_context(Config())


@app.api_route("/api/v1/live-scores/poll", methods=["GET", "POST"])
async def poll_live_scores(context_factory: Callable[[], RunContext] = Depends(get_context_factory)):
    """
    Run one live sync cycle.

    200 with skipped=true when another run holds the lock; 500 only for
    unrecoverable errors.
    """
    try:
        context = context_factory()
    except Exception as e:
        logger.error("Failed to initialize live sync", extra={"error": str(e)}, exc_info=True)
        return JSONResponse(status_code=500, content={"success": False, "message": str(e)})

    try:
        report = await LiveSyncOrchestrator(context).run_cycle()
    except Exception as e:
        logger.error("Live sync cycle failed", extra={
            "error": str(e),
            "error_type": type(e).__name__,
        }, exc_info=True)
        return JSONResponse(status_code=500, content={"success": False, "message": str(e)})
    finally:
        await context.close()

    return {
        "success": True,
        "skipped": report.skipped,
        "message": report.message,
        "report": report.to_dict(),
    }


@app.get("/health")
def health():
    return {"status": "ok"}
