"""clipshare — FastAPI server for the clip editing and merge pipeline.

Start with:
    python main.py
    python main.py --host 0.0.0.0 --port 8000
    python main.py --reload
"""

from __future__ import annotations

import argparse
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from clipshare.utils.config import APP_VERSION, load_config

load_dotenv()


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Assign a unique request_id to every incoming request for log correlation."""

    async def dispatch(self, request: Request, call_next):
        from clipshare.utils.logging import set_request_id
        rid = request.headers.get("x-request-id", "")
        rid = set_request_id(rid)
        response = await call_next(request)
        response.headers["x-request-id"] = rid
        return response


@asynccontextmanager
async def lifespan(application: FastAPI):
    # Startup
    from clipshare.utils.deps_check import check_all, print_dep_status
    from clipshare.utils.logging import setup_logging, Verbosity, info, success

    setup_logging(Verbosity.NORMAL)
    info(f"clipshare v{APP_VERSION} starting...")

    engine_cfg = cfg.engine
    print_dep_status(check_all(engine_cfg.ffmpeg_path, engine_cfg.ffprobe_path))

    # Media executor limits (ffmpeg threads, nice, concurrency) from config.yaml
    from clipshare.utils.media_executor import configure_media_executor
    configure_media_executor(
        ffmpeg_threads=cfg.rendering.ffmpeg_threads,
        nice=cfg.rendering.nice,
        max_concurrent=cfg.rendering.max_concurrent,
    )
    info(f"Engine concurrency: {engine_cfg.concurrency}, storage: {STORAGE_DIR}")

    success("Server ready — API docs: http://localhost:8000/docs")

    yield  # app runs here


cfg = load_config()

app = FastAPI(
    title="clipshare",
    description="Trim, background and merge media clips with ffmpeg",
    version=APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Pipeline-Warnings", "Content-Disposition", "x-request-id"],
)
app.add_middleware(RequestIdMiddleware)

# ── API Routes ────────────────────────────────────────────────────────────────

from clipshare.api.routes import router as media_router  # noqa: E402
app.include_router(media_router)

# ── Stored clips ──────────────────────────────────────────────────────────────

STORAGE_DIR = Path(cfg.storage.root).resolve()
STORAGE_DIR.mkdir(parents=True, exist_ok=True)

# serve published clips at the storage public_base_url
app.mount("/storage", StaticFiles(directory=str(STORAGE_DIR)), name="storage_files")


# ── CLI Entry Point ───────────────────────────────────────────────────────────

def main():
    parser = argparse.ArgumentParser(description="clipshare server")
    parser.add_argument("--host", default="127.0.0.1", help="Bind host (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    parser.add_argument("--reload", action="store_true", help="Auto-reload on code changes")
    parser.add_argument("--workers", type=int, default=1, help="Number of workers")
    args = parser.parse_args()

    import uvicorn
    uvicorn.run(
        "main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=args.workers,
        log_level="info",
    )


if __name__ == "__main__":
    main()
