"""Media API routes — FastAPI endpoints for every pipeline operation."""

from __future__ import annotations

import asyncio
import mimetypes
import re
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any, Callable

from fastapi import APIRouter, File, Form, HTTPException, UploadFile
from fastapi.responses import Response

from clipshare.api.models import ClipRecordResponse, HealthResponse, MergeRequest
from clipshare.engine.errors import PipelineError
from clipshare.engine.loader import is_remote_url
from clipshare.engine.session import get_session
from clipshare.pipeline.editor import edit_clip
from clipshare.pipeline.merge import merge_clips
from clipshare.pipeline.models import MediaBlob, OperationResult, TrimRange
from clipshare.pipeline.transforms import (
    composite_image_under_audio,
    overlay_audio_under_video,
    trim_clip,
)
from clipshare.storage.uploader import LocalStorage, publish_clip
from clipshare.utils.config import APP_VERSION
from clipshare.utils.logging import warn
from clipshare.utils.media_executor import get_media_queue_status

router = APIRouter(prefix="/api", tags=["media"])

_media_pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="media")


# ── Helpers ───────────────────────────────────────────────────────────────────

async def _read_blob(upload: UploadFile) -> MediaBlob:
    data = await upload.read()
    name = upload.filename or ""
    mime = upload.content_type or mimetypes.guess_type(name)[0] or "application/octet-stream"
    return MediaBlob(data, mime, name)


async def _run(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run a blocking pipeline call on the media pool, mapping errors to HTTP."""
    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(_media_pool, partial(fn, *args, **kwargs))
    except PipelineError as e:
        raise HTTPException(e.status_code, str(e)) from e


def _header_filename(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9._\- ]", "_", name) or "output"


def _blob_response(result: OperationResult, attachment: bool = False) -> Response:
    headers = {"X-Pipeline-Warnings": str(len(result.warnings))}
    for w in result.warnings:
        warn(f"[api] {w}")
    if result.blob.name:
        disposition = "attachment" if attachment else "inline"
        headers["Content-Disposition"] = f'{disposition}; filename="{_header_filename(result.blob.name)}"'
    return Response(content=result.blob.data, media_type=result.blob.mime_type, headers=headers)


def _storage() -> LocalStorage:
    cfg = get_session().config.storage
    return LocalStorage(cfg.root, cfg.public_base_url)


# ── Status ────────────────────────────────────────────────────────────────────

@router.get("/health", response_model=HealthResponse)
async def health():
    from clipshare.utils.deps_check import check_ffmpeg
    session = get_session()
    ff = check_ffmpeg(session.config.engine.ffmpeg_path)
    return HealthResponse(
        status="ok", version=APP_VERSION, ffmpeg=ff.available,
        engine_loaded=session.engine_loaded,
    )


@router.get("/media-queue")
async def media_queue():
    return get_media_queue_status()


# ── Single-clip operations ────────────────────────────────────────────────────

@router.post("/media/trim")
async def api_trim(
    file: UploadFile = File(...),
    start: float = Form(...),
    end: float = Form(...),
    duration: float = Form(...),
):
    source = await _read_blob(file)
    result = await _run(trim_clip, source, TrimRange(start, end, duration))
    return _blob_response(result)


@router.post("/media/background-image")
async def api_background_image(
    audio: UploadFile = File(...),
    image: UploadFile = File(...),
):
    result = await _run(
        composite_image_under_audio, await _read_blob(audio), await _read_blob(image),
    )
    return _blob_response(result)


@router.post("/media/background-music")
async def api_background_music(
    video: UploadFile = File(...),
    audio: UploadFile = File(...),
):
    result = await _run(
        overlay_audio_under_video, await _read_blob(video), await _read_blob(audio),
    )
    return _blob_response(result)


@router.post("/media/edit")
async def api_edit(
    file: UploadFile = File(...),
    background: UploadFile | None = File(None),
    start: float | None = Form(None),
    end: float | None = Form(None),
    duration: float | None = Form(None),
):
    """Editor flow: optional trim, then optional background, as one request."""
    source = await _read_blob(file)
    trim = None
    if start is not None or end is not None:
        if duration is None:
            raise HTTPException(400, "duration is required when trimming")
        trim = TrimRange(start or 0.0, duration if end is None else end, duration)
    bg = await _read_blob(background) if background is not None else None
    result = await _run(edit_clip, source, trim, bg)
    return _blob_response(result)


# ── Merge & publish ───────────────────────────────────────────────────────────

@router.post("/media/merge")
async def api_merge(req: MergeRequest):
    """Merge stored clips by URL. Server-side paths are never read here."""
    bad = [u for u in req.urls if not is_remote_url(u)]
    if bad:
        raise HTTPException(400, f"Only http(s) clip URLs are accepted: {bad[0]}")
    result = await _run(merge_clips, req.urls, title=req.title, remote_only=True)
    return _blob_response(result, attachment=True)


@router.post("/media/publish", response_model=ClipRecordResponse)
async def api_publish(file: UploadFile = File(...)):
    """Store a processed clip and return the record the data layer keeps."""
    blob = await _read_blob(file)
    try:
        record = await _run(publish_clip, blob, _storage())
    except (ValueError, FileExistsError) as e:
        raise HTTPException(400, str(e)) from e
    return ClipRecordResponse(**record.to_dict())
