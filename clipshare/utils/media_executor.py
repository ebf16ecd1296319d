"""Runs every ffmpeg/ffprobe subprocess under one process-wide limit.

Engine commands are "heavy": they wait on a shared semaphore and run under
nice/ionice. Version checks and probes are light and start immediately.

ENV configuration (overrides the ``rendering`` section of config.yaml):
    MAX_MEDIA_JOBS      — concurrent heavy jobs (default 1)
    FFMPEG_THREADS      — -threads value injected into ffmpeg (default 2)
    MEDIA_NICE          — nice value for heavy jobs (default 10, Linux only)
    MEDIA_IONICE_CLASS  — ionice class (default 2, Linux only)
    MEDIA_IONICE_LEVEL  — ionice level (default 7, Linux only)
"""

from __future__ import annotations

import itertools
import os
import platform
import shutil
import subprocess
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from clipshare.utils.logging import debug, pipeline_log

MAX_MEDIA_JOBS: int = int(os.environ.get("MAX_MEDIA_JOBS", "1"))
FFMPEG_THREADS: int = int(os.environ.get("FFMPEG_THREADS", "2"))
MEDIA_NICE: int = int(os.environ.get("MEDIA_NICE", "10"))
MEDIA_IONICE_CLASS: int = int(os.environ.get("MEDIA_IONICE_CLASS", "2"))
MEDIA_IONICE_LEVEL: int = int(os.environ.get("MEDIA_IONICE_LEVEL", "7"))

IS_LINUX: bool = platform.system() == "Linux"

MEDIA_TOOLS = ("ffmpeg", "ffprobe")

_semaphore: threading.Semaphore = threading.Semaphore(MAX_MEDIA_JOBS)


def configure_media_executor(
    ffmpeg_threads: int = 0,
    nice: int | None = None,
    max_concurrent: int = 0,
) -> None:
    """Apply config.yaml rendering settings. Environment variables win when set."""
    global FFMPEG_THREADS, MEDIA_NICE, MAX_MEDIA_JOBS, _semaphore
    if ffmpeg_threads > 0 and "FFMPEG_THREADS" not in os.environ:
        FFMPEG_THREADS = ffmpeg_threads
    if nice is not None and "MEDIA_NICE" not in os.environ:
        MEDIA_NICE = max(0, min(19, nice))
    if max_concurrent > 0 and "MAX_MEDIA_JOBS" not in os.environ:
        MAX_MEDIA_JOBS = max_concurrent
        _semaphore = threading.Semaphore(MAX_MEDIA_JOBS)
    debug(f"[media-exec] threads={FFMPEG_THREADS} nice={MEDIA_NICE} max_jobs={MAX_MEDIA_JOBS}")


# ── Live job table ────────────────────────────────────────────────────────────

class MediaJobStatus(str, Enum):
    queued = "queued"
    running = "running"


@dataclass
class MediaJob:
    id: str
    tool: str
    description: str
    status: MediaJobStatus = MediaJobStatus.queued
    created_at: float = field(default_factory=time.monotonic)


_jobs: dict[str, MediaJob] = {}
_jobs_lock = threading.Lock()
_job_ids = itertools.count(1)
_totals = {"done": 0, "failed": 0}


def _register(tool: str, description: str) -> MediaJob:
    with _jobs_lock:
        job = MediaJob(id=f"{tool}-{next(_job_ids)}", tool=tool, description=description)
        _jobs[job.id] = job
    return job


def _finish(job: MediaJob, ok: bool) -> None:
    with _jobs_lock:
        _jobs.pop(job.id, None)
        _totals["done" if ok else "failed"] += 1


def get_media_queue_status() -> dict[str, Any]:
    """Snapshot for ``GET /api/media-queue``."""
    with _jobs_lock:
        jobs = list(_jobs.values())
        totals = dict(_totals)
    return {
        "max_concurrent": MAX_MEDIA_JOBS,
        "ffmpeg_threads": FFMPEG_THREADS,
        "nice": MEDIA_NICE,
        "queued": sum(1 for j in jobs if j.status == MediaJobStatus.queued),
        "running": sum(1 for j in jobs if j.status == MediaJobStatus.running),
        "completed": totals["done"],
        "failed": totals["failed"],
        "jobs": [
            {"id": j.id, "tool": j.tool, "description": j.description, "status": j.status.value}
            for j in jobs
        ],
    }


# ── Command shaping ───────────────────────────────────────────────────────────

def _build_nice_prefix() -> list[str]:
    if not IS_LINUX:
        return []
    prefix: list[str] = []
    if MEDIA_NICE > 0 and shutil.which("nice"):
        prefix += ["nice", "-n", str(MEDIA_NICE)]
    if shutil.which("ionice"):
        prefix += ["ionice", "-c", str(MEDIA_IONICE_CLASS), "-n", str(MEDIA_IONICE_LEVEL)]
    return prefix


def _tool_name(arg0: str) -> str:
    """'/usr/local/bin/ffmpeg' -> 'ffmpeg', 'ffmpeg.exe' -> 'ffmpeg'."""
    return Path(arg0).stem.lower()


def inject_ffmpeg_thread_flags(cmd: list[str]) -> list[str]:
    """Return a copy of an ffmpeg argv with ``-threads`` after the binary.

    Commands that already choose a thread count, version checks and
    non-ffmpeg tools pass through unchanged. A filter graph also gets
    ``-filter_complex_threads``.
    """
    if not cmd or _tool_name(cmd[0]) != "ffmpeg":
        return list(cmd)
    if "-threads" in cmd or "-version" in cmd:
        return list(cmd)
    t = str(FFMPEG_THREADS)
    flags = ["-threads", t]
    if "-filter_complex" in cmd:
        flags += ["-filter_complex_threads", t]
    return [cmd[0], *flags, *cmd[1:]]


# ── Runner ────────────────────────────────────────────────────────────────────

def run_media_subprocess(
    cmd: list[str],
    *,
    description: str = "",
    tool: str = "ffmpeg",
    timeout: float | None = None,
    heavy: bool = True,
    **subprocess_kwargs: Any,
) -> subprocess.CompletedProcess:
    """Run ``cmd`` with captured text output under the executor's limits.

    Heavy jobs wait for a semaphore slot and get the nice/ionice prefix.
    ``subprocess_kwargs`` go to ``subprocess.run`` (the engine passes ``cwd``).
    Raises subprocess.TimeoutExpired and OSError unchanged.
    """
    if tool in MEDIA_TOOLS:
        cmd = inject_ffmpeg_thread_flags(cmd)
    full_cmd = (_build_nice_prefix() if heavy else []) + cmd
    desc = description or f"{tool} job"
    job = _register(tool, desc)

    sem = _semaphore
    acquired = False
    ok = False
    try:
        if heavy:
            pipeline_log(f"Queued: {desc} (max_concurrent={MAX_MEDIA_JOBS})")
            sem.acquire()
            acquired = True
        job.status = MediaJobStatus.running
        t0 = time.monotonic()
        result = subprocess.run(
            full_cmd, capture_output=True, text=True, timeout=timeout, **subprocess_kwargs,
        )
        elapsed = time.monotonic() - t0
        ok = result.returncode == 0
        if ok:
            debug(f"[media-exec] {desc}: done ({elapsed:.1f}s)")
            pipeline_log(f"Done: {desc} ({elapsed:.1f}s)")
        else:
            pipeline_log(f"Failed: {desc} (exit={result.returncode}, {elapsed:.1f}s)", level="error")
        return result
    except subprocess.TimeoutExpired:
        pipeline_log(f"Timeout: {desc} ({timeout}s)", level="error")
        raise
    except OSError as e:
        pipeline_log(f"Error: {desc}: {e}", level="error")
        raise
    finally:
        if acquired:
            sem.release()
        _finish(job, ok)
