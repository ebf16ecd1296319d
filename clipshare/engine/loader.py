"""Lazy, once-only engine loading and the byte-loading helper.

The engine is located and verified on first use and cached for the lifetime
of the process. Concurrent first callers wait for the in-flight load instead
of starting a second one. A failed load caches nothing, so a later call
retries from scratch.
"""

from __future__ import annotations

import atexit
import shutil
import subprocess
import tempfile
import threading
from pathlib import Path

import httpx

from clipshare.engine.errors import (
    EngineInitFailed,
    EngineLoadFailed,
    EnvironmentUnsupported,
    FetchFailed,
)
from clipshare.engine.handle import EngineHandle
from clipshare.utils.config import EngineConfig, load_config
from clipshare.utils.deps_check import FFMPEG_INSTALL_HINT
from clipshare.utils.logging import info, error, pipeline_log
from clipshare.utils.media_executor import run_media_subprocess


class EngineLoader:
    """Creates the EngineHandle exactly once and hands out the cached instance."""

    def __init__(self, config: EngineConfig | None = None):
        self.config = config or EngineConfig()
        self._handle: EngineHandle | None = None
        self._lock = threading.Lock()
        self.load_count = 0

    @property
    def loaded(self) -> bool:
        return self._handle is not None

    def acquire(self) -> EngineHandle:
        handle = self._handle
        if handle is not None:
            return handle
        with self._lock:
            if self._handle is None:
                self._handle = self._load()
            return self._handle

    def _resolve_binary(self) -> str:
        candidate = self.config.ffmpeg_path or "ffmpeg"
        path = shutil.which(candidate)
        if not path:
            raise EnvironmentUnsupported(
                f"ffmpeg executable not found ({candidate})", hint=FFMPEG_INSTALL_HINT,
            )
        return path

    def _load(self) -> EngineHandle:
        self.load_count += 1
        binary = self._resolve_binary()
        info(f"[engine] Loading ffmpeg from {binary}")

        try:
            r = run_media_subprocess(
                [binary, "-version"], tool="ffmpeg", description="engine version check",
                timeout=self.config.load_timeout, heavy=False,
            )
        except subprocess.TimeoutExpired as e:
            error(f"[engine] ffmpeg did not answer within {self.config.load_timeout:g}s")
            raise EngineLoadFailed(
                f"Failed to launch ffmpeg: no answer within {self.config.load_timeout:g}s"
            ) from e
        except OSError as e:
            error(f"[engine] Failed to launch {binary}: {e}")
            raise EngineLoadFailed(f"Failed to launch ffmpeg: {e}") from e

        banner = (r.stdout or "").strip()
        if r.returncode != 0 or not banner.startswith("ffmpeg version"):
            detail = (r.stderr or banner or "").strip()[-300:]
            raise EngineInitFailed(
                f"ffmpeg did not report ready (exit={r.returncode}){': ' + detail if detail else ''}"
            )
        version = banner.splitlines()[0]

        try:
            workdir = Path(tempfile.mkdtemp(
                prefix="clipshare-engine-", dir=self.config.scratch_dir or None,
            ))
        except OSError as e:
            raise EngineInitFailed(f"Cannot create engine scratch directory: {e}") from e
        atexit.register(shutil.rmtree, workdir, ignore_errors=True)

        pipeline_log(f"Engine ready: {version} (scratch={workdir})")
        info(f"[engine] Ready: {version}")
        return EngineHandle(binary, version, workdir)


# ── Process-wide default ─────────────────────────────────────────────────────

_default_loader: EngineLoader | None = None
_default_lock = threading.Lock()


def get_loader() -> EngineLoader:
    global _default_loader
    with _default_lock:
        if _default_loader is None:
            _default_loader = EngineLoader(load_config().engine)
        return _default_loader


def acquire_engine() -> EngineHandle:
    """Return the process-wide engine, loading it on first use."""
    return get_loader().acquire()


# ── Byte loading ─────────────────────────────────────────────────────────────

def is_remote_url(source: str) -> bool:
    return source.lower().startswith(("http://", "https://"))


def fetch_file(
    source: bytes | str | Path, *, timeout: float = 120, allow_local: bool = True,
) -> bytes:
    """Load bytes for staging from raw bytes, a local path or an http(s) URL.

    With ``allow_local=False`` only http(s) URLs are fetched; anything else
    raises FetchFailed without touching the filesystem.
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        return bytes(source)

    ref = str(source)
    if isinstance(source, str) and is_remote_url(source):
        try:
            with httpx.Client(timeout=timeout, follow_redirects=True) as client:
                r = client.get(source)
                r.raise_for_status()
                return r.content
        except httpx.HTTPStatusError as e:
            raise FetchFailed(ref, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise FetchFailed(ref, str(e) or e.__class__.__name__) from e

    if not allow_local:
        raise FetchFailed(ref, "only http(s) URLs are accepted")
    try:
        return Path(source).read_bytes()
    except OSError as e:
        raise FetchFailed(ref, e.strerror or str(e)) from e
