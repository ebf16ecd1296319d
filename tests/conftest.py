"""Shared test fixtures.

Provides:
- FakeEngine: an EngineHandle over a real scratch dir whose ``run`` records
  the argument vector and writes the output file instead of calling ffmpeg
- FakeLoader / session fixtures wired through TranscodeSession
- FastAPI TestClient with the fake session and isolated storage
- Sample media blobs
"""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from clipshare.engine.errors import EngineLoadFailed
from clipshare.engine.handle import EngineHandle


# ── Fake engine ──────────────────────────────────────────────────────────────

class FakeEngine(EngineHandle):
    """Scratch-dir engine that fakes ffmpeg runs.

    Failure modes:
        returncode / stderr  — non-zero exit with that stderr
        raise_timeout        — subprocess.TimeoutExpired from run()
        write_output=False   — exit 0 but no output file
        fail_unlink          — names whose unlink raises OSError
        fail_write           — names whose write raises OSError
    """

    def __init__(self, workdir: Path):
        super().__init__("ffmpeg", "ffmpeg version 6.1-fake", workdir)
        self.calls: list[list[str]] = []
        self.timeouts: list[float | None] = []
        self.files_at_run: list[set[str]] = []
        self.contents_at_run: list[dict[str, bytes]] = []
        self.returncode = 0
        self.stderr = ""
        self.raise_timeout = False
        self.write_output = True
        self.output_data = b"FAKE-OUTPUT"
        self.fail_unlink: set[str] = set()
        self.fail_write: set[str] = set()
        self.on_run = None

    def write_file(self, name: str, data: bytes) -> None:
        if name in self.fail_write:
            # leave a partial file behind like a failed write would
            self._path(name).write_bytes(data[:1])
            raise OSError(28, "No space left on device")
        super().write_file(name, data)

    def unlink(self, name: str) -> None:
        if name in self.fail_unlink:
            raise OSError(16, "Device or resource busy")
        super().unlink(name)

    def run(self, args, *, timeout=None, description=""):
        self.calls.append(list(args))
        self.timeouts.append(timeout)
        files = self.list_files()
        self.files_at_run.append(files)
        self.contents_at_run.append({n: self.read_file(n) for n in files})
        if self.on_run:
            self.on_run(args)
        if self.raise_timeout:
            raise subprocess.TimeoutExpired(self.build_argv(args), timeout or 0)
        if self.returncode != 0:
            return subprocess.CompletedProcess(self.build_argv(args), self.returncode, "", self.stderr)
        if self.write_output:
            (self.workdir / args[-1]).write_bytes(self.output_data)
        return subprocess.CompletedProcess(self.build_argv(args), 0, "", "")


class FakeLoader:
    """Stands in for EngineLoader: counts loads, optionally fails them."""

    def __init__(self, engine: FakeEngine):
        self.engine = engine
        self.load_count = 0
        self.fail_with: Exception | None = None
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    def acquire(self) -> FakeEngine:
        if not self._loaded:
            self.load_count += 1
            if self.fail_with is not None:
                raise self.fail_with
            self._loaded = True
        return self.engine


# ── Fixtures ─────────────────────────────────────────────────────────────────

@pytest.fixture
def engine(tmp_path):
    workdir = tmp_path / "engine"
    workdir.mkdir()
    return FakeEngine(workdir)


@pytest.fixture
def loader(engine):
    return FakeLoader(engine)


@pytest.fixture
def app_config(tmp_path):
    from clipshare.utils.config import AppConfig
    cfg = AppConfig()
    cfg.storage.root = str(tmp_path / "storage")
    cfg.storage.public_base_url = "https://cdn.example.test/clips"
    return cfg


@pytest.fixture
def session(loader, app_config):
    from clipshare.engine.session import TranscodeSession
    return TranscodeSession(loader, config=app_config)


@pytest.fixture
def failing_loader(loader):
    loader.fail_with = EngineLoadFailed("Failed to launch ffmpeg: boom")
    return loader


@pytest.fixture
def audio_blob():
    from clipshare.pipeline.models import MediaBlob
    return MediaBlob(b"ID3-fake-mp3-bytes", "audio/mpeg", "voice.mp3")


@pytest.fixture
def video_blob():
    from clipshare.pipeline.models import MediaBlob
    return MediaBlob(b"\x00\x00\x00\x18ftypmp42-fake", "video/mp4", "holiday.mp4")


@pytest.fixture
def image_blob():
    from clipshare.pipeline.models import MediaBlob
    return MediaBlob(b"\x89PNG-fake", "image/png", "cover.png")


# ── TestClient ───────────────────────────────────────────────────────────────

@pytest.fixture
def client(session, tmp_path, monkeypatch):
    """FastAPI TestClient using the fake-engine session."""
    from clipshare.engine.session import set_session
    monkeypatch.chdir(tmp_path)
    set_session(session)
    from main import app
    try:
        with TestClient(app, raise_server_exceptions=False) as c:
            yield c
    finally:
        set_session(None)
