"""Transcode session: the single way pipeline operations reach the engine.

A session wraps an EngineLoader and adds what one engine shared by several
callers needs:

- ``with_engine()`` returns the (lazily loaded) engine handle.
- ``operation()`` runs one staged operation through the phase state machine
  idle → staging → executing → reading → cleaning_up → done|failed, removes
  every staged file on every exit path and wraps failures exactly once.
- one in-flight operation per session (``concurrency: queue``), or immediate
  rejection of a second one (``reject``), or no exclusion (``none``).
"""

from __future__ import annotations

import subprocess
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from clipshare.engine.errors import (
    CommandFailed,
    EngineBusy,
    OperationFailed,
    OperationTimeout,
    OutputReadFailed,
    PipelineError,
    StageWriteFailed,
)
from clipshare.engine.handle import EngineHandle
from clipshare.engine.loader import EngineLoader, get_loader
from clipshare.pipeline.commands import EngineCommand
from clipshare.pipeline.models import Phase
from clipshare.utils.config import AppConfig, load_config
from clipshare.utils.logging import debug, error, warn, pipeline_log, set_operation_id

ProgressCallback = Callable[[Phase], None]


def extract_ffmpeg_error(stderr_text: str) -> str:
    """Extract meaningful error from ffmpeg stderr (strip banner/config)."""
    err_lines = stderr_text.strip().split("\n")
    useful = []
    skip_banner = True
    for line in err_lines:
        if skip_banner:
            if any(x in line for x in (
                "--enable-", "--disable-", "configuration:", "built with",
                "ffmpeg version", "Copyright",
            )):
                continue
            if line.strip().startswith("lib") and "/" in line:
                continue
            skip_banner = False
        useful.append(line)
    return "\n".join(useful[-15:]) if useful else stderr_text[-500:]


class EngineOperation:
    """One operation's view of the engine: staged names, phase, warnings."""

    def __init__(
        self,
        engine: EngineHandle,
        name: str,
        *,
        timeout: float | None = None,
        progress_cb: ProgressCallback | None = None,
    ):
        self.engine = engine
        self.name = name
        self.timeout = timeout
        self.progress_cb = progress_cb
        self.phase = Phase.idle
        self.history: list[Phase] = [Phase.idle]
        self.staged: list[str] = []
        self.warnings: list[str] = []
        self.failed_phase: Phase | None = None

    def _enter(self, phase: Phase) -> None:
        if phase == self.phase:
            return
        self.phase = phase
        self.history.append(phase)
        pipeline_log(f"{self.name}: {phase.value}")
        if self.progress_cb:
            self.progress_cb(phase)

    def _track(self, name: str) -> None:
        if name not in self.staged:
            self.staged.append(name)

    def begin_staging(self) -> None:
        """Mark the start of input preparation, before anything is written."""
        self._enter(Phase.staging)

    def stage(self, name: str, data: bytes) -> str:
        self._enter(Phase.staging)
        # Tracked before the write so a partial file is still removed
        self._track(name)
        try:
            self.engine.write_file(name, data)
        except (OSError, ValueError) as e:
            raise StageWriteFailed(name, str(e)) from e
        pipeline_log(f"{self.name}: staged {name} ({len(data)} bytes)")
        return name

    def execute(self, command: EngineCommand) -> None:
        self._enter(Phase.executing)
        self._track(command.output)
        try:
            r = self.engine.run(
                command.args(), timeout=self.timeout,
                description=f"{self.name}: {command.describe()}",
            )
        except subprocess.TimeoutExpired as e:
            raise OperationTimeout(self.timeout or 0) from e
        except OSError as e:
            raise CommandFailed(message=f"Failed to start ffmpeg: {e}") from e
        if r.returncode != 0:
            raise CommandFailed(extract_ffmpeg_error(r.stderr or ""), r.returncode)

    def read_output(self, name: str) -> bytes:
        self._enter(Phase.reading)
        self._track(name)
        try:
            data = self.engine.read_file(name)
        except (OSError, ValueError) as e:
            raise OutputReadFailed(name) from e
        if not data:
            raise OutputReadFailed(name)
        return data

    def cleanup(self) -> list[str]:
        """Remove every staged file; failures become warnings, never errors."""
        self._enter(Phase.cleaning_up)
        for name in self.staged:
            try:
                if self.engine.exists(name):
                    self.engine.unlink(name)
            except (OSError, ValueError) as e:
                msg = f"Could not remove {name}: {e}"
                warn(f"[{self.name}] {msg}")
                pipeline_log(f"{self.name}: {msg}", level="warning")
                self.warnings.append(msg)
        return self.warnings

    def fail(self) -> None:
        self.failed_phase = self.phase
        self.cleanup()
        self._enter(Phase.failed)

    def complete(self) -> None:
        self.cleanup()
        self._enter(Phase.done)


class TranscodeSession:
    """Shared engine access for all pipeline operations."""

    def __init__(self, loader: EngineLoader | None = None, *, config: AppConfig | None = None):
        self.config = config or load_config()
        self.loader = loader or EngineLoader(self.config.engine)
        self._busy = threading.Lock()

    @property
    def engine_loaded(self) -> bool:
        return self.loader.loaded

    def with_engine(self) -> EngineHandle:
        return self.loader.acquire()

    def _claim(self) -> bool:
        mode = self.config.engine.concurrency
        if mode == "none":
            return False
        if mode == "reject":
            if not self._busy.acquire(blocking=False):
                raise EngineBusy()
            return True
        self._busy.acquire()
        return True

    @contextmanager
    def operation(
        self,
        name: str,
        failure_prefix: str,
        progress_cb: ProgressCallback | None = None,
    ) -> Iterator[EngineOperation]:
        """Run one operation; cleanup always runs, failures surface once as OperationFailed."""
        claimed = self._claim()
        set_operation_id()
        t0 = time.monotonic()
        try:
            try:
                engine = self.with_engine()
            except PipelineError as e:
                error(f"[{name}] {failure_prefix}: {e}")
                raise OperationFailed(failure_prefix, e, operation=name, phase=Phase.idle.value) from e

            timeout = self.config.engine.command_timeout or None
            op = EngineOperation(engine, name, timeout=timeout, progress_cb=progress_cb)
            pipeline_log(f"=== {name} start ===")
            try:
                yield op
            except Exception as e:
                op.fail()
                phase = op.failed_phase.value if op.failed_phase else ""
                error(f"[{name}] {failure_prefix}: {e}")
                pipeline_log(f"{name} FAILED in {phase}: {e}", level="error")
                if isinstance(e, OperationFailed):
                    raise
                raise OperationFailed(
                    failure_prefix, e, operation=name, phase=phase, warnings=op.warnings,
                ) from e
            op.complete()
            debug(f"[{name}] done in {time.monotonic() - t0:.1f}s")
            pipeline_log(f"=== {name} done ({time.monotonic() - t0:.1f}s) ===")
        finally:
            if claimed:
                self._busy.release()


# ── Process-wide default ─────────────────────────────────────────────────────

_session: TranscodeSession | None = None
_session_lock = threading.Lock()


def get_session() -> TranscodeSession:
    global _session
    with _session_lock:
        if _session is None:
            _session = TranscodeSession(get_loader())
        return _session


def set_session(session: TranscodeSession | None) -> None:
    global _session
    with _session_lock:
        _session = session
