"""Loaded engine: the ffmpeg binary plus its private scratch filesystem.

Commands run with the scratch directory as working directory and refer to
staged inputs and outputs by bare file name, so nothing outside the directory
is ever read or written by an engine command.
"""

from __future__ import annotations

import subprocess
from pathlib import Path

from clipshare.utils.logging import debug, pipeline_log
from clipshare.utils.media_executor import run_media_subprocess

ENGINE_FLAGS = ["-hide_banner", "-nostdin", "-y"]


class EngineHandle:
    """Handle to a verified ffmpeg binary and its scratch directory."""

    def __init__(self, binary: str, version: str, workdir: Path):
        self.binary = binary
        self.version = version
        self.workdir = Path(workdir)

    def __repr__(self) -> str:
        return f"EngineHandle(binary={self.binary!r}, workdir={str(self.workdir)!r})"

    # ── Virtual filesystem ───────────────────────────────────────────────────

    def _path(self, name: str) -> Path:
        if not name or name in (".", "..") or "/" in name or "\\" in name:
            raise ValueError(f"invalid engine file name: {name!r}")
        return self.workdir / name

    def write_file(self, name: str, data: bytes) -> None:
        self._path(name).write_bytes(data)
        debug(f"[engine] wrote {name} ({len(data)} bytes)")

    def read_file(self, name: str) -> bytes:
        return self._path(name).read_bytes()

    def exists(self, name: str) -> bool:
        return self._path(name).is_file()

    def unlink(self, name: str) -> None:
        self._path(name).unlink()

    def list_files(self) -> set[str]:
        return {p.name for p in self.workdir.iterdir() if p.is_file()}

    # ── Commands ─────────────────────────────────────────────────────────────

    def build_argv(self, args: list[str]) -> list[str]:
        return [self.binary, *ENGINE_FLAGS, *args]

    def run(
        self,
        args: list[str],
        *,
        timeout: float | None = None,
        description: str = "",
    ) -> subprocess.CompletedProcess:
        """Run one ffmpeg invocation inside the scratch directory.

        Raises subprocess.TimeoutExpired when ``timeout`` elapses; the child is
        killed by subprocess.run before the exception propagates.
        """
        argv = self.build_argv(args)
        pipeline_log(f"Engine command: {' '.join(argv)}")
        return run_media_subprocess(
            argv,
            tool="ffmpeg",
            description=description or "engine command",
            timeout=timeout,
            heavy=True,
            cwd=str(self.workdir),
        )
