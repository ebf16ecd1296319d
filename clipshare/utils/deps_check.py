"""Dependency self-check with helpful installation hints."""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass

from clipshare.utils.logging import info, warn, error

FFMPEG_INSTALL_HINT = (
    "Install: sudo apt-get install ffmpeg  (or https://ffmpeg.org/download.html), "
    "or set engine.ffmpeg_path in config.yaml"
)


@dataclass
class DepStatus:
    name: str
    available: bool
    version: str = ""
    hint: str = ""


def check_ffmpeg(binary: str = "") -> DepStatus:
    path = shutil.which(binary or "ffmpeg")
    if not path:
        return DepStatus("ffmpeg", False, hint=FFMPEG_INSTALL_HINT)
    try:
        r = subprocess.run([path, "-version"], capture_output=True, text=True, timeout=5)
        ver = r.stdout.split("\n")[0] if r.stdout else "unknown"
        return DepStatus("ffmpeg", True, version=ver)
    except (OSError, subprocess.SubprocessError):
        return DepStatus("ffmpeg", False, hint="ffmpeg found but failed to run")


def check_ffprobe(binary: str = "") -> DepStatus:
    path = shutil.which(binary or "ffprobe")
    if not path:
        return DepStatus("ffprobe", False, hint="Usually bundled with ffmpeg")
    return DepStatus("ffprobe", True)


def check_all(ffmpeg_path: str = "", ffprobe_path: str = "") -> list[DepStatus]:
    return [check_ffmpeg(ffmpeg_path), check_ffprobe(ffprobe_path)]


def print_dep_status(deps: list[DepStatus], strict: bool = False) -> bool:
    all_ok = True
    for d in deps:
        if d.available:
            info(f"[green]✓[/green] {d.name}: {d.version or 'OK'}")
        else:
            if strict:
                error(f"{d.name}: NOT FOUND — {d.hint}")
                all_ok = False
            else:
                warn(f"{d.name}: not found — {d.hint}")
    return all_ok
