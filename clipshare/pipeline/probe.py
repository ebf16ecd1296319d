"""Metadata probe (ffprobe), kept outside the transcoding operations."""

from __future__ import annotations

import json
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from clipshare.pipeline.models import MediaBlob
from clipshare.utils.logging import error
from clipshare.utils.media_executor import run_media_subprocess


@dataclass
class ProbeResult:
    width: int = 0
    height: int = 0
    duration: float = 0
    has_audio: bool = False
    has_video: bool = False
    codec: str = ""

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"


def _ffprobe_binary(ffprobe_path: str = "") -> str:
    return shutil.which(ffprobe_path or "ffprobe") or "ffprobe"


def probe_media(path: Path, ffprobe_path: str = "") -> ProbeResult:
    """Probe media file with ffprobe — works for images, video, audio."""
    cmd = [
        _ffprobe_binary(ffprobe_path), "-v", "quiet", "-print_format", "json",
        "-show_format", "-show_streams", str(path),
    ]
    try:
        r = run_media_subprocess(
            cmd, tool="ffprobe", description=f"probe {path.name}",
            timeout=30, heavy=False,
        )
        data = json.loads(r.stdout or "{}")
    except Exception as e:
        error(f"ffprobe failed: {e}")
        return ProbeResult()

    result = ProbeResult()
    fmt = data.get("format", {})

    for s in data.get("streams", []):
        if s.get("codec_type") == "video" and not result.has_video:
            result.has_video = True
            result.width = int(s.get("width", 0))
            result.height = int(s.get("height", 0))
            result.codec = s.get("codec_name", "")
        elif s.get("codec_type") == "audio":
            result.has_audio = True
            if not result.codec:
                result.codec = s.get("codec_name", "")

    try:
        result.duration = float(fmt.get("duration", 0))
    except (TypeError, ValueError):
        result.duration = 0

    return result


def probe_blob(blob: MediaBlob, ffprobe_path: str = "") -> ProbeResult:
    suffix = Path(blob.name).suffix if blob.name else ""
    with tempfile.TemporaryDirectory(prefix="clipshare-probe-") as tmp:
        path = Path(tmp) / f"probe{suffix}"
        path.write_bytes(blob.data)
        return probe_media(path, ffprobe_path)


def probe_blob_duration(blob: MediaBlob) -> float:
    return probe_blob(blob).duration
