"""Transient value types flowing through the media pipeline."""

from __future__ import annotations

import math
import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from clipshare.engine.errors import InvalidRange


class Phase(str, Enum):
    """Operation state: idle → staging → executing → reading → cleaning_up → done|failed."""
    idle = "idle"
    staging = "staging"
    executing = "executing"
    reading = "reading"
    cleaning_up = "cleaning_up"
    done = "done"
    failed = "failed"


@dataclass(frozen=True)
class MediaBlob:
    """Opaque media bytes with a MIME type and a logical file name."""
    data: bytes = field(repr=False)
    mime_type: str
    name: str = ""

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def family(self) -> str:
        major = self.mime_type.split("/", 1)[0].lower()
        if major in ("video", "audio", "image"):
            return major
        return "other"

    @property
    def is_video(self) -> bool:
        return "video" in self.mime_type.lower()

    @classmethod
    def from_path(cls, path: str | Path, mime_type: str | None = None) -> MediaBlob:
        p = Path(path)
        if mime_type is None:
            mime_type = mimetypes.guess_type(p.name)[0] or "application/octet-stream"
        return cls(data=p.read_bytes(), mime_type=mime_type, name=p.name)

    def write_to(self, path: str | Path) -> Path:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(self.data)
        return p


@dataclass(frozen=True)
class TrimRange:
    """Seconds [start, end] inside a source of ``source_duration`` seconds."""
    start: float
    end: float
    source_duration: float

    def validate(self) -> TrimRange:
        if not all(math.isfinite(v) for v in (self.start, self.end, self.source_duration)):
            raise InvalidRange(
                f"Trim bounds must be finite (got {self.start:g}s to {self.end:g}s of {self.source_duration:g}s)"
            )
        if self.start < 0:
            raise InvalidRange(f"Trim start must not be negative (got {self.start:g}s)")
        if self.start > self.end:
            raise InvalidRange(f"Trim start {self.start:g}s is after end {self.end:g}s")
        if self.end > self.source_duration:
            raise InvalidRange(
                f"Trim end {self.end:g}s exceeds source duration {self.source_duration:g}s"
            )
        return self

    @property
    def is_noop(self) -> bool:
        return self.start == 0 and self.end == self.source_duration

    @property
    def length(self) -> float:
        return self.end - self.start


@dataclass(frozen=True)
class ConcatManifest:
    """Ordered concat demuxer input: one ``file 'name'`` line per clip."""
    names: tuple[str, ...]

    @classmethod
    def for_clips(cls, count: int, extension: str = "mp4") -> ConcatManifest:
        return cls(tuple(clip_name(i, extension) for i in range(count)))

    @staticmethod
    def _quote(name: str) -> str:
        return "'" + name.replace("'", "'\\''") + "'"

    def render(self) -> str:
        return "\n".join(f"file {self._quote(n)}" for n in self.names)

    def encode(self) -> bytes:
        return self.render().encode("utf-8")


def clip_name(index: int, extension: str = "mp4") -> str:
    return f"clip{index}.{extension.lstrip('.')}"


@dataclass
class OperationResult:
    """Output of one pipeline operation plus the non-fatal cleanup warnings."""
    blob: MediaBlob
    warnings: list[str] = field(default_factory=list)
    phases: list[Phase] = field(default_factory=list)
