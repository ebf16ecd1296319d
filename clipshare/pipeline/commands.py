"""Typed engine commands.

Each command knows its staged input names, its output name and how to turn
its fields into an ffmpeg argument vector. The engine adds the binary and the
global flags; these vectors contain only the per-operation arguments.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar


def fmt_seconds(value: float) -> str:
    """1.5 -> '1.5', 10.0 -> '10', 0.1 + 0.2 -> '0.3'."""
    text = f"{value:.6f}".rstrip("0").rstrip(".")
    return text or "0"


@dataclass(frozen=True)
class EngineCommand:
    kind: ClassVar[str] = "command"
    output: str

    @property
    def inputs(self) -> tuple[str, ...]:
        return ()

    def args(self) -> list[str]:
        raise NotImplementedError

    def describe(self) -> str:
        return f"{self.kind} {', '.join(self.inputs)} → {self.output}"


@dataclass(frozen=True)
class TrimCommand(EngineCommand):
    """Stream-copy the [start, end] window into a new container."""
    kind: ClassVar[str] = "trim"
    input: str = ""
    start: float = 0.0
    end: float = 0.0

    @property
    def inputs(self) -> tuple[str, ...]:
        return (self.input,)

    def args(self) -> list[str]:
        return [
            "-i", self.input,
            "-ss", fmt_seconds(self.start),
            "-to", fmt_seconds(self.end),
            "-c", "copy",
            self.output,
        ]


@dataclass(frozen=True)
class CompositeCommand(EngineCommand):
    """Loop a still image as the video track for as long as the audio plays."""
    kind: ClassVar[str] = "composite"
    audio: str = ""
    image: str = ""
    width: int = 1280
    height: int = 720
    x264_preset: str = "medium"
    crf: int = 23
    audio_bitrate: str = "192k"

    @property
    def inputs(self) -> tuple[str, ...]:
        return (self.audio, self.image)

    def filter_graph(self) -> str:
        return f"[1:v]scale={self.width}:{self.height},setsar=1:1,format=yuv420p[vout]"

    def args(self) -> list[str]:
        return [
            "-i", self.audio,
            "-loop", "1", "-i", self.image,
            "-filter_complex", self.filter_graph(),
            "-map", "[vout]",
            "-map", "0:a",
            "-shortest",
            "-c:v", "libx264",
            "-preset", self.x264_preset,
            "-tune", "stillimage",
            "-crf", str(self.crf),
            "-c:a", "aac",
            "-b:a", self.audio_bitrate,
            "-pix_fmt", "yuv420p",
            "-movflags", "+faststart",
            self.output,
        ]


@dataclass(frozen=True)
class OverlayCommand(EngineCommand):
    """Mix attenuated background audio under the video's own track, video copied."""
    kind: ClassVar[str] = "overlay"
    video: str = ""
    audio: str = ""
    volume: float = 0.3
    audio_bitrate: str = "192k"

    @property
    def inputs(self) -> tuple[str, ...]:
        return (self.video, self.audio)

    def filter_graph(self) -> str:
        return (
            f"[1:a]volume={fmt_seconds(self.volume)}[a1];"
            "[0:a][a1]amix=inputs=2:duration=first[aout]"
        )

    def args(self) -> list[str]:
        return [
            "-i", self.video,
            "-i", self.audio,
            "-filter_complex", self.filter_graph(),
            "-map", "0:v",
            "-map", "[aout]",
            "-c:v", "copy",
            "-c:a", "aac",
            "-b:a", self.audio_bitrate,
            self.output,
        ]


@dataclass(frozen=True)
class ConcatCommand(EngineCommand):
    """Concatenate the manifest's clips; video copied, audio normalized by re-encode."""
    kind: ClassVar[str] = "concat"
    manifest: str = ""
    clips: tuple[str, ...] = ()
    audio_bitrate: str = "192k"

    @property
    def inputs(self) -> tuple[str, ...]:
        return (self.manifest, *self.clips)

    def args(self) -> list[str]:
        return [
            "-f", "concat",
            "-safe", "0",
            "-i", self.manifest,
            "-c:v", "copy",
            "-c:a", "aac",
            "-b:a", self.audio_bitrate,
            self.output,
        ]
