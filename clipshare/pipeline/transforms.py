"""Single-clip transforms: trim, still-image background, background music.

All three follow the same protocol inside one session operation: stage the
inputs under role names ("input", "audio", "image", "video"), run exactly one
engine command, read the output back and let the session remove everything.
"""

from __future__ import annotations

from pathlib import PurePath

from clipshare.engine.session import ProgressCallback, TranscodeSession, get_session
from clipshare.pipeline.commands import CompositeCommand, OverlayCommand, TrimCommand
from clipshare.pipeline.models import MediaBlob, OperationResult, TrimRange
from clipshare.utils.logging import info

TRIM_PREFIX = "Failed to trim media"
COMPOSITE_PREFIX = "Failed to add background to audio"
OVERLAY_PREFIX = "Failed to add background music"

VIDEO_MIME = "video/mp4"

IMAGE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
    "image/bmp": ".bmp",
}


CONTAINER_EXTENSIONS = {
    "video/webm": ".webm",
    "video/quicktime": ".mov",
    "video/x-matroska": ".mkv",
    "audio/mp4": ".m4a",
    "audio/x-m4a": ".m4a",
    "audio/aac": ".aac",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/ogg": ".ogg",
    "audio/webm": ".webm",
    "audio/flac": ".flac",
}


def media_extension(blob: MediaBlob) -> str:
    """Staging extension: the container for known subtypes, else mp4 for video and mp3 for audio."""
    known = CONTAINER_EXTENSIONS.get(blob.mime_type.lower())
    if known:
        return known
    return ".mp4" if blob.is_video else ".mp3"


def image_extension(blob: MediaBlob) -> str:
    # ffmpeg's image demuxer picks the decoder from the extension
    return IMAGE_EXTENSIONS.get(blob.mime_type.lower(), ".jpg")


def _as_mp4_name(name: str, fallback: str) -> str:
    if not name:
        return fallback
    return str(PurePath(name).with_suffix(".mp4"))


def trim_clip(
    source: MediaBlob,
    trim: TrimRange,
    *,
    session: TranscodeSession | None = None,
    progress_cb: ProgressCallback | None = None,
) -> OperationResult:
    """Cut ``source`` to ``trim`` without re-encoding.

    Raises InvalidRange before touching the engine when the range is not
    inside the source. The result keeps the source MIME type and name.
    """
    trim.validate()
    session = session or get_session()
    ext = media_extension(source)
    command = TrimCommand(
        output=f"output{ext}", input=f"input{ext}", start=trim.start, end=trim.end,
    )

    with session.operation("trim", TRIM_PREFIX, progress_cb) as op:
        op.stage(command.input, source.data)
        op.execute(command)
        data = op.read_output(command.output)

    info(f"[trim] {source.name or 'clip'} {trim.start:g}s–{trim.end:g}s → {len(data)} bytes")
    return OperationResult(
        MediaBlob(data, source.mime_type, source.name), list(op.warnings), list(op.history),
    )


def composite_image_under_audio(
    audio: MediaBlob,
    image: MediaBlob,
    *,
    session: TranscodeSession | None = None,
    progress_cb: ProgressCallback | None = None,
) -> OperationResult:
    """Turn an audio clip into a video showing ``image`` for the whole track."""
    session = session or get_session()
    tc = session.config.transcode
    command = CompositeCommand(
        output="output.mp4",
        audio=f"audio{media_extension(audio)}",
        image=f"image{image_extension(image)}",
        width=tc.width,
        height=tc.height,
        x264_preset=tc.x264_preset,
        crf=tc.crf,
        audio_bitrate=tc.audio_bitrate,
    )

    with session.operation("composite", COMPOSITE_PREFIX, progress_cb) as op:
        op.stage(command.audio, audio.data)
        op.stage(command.image, image.data)
        op.execute(command)
        data = op.read_output(command.output)

    info(f"[composite] {audio.name or 'audio'} + {image.name or 'image'} → {len(data)} bytes")
    return OperationResult(
        MediaBlob(data, VIDEO_MIME, _as_mp4_name(audio.name, "output.mp4")),
        list(op.warnings), list(op.history),
    )


def overlay_audio_under_video(
    video: MediaBlob,
    background_audio: MediaBlob,
    *,
    session: TranscodeSession | None = None,
    progress_cb: ProgressCallback | None = None,
) -> OperationResult:
    """Mix quiet background music under the video's own audio; length stays the video's."""
    session = session or get_session()
    tc = session.config.transcode
    command = OverlayCommand(
        output="output.mp4",
        video=f"video{media_extension(video)}",
        audio=f"audio{media_extension(background_audio)}",
        volume=tc.background_volume,
        audio_bitrate=tc.audio_bitrate,
    )

    with session.operation("overlay", OVERLAY_PREFIX, progress_cb) as op:
        op.stage(command.video, video.data)
        op.stage(command.audio, background_audio.data)
        op.execute(command)
        data = op.read_output(command.output)

    info(f"[overlay] {video.name or 'video'} + {background_audio.name or 'music'} → {len(data)} bytes")
    return OperationResult(
        MediaBlob(data, VIDEO_MIME, video.name or "output.mp4"),
        list(op.warnings), list(op.history),
    )
