"""Editor flow used before upload: optional trim, then optional background."""

from __future__ import annotations

from clipshare.engine.errors import InvalidBackground
from clipshare.engine.session import ProgressCallback, TranscodeSession
from clipshare.pipeline.models import MediaBlob, OperationResult, Phase, TrimRange
from clipshare.pipeline.transforms import (
    composite_image_under_audio,
    overlay_audio_under_video,
    trim_clip,
)


def check_background(source: MediaBlob, background: MediaBlob) -> None:
    """Audio clips take an image background, video clips take background music."""
    if source.is_video:
        if background.family != "audio":
            raise InvalidBackground("Please select an audio file for video background")
    elif background.family != "image":
        raise InvalidBackground("Please select an image file for audio background")


def edit_clip(
    source: MediaBlob,
    trim: TrimRange | None = None,
    background: MediaBlob | None = None,
    *,
    session: TranscodeSession | None = None,
    progress_cb: ProgressCallback | None = None,
) -> OperationResult:
    """Apply the editor's choices to ``source`` and return the file to upload.

    A trim covering the whole source is skipped. Both inputs are validated
    before the first engine call, so a bad background never costs a trim.
    """
    if trim is not None:
        trim.validate()
    if background is not None:
        check_background(source, background)

    current = source
    warnings: list[str] = []
    phases: list[Phase] = []

    if trim is not None and not trim.is_noop:
        r = trim_clip(current, trim, session=session, progress_cb=progress_cb)
        current, warnings, phases = r.blob, warnings + r.warnings, phases + r.phases

    if background is not None:
        if source.is_video:
            r = overlay_audio_under_video(current, background, session=session, progress_cb=progress_cb)
        else:
            r = composite_image_under_audio(current, background, session=session, progress_cb=progress_cb)
        current, warnings, phases = r.blob, warnings + r.warnings, phases + r.phases

    return OperationResult(current, warnings, phases)
