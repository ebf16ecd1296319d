"""Batch merge: download stored clips in order and concatenate them into one video."""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from pathlib import Path

from clipshare.engine.errors import EmptyInput
from clipshare.engine.loader import fetch_file
from clipshare.engine.session import ProgressCallback, TranscodeSession, get_session
from clipshare.pipeline.commands import ConcatCommand
from clipshare.pipeline.models import ConcatManifest, MediaBlob, OperationResult, clip_name
from clipshare.utils.logging import info, debug

MERGE_PREFIX = "Failed to merge clips"
MANIFEST_NAME = "concat.txt"

ClipRef = str | Path
Fetcher = Callable[[ClipRef], bytes]


def merged_filename(title: str = "") -> str:
    """Download name for a merged post video: ``merged_<title>.mp4``."""
    safe = re.sub(r"[^\w\- ]", "_", title).strip()[:60]
    return f"merged_{safe or 'video'}.mp4"


def merge_clips(
    clip_refs: Sequence[ClipRef],
    *,
    session: TranscodeSession | None = None,
    fetcher: Fetcher | None = None,
    title: str = "",
    progress_cb: ProgressCallback | None = None,
    remote_only: bool = False,
) -> OperationResult:
    """Concatenate ``clip_refs`` in the given order into a single mp4.

    Clips are fetched one at a time and staged as ``clip0 … clipN-1`` as they
    arrive. Any failed fetch aborts the whole merge. An empty list raises
    EmptyInput without loading the engine. With ``remote_only`` every ref
    must be an http(s) URL; local paths fail as FetchFailed.
    """
    refs = list(clip_refs)
    if not refs:
        raise EmptyInput()

    session = session or get_session()
    mc = session.config.merge
    if fetcher is None:
        def fetcher(ref: ClipRef) -> bytes:
            return fetch_file(ref, timeout=mc.fetch_timeout, allow_local=not remote_only)

    manifest = ConcatManifest.for_clips(len(refs), mc.clip_extension)
    command = ConcatCommand(
        output=f"output.{mc.clip_extension.lstrip('.')}",
        manifest=MANIFEST_NAME,
        clips=manifest.names,
        audio_bitrate=mc.audio_bitrate,
    )

    with session.operation("merge", MERGE_PREFIX, progress_cb) as op:
        op.begin_staging()
        for i, ref in enumerate(refs):
            data = fetcher(ref)
            debug(f"[merge] fetched clip {i + 1}/{len(refs)} ({len(data)} bytes)")
            op.stage(clip_name(i, mc.clip_extension), data)
        op.stage(MANIFEST_NAME, manifest.encode())
        op.execute(command)
        data = op.read_output(command.output)

    info(f"[merge] {len(refs)} clips → {len(data)} bytes")
    return OperationResult(
        MediaBlob(data, "video/mp4", merged_filename(title)),
        list(op.warnings), list(op.history),
    )
