"""Upload collaborator: where finished blobs go and how clip records are built.

Object storage itself is an external service. ``Uploader`` is the interface
the pipeline's callers depend on; ``LocalStorage`` is the filesystem-backed
implementation used by the CLI, the web app and the tests.
"""

from __future__ import annotations

import mimetypes
import secrets
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from pathlib import Path, PurePosixPath
from typing import Protocol

from clipshare.pipeline.models import MediaBlob
from clipshare.pipeline.probe import probe_blob_duration
from clipshare.utils.logging import info


class Uploader(Protocol):
    def upload(self, data: bytes, destination_path: str, content_type: str) -> str:
        """Store ``data`` at ``destination_path`` and return its public URL."""
        ...


class LocalStorage:
    """Write-once file storage under ``root`` served at ``public_base_url``."""

    def __init__(self, root: str | Path, public_base_url: str):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    def _target(self, destination_path: str) -> Path:
        rel = PurePosixPath(destination_path)
        if rel.is_absolute() or ".." in rel.parts or not rel.parts:
            raise ValueError(f"invalid storage path: {destination_path!r}")
        return self.root.joinpath(*rel.parts)

    def upload(self, data: bytes, destination_path: str, content_type: str = "") -> str:
        target = self._target(destination_path)
        if target.exists():
            raise FileExistsError(f"{destination_path} already exists")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        info(f"[storage] {destination_path} ({len(data)} bytes, {content_type or 'unknown type'})")
        return self.public_url(destination_path)

    def public_url(self, destination_path: str) -> str:
        return f"{self.public_base_url}/{PurePosixPath(destination_path)}"


def media_path(filename: str) -> str:
    """Unique upload path: ``media/<epoch_ms>-<random>.<ext>``."""
    ext = PurePosixPath(filename).suffix.lstrip(".") or "bin"
    return f"media/{int(time.time() * 1000)}-{secrets.token_hex(5)}.{ext}"


@dataclass
class ClipRecord:
    """Row the data layer stores for an uploaded clip."""
    type: str  # audio | video
    duration: float
    url: str

    def to_dict(self) -> dict:
        return asdict(self)


def publish_clip(
    blob: MediaBlob,
    uploader: Uploader,
    *,
    probe: Callable[[MediaBlob], float] | None = None,
) -> ClipRecord:
    """Upload a processed clip and describe it for the ``media_clips`` table.

    ``probe`` measures the duration, ffprobe by default.
    """
    name = blob.name or f"clip{mimetypes.guess_extension(blob.mime_type) or ''}"
    duration = (probe or probe_blob_duration)(blob)
    url = uploader.upload(blob.data, media_path(name), blob.mime_type)
    clip_type = "audio" if blob.mime_type.startswith("audio/") else "video"
    return ClipRecord(type=clip_type, duration=duration, url=url)
