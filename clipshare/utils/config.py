"""Configuration management with YAML support and pydantic models."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field

APP_VERSION = "1.0.0"


class EngineConfig(BaseModel):
    ffmpeg_path: str = ""        # empty = look up "ffmpeg" on PATH
    ffprobe_path: str = ""       # empty = look up "ffprobe" on PATH
    command_timeout: float = Field(default=0, ge=0)  # seconds, 0 = no limit
    load_timeout: float = Field(default=15, gt=0)
    concurrency: Literal["queue", "reject", "none"] = "queue"
    scratch_dir: str = ""        # parent for the engine scratch dir, empty = system temp


class TranscodeConfig(BaseModel):
    width: int = Field(default=1280, gt=0)
    height: int = Field(default=720, gt=0)
    x264_preset: str = "medium"
    crf: int = Field(default=23, ge=0, le=51)
    audio_bitrate: str = "192k"
    background_volume: float = Field(default=0.3, ge=0, le=1)


class MergeConfig(BaseModel):
    clip_extension: str = "mp4"
    fetch_timeout: float = Field(default=120, gt=0)
    audio_bitrate: str = "192k"


class StorageConfig(BaseModel):
    root: str = "data/storage"
    public_base_url: str = "http://localhost:8000/storage"


class RenderingConfig(BaseModel):
    ffmpeg_threads: int = 0  # 0 = keep default. Env: FFMPEG_THREADS
    nice: int = 10           # Process priority (Linux, 0-19). Env: MEDIA_NICE
    max_concurrent: int = 1  # Max parallel heavy media jobs. Env: MAX_MEDIA_JOBS


class AppConfig(BaseModel):
    engine: EngineConfig = EngineConfig()
    transcode: TranscodeConfig = TranscodeConfig()
    merge: MergeConfig = MergeConfig()
    storage: StorageConfig = StorageConfig()
    rendering: RenderingConfig = RenderingConfig()


def load_config(path: str | Path | None = None) -> AppConfig:
    if path is None:
        candidates = [Path("config.yaml"), Path("config.yml"), Path("clipshare.yaml")]
        for c in candidates:
            if c.exists():
                path = c
                break
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p) as f:
                data = yaml.safe_load(f) or {}
            return AppConfig(**data)
    return AppConfig()


def merge_cli_overrides(cfg: AppConfig, overrides: dict[str, Any]) -> AppConfig:
    data = cfg.model_dump()
    for key, val in overrides.items():
        if val is None:
            continue
        parts = key.split(".")
        d = data
        for p in parts[:-1]:
            d = d.setdefault(p, {})
        d[parts[-1]] = val
    return AppConfig(**data)


DEFAULT_CONFIG_YAML = """\
# clipshare configuration

engine:
  ffmpeg_path: ""            # empty = ffmpeg on PATH
  ffprobe_path: ""           # empty = ffprobe on PATH
  command_timeout: 0         # seconds per engine command, 0 = no limit
  load_timeout: 15           # seconds for the one-time engine version check
  concurrency: queue         # queue | reject | none
  scratch_dir: ""            # parent dir for staged files, empty = system temp

transcode:
  width: 1280                # still-image background canvas
  height: 720
  x264_preset: medium
  crf: 23
  audio_bitrate: 192k
  background_volume: 0.3     # background music level under the original audio

merge:
  clip_extension: mp4
  fetch_timeout: 120         # seconds per clip download
  audio_bitrate: 192k

storage:
  root: data/storage
  public_base_url: http://localhost:8000/storage

rendering:
  ffmpeg_threads: 0          # 0 = default. Env override: FFMPEG_THREADS
  nice: 10                   # Process priority 0-19 (Linux only). Env: MEDIA_NICE
  max_concurrent: 1          # Max parallel heavy media jobs. Env: MAX_MEDIA_JOBS
"""
