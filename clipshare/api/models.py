"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str
    version: str
    ffmpeg: bool
    engine_loaded: bool


class MergeRequest(BaseModel):
    urls: list[str] = Field(default_factory=list, description="Clip URLs in playback order")
    title: str = ""


class ClipRecordResponse(BaseModel):
    type: str
    duration: float
    url: str

