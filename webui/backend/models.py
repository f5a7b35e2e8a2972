"""Pydantic request/response models for the Storybook Web API."""
from __future__ import annotations

from dataclasses import dataclass

from litestar.datastructures import UploadFile
from pydantic import BaseModel


@dataclass
class StoryUpload:
    """Multipart form of ``POST /api/stories``."""
    subject: UploadFile | None = None
    narrative: UploadFile | None = None
    snapshot: UploadFile | None = None


class ErrorPayload(BaseModel):
    error: str
    detail: str


class HealthStatus(BaseModel):
    ok: bool = True
    missing_keys: list[str] = []
