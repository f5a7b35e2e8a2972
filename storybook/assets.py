"""Binary inputs handed to the pipeline by the recording side."""
from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from google.genai import types

from .errors import InputMissing

Role = Literal["subject", "narrative"]

DEFAULT_VIDEO_MIME = "video/webm"


@dataclass(frozen=True)
class VideoAsset:
    data: bytes
    mime_type: str
    role: Role

    @classmethod
    def from_path(cls, path: Path | str, role: Role) -> "VideoAsset":
        path = Path(path)
        mime, _ = mimetypes.guess_type(path.name)
        if not mime or not mime.startswith("video/"):
            mime = DEFAULT_VIDEO_MIME
        return cls(data=path.read_bytes(), mime_type=mime, role=role)

    def __repr__(self) -> str:
        return f"VideoAsset(role={self.role!r}, mime_type={self.mime_type!r}, size={len(self.data)})"


@dataclass(frozen=True)
class StillImage:
    data: bytes
    mime_type: str = "image/jpeg"

    @classmethod
    def from_path(cls, path: Path | str) -> "StillImage":
        path = Path(path)
        mime, _ = mimetypes.guess_type(path.name)
        return cls(data=path.read_bytes(), mime_type=mime or "image/jpeg")

    def __repr__(self) -> str:
        return f"StillImage(mime_type={self.mime_type!r}, size={len(self.data)})"


def require_asset(asset: VideoAsset | None, role: Role) -> VideoAsset:
    if asset is None or not asset.data:
        raise InputMissing(f"The {role} video is missing or empty.")
    return asset


def encode_video(asset: VideoAsset) -> types.Part:
    """Wrap a video as an inline part for a multimodal request."""
    require_asset(asset, asset.role)
    return types.Part.from_bytes(data=asset.data, mime_type=asset.mime_type)
