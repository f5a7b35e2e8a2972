"""Reference still extraction from the subject video (ffmpeg + PIL)."""
from __future__ import annotations

import asyncio
import io
import json
import logging
import shutil
import tempfile
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError

from .assets import StillImage, VideoAsset
from .config import FFMPEG_TIMEOUT_SEC, FRAME_JPEG_QUALITY, FRAME_OFFSET_SEC
from .errors import FrameExtractionFailed

log = logging.getLogger(__name__)

_SUFFIXES = {
    "video/webm": ".webm",
    "video/mp4": ".mp4",
    "video/quicktime": ".mov",
    "video/x-matroska": ".mkv",
}


async def _run(cmd: list[str], timeout: float = FFMPEG_TIMEOUT_SEC) -> tuple[int, bytes, bytes]:
    """Run a command without blocking the event loop. Returns (code, stdout, stderr)."""
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise
    return proc.returncode, stdout, stderr


async def probe_duration(video_path: Path) -> float | None:
    """Container duration in seconds, or None when ffprobe can't tell (common for webm)."""
    cmd = [
        "ffprobe", "-v", "quiet", "-print_format", "json",
        "-show_format", str(video_path),
    ]
    code, stdout, _ = await _run(cmd, timeout=30)
    if code != 0:
        return None
    try:
        duration = float(json.loads(stdout)["format"]["duration"])
    except (KeyError, ValueError, TypeError):
        return None
    return duration if duration > 0 else None


def seek_offset(duration: float | None, offset: float = FRAME_OFFSET_SEC) -> float:
    """Clamp the seek offset to the clip length."""
    if duration is None:
        return offset
    return max(0.0, min(offset, duration))


async def _grab_png(video_path: Path, offset: float) -> bytes:
    cmd = [
        "ffmpeg", "-v", "error",
        "-ss", f"{offset:.3f}",
        "-i", str(video_path),
        "-frames:v", "1",
        "-f", "image2pipe",
        "-vcodec", "png",
        "-",
    ]
    code, stdout, stderr = await _run(cmd)
    if code != 0:
        log.debug("ffmpeg frame grab at %.3fs failed: %s", offset, stderr.decode(errors="replace")[-300:])
        return b""
    return stdout


def to_jpeg(data: bytes, quality: int = FRAME_JPEG_QUALITY) -> bytes:
    """Re-encode any PIL-readable image as an RGB JPEG."""
    img = Image.open(io.BytesIO(data))
    img = ImageOps.exif_transpose(img).convert("RGB")
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=quality)
    return buf.getvalue()


async def extract_frame(asset: VideoAsset) -> StillImage:
    """Render the frame one second into *asset* as a JPEG still.

    Raises ``FrameExtractionFailed`` if the clip can't be decoded.
    """
    if not shutil.which("ffmpeg"):
        raise FrameExtractionFailed("ffmpeg not found in PATH. Please install ffmpeg.")

    suffix = _SUFFIXES.get(asset.mime_type, ".webm")
    with tempfile.TemporaryDirectory(prefix="storybook_") as tmpdir:
        video_path = Path(tmpdir) / f"subject{suffix}"
        video_path.write_bytes(asset.data)

        try:
            duration = await probe_duration(video_path) if shutil.which("ffprobe") else None
            offset = seek_offset(duration)
            log.info("Extracting subject frame at %.2fs (duration=%s)", offset, duration)

            png = await _grab_png(video_path, offset)
            if not png and offset > 0:
                # Seeking past the last decodable frame yields nothing; take the first one.
                png = await _grab_png(video_path, 0.0)
        except (asyncio.TimeoutError, OSError) as e:
            raise FrameExtractionFailed(f"Could not decode the subject video: {e}") from e

    if not png:
        raise FrameExtractionFailed("No frame could be rendered from the subject video.")

    try:
        jpeg = await asyncio.to_thread(to_jpeg, png)
    except (UnidentifiedImageError, OSError) as e:
        raise FrameExtractionFailed(f"ffmpeg produced an unreadable frame: {e}") from e
    return StillImage(data=jpeg, mime_type="image/jpeg")


async def prepare_snapshot(snapshot: StillImage) -> StillImage:
    """Normalise a caller-supplied snapshot to JPEG."""
    if not snapshot.data:
        raise FrameExtractionFailed("The supplied snapshot is empty.")
    try:
        jpeg = await asyncio.to_thread(to_jpeg, snapshot.data)
    except (UnidentifiedImageError, OSError) as e:
        raise FrameExtractionFailed(f"The supplied snapshot is not a readable image: {e}") from e
    return StillImage(data=jpeg, mime_type="image/jpeg")
