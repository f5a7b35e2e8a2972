"""Story generation and health routes."""
from __future__ import annotations

import logging
from typing import Annotated, Any

from litestar import get, post
from litestar.datastructures import State, UploadFile
from litestar.enums import RequestEncodingType
from litestar.params import Body

from storybook.assets import DEFAULT_VIDEO_MIME, StillImage, VideoAsset
from storybook.config import Config
from webui.backend.models import HealthStatus, StoryUpload

log = logging.getLogger(__name__)


async def _read_video(upload: UploadFile | None, role: str) -> VideoAsset | None:
    if upload is None:
        return None
    data = await upload.read()
    mime = upload.content_type if (upload.content_type or "").startswith("video/") else DEFAULT_VIDEO_MIME
    return VideoAsset(data=data, mime_type=mime, role=role)


@post("/api/stories", status_code=200)
async def create_story(
    data: Annotated[StoryUpload, Body(media_type=RequestEncodingType.MULTI_PART)],
    state: State,
) -> dict[str, Any]:
    subject = await _read_video(data.subject, "subject")
    narrative = await _read_video(data.narrative, "narrative")
    snapshot = None
    if data.snapshot is not None:
        snapshot = StillImage(
            data=await data.snapshot.read(),
            mime_type=data.snapshot.content_type or "image/jpeg",
        )

    pipeline = state.pipeline_factory()
    story = await pipeline.generate_story(subject, narrative, snapshot)
    log.info("Story %r generated with %d pages", story.title, len(story.scenes))
    return story.model_dump(by_alias=True)


@get("/api/health")
async def health() -> HealthStatus:
    missing = Config.load().missing_keys()
    return HealthStatus(ok=not missing, missing_keys=missing)
