"""Orchestrates the full story generation pipeline."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from schemas import Character, Scene, Story

from .analyzer import MetadataAnalyzer
from .assets import StillImage, VideoAsset, encode_video, require_asset
from .config import DEFAULT_CHARACTER_NAME, Config
from .errors import ConfigurationError, ScriptGenerationFailed
from .frames import extract_frame, prepare_snapshot
from .imagegen import Illustrator, ImageJobClient, PlaceholderProvider, placeholder_from_url
from .pageparser import ParsedPage, parse_pages
from .publisher import AssetPublisher
from .scriptgen import ScriptWriter
from .utils.gemini_client import make_client

log = logging.getLogger(__name__)

PARSE_DEGRADED = "parse_degraded"

FrameExtractor = Callable[[VideoAsset], Awaitable[StillImage]]


class Pipeline:
    """Two videos in, one illustrated story out.

    Stage order: (encode videos || extract + publish still) -> metadata ->
    script -> page parse -> illustrations for all pages in parallel.
    A page whose illustration fails gets a placeholder image; every other
    stage failure aborts the request.
    """

    def __init__(
        self,
        config: Config,
        *,
        analyzer: MetadataAnalyzer | None = None,
        script_writer: ScriptWriter | None = None,
        illustrator: Illustrator | None = None,
        publisher: AssetPublisher | None = None,
        frame_extractor: FrameExtractor = extract_frame,
        placeholder: PlaceholderProvider | None = None,
        progress_cb: Callable[[str], None] | None = None,
    ):
        self.config = config
        self.progress_cb = progress_cb or (lambda msg: None)
        self.frame_extractor = frame_extractor
        self.placeholder = placeholder or placeholder_from_url(config.placeholder_url)

        if analyzer is None or script_writer is None:
            client = make_client(config)
            analyzer = analyzer or MetadataAnalyzer(client, config.analysis_model)
            script_writer = script_writer or ScriptWriter(client, config.script_model)
        if illustrator is None:
            if not config.image_api_key:
                raise ConfigurationError("STORYBOOK_IMAGE_API_KEY is not set.")
            illustrator = Illustrator(ImageJobClient(config.image_api_base, config.image_api_key))
        self.analyzer = analyzer
        self.script_writer = script_writer
        self.illustrator = illustrator
        self.publisher = publisher or AssetPublisher(config.credential_url)

    def close(self) -> None:
        """Release the HTTP sessions held by the publisher and the illustrator."""
        self.publisher.close()
        self.illustrator.close()

    async def _publish_reference(self, subject: VideoAsset, snapshot: StillImage | None) -> str:
        if snapshot is not None:
            self.progress_cb("  Using the captured snapshot as reference image")
            still = await prepare_snapshot(snapshot)
        else:
            self.progress_cb("  Extracting a reference frame from the subject video")
            still = await self.frame_extractor(subject)
        return await self.publisher.publish(still)

    async def _illustrate_page(self, page: ParsedPage, reference_url: str) -> Scene:
        try:
            url = await self.illustrator.illustrate(page.image_prompt, reference_url)
            self.progress_cb(f"  ✓ Page {page.page_number} illustrated")
        except Exception as e:
            log.error("Illustration failed for page %d: %s", page.page_number, e)
            self.progress_cb(f"  ⚠ Page {page.page_number} illustration failed ({e}), using placeholder")
            url = self.placeholder(page.page_number)
        return Scene(
            page_number=page.page_number,
            narration=page.narration,
            image_prompt=page.image_prompt,
            image_url=url,
        )

    async def generate_story(
        self,
        subject: VideoAsset | None,
        narrative: VideoAsset | None,
        snapshot: StillImage | None = None,
    ) -> Story:
        subject = require_asset(subject, "subject")
        narrative = require_asset(narrative, "narrative")

        self.progress_cb("📦 Stage 1/4: Preparing videos and reference image...")
        subject_part, narrative_part, reference_url = await asyncio.gather(
            asyncio.to_thread(encode_video, subject),
            asyncio.to_thread(encode_video, narrative),
            self._publish_reference(subject, snapshot),
        )

        self.progress_cb("🔍 Stage 2/4: Analysing the hero and the story...")
        metadata = await self.analyzer.analyze(subject_part, narrative_part)
        self.progress_cb(f"  Title: {metadata.title}")

        self.progress_cb("📝 Stage 3/4: Writing the pages...")
        script = await self.script_writer.write(metadata, subject_part, narrative_part)
        parsed = parse_pages(script)
        if not parsed.pages:
            raise ScriptGenerationFailed(
                f"No story pages found in the generated script ({parsed.block_count} blocks)."
            )
        diagnostics = []
        if parsed.degraded:
            log.warning("Page labels missing; used the last %d blocks as pages", len(parsed.pages))
            diagnostics.append(PARSE_DEGRADED)
        self.progress_cb(f"  {len(parsed.pages)} pages")

        self.progress_cb(f"🎨 Stage 4/4: Painting {len(parsed.pages)} illustrations...")
        scenes = await asyncio.gather(
            *(self._illustrate_page(page, reference_url) for page in parsed.pages)
        )

        story = Story(
            title=metadata.title,
            character=Character(
                name=metadata.character_name or DEFAULT_CHARACTER_NAME,
                visual_description=metadata.visual_description,
            ),
            scenes=sorted(scenes, key=lambda s: s.page_number),
            diagnostics=diagnostics,
        )
        self.progress_cb(f"🎉 Done! \"{story.title}\" with {len(story.scenes)} pages")
        return story


async def generate_story(
    subject: VideoAsset | None,
    narrative: VideoAsset | None,
    snapshot: StillImage | None = None,
    config: Config | None = None,
    progress_cb: Callable[[str], None] | None = None,
) -> Story:
    pipeline = Pipeline(config or Config.load(), progress_cb=progress_cb)
    try:
        return await pipeline.generate_story(subject, narrative, snapshot)
    finally:
        pipeline.close()


def run_story(
    subject: VideoAsset | None,
    narrative: VideoAsset | None,
    snapshot: StillImage | None = None,
    config: Config | None = None,
    progress_cb: Callable[[str], None] | None = None,
    timeout: float | None = None,
) -> Story:
    """Blocking entry point; *timeout* bounds the whole request."""
    async def _run() -> Story:
        return await asyncio.wait_for(
            generate_story(subject, narrative, snapshot, config, progress_cb),
            timeout=timeout,
        )

    return asyncio.run(_run())
