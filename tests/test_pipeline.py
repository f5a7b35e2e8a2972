import asyncio
import io
import re

import pytest
from PIL import Image

from storybook.assets import StillImage
from storybook.config import PAGE_SENTINEL, Config
from storybook.errors import (
    AnalysisFailed,
    AssetPublishFailed,
    ConfigurationError,
    FrameExtractionFailed,
    GenerationTimeout,
    InputMissing,
    ScriptGenerationFailed,
)
from storybook.imagegen import SeededPlaceholder
from storybook.pipeline import PARSE_DEGRADED, Pipeline

REFERENCE_URL = "https://bucket.cos.ap-test.myqcloud.com/storybook/ref.jpg"


class FakeAnalyzer:
    def __init__(self, metadata, error=None):
        self.metadata = metadata
        self.error = error
        self.calls = 0

    async def analyze(self, subject, narrative):
        self.calls += 1
        if self.error:
            raise self.error
        return self.metadata


class FakeWriter:
    def __init__(self, script):
        self.script = script
        self.calls = 0

    async def write(self, metadata, subject, narrative):
        self.calls += 1
        return self.script


class FakeIllustrator:
    """Finishes later pages first; raises the error mapped to a page number."""

    def __init__(self, errors=None):
        self.errors = errors or {}
        self.calls: list[tuple[str, str]] = []

    async def illustrate(self, prompt, reference_url):
        self.calls.append((prompt, reference_url))
        match = re.match(r"Page (\d+)", prompt)
        page = int(match.group(1)) if match else 0
        await asyncio.sleep(0.01 * (4 - page))
        if page in self.errors:
            raise self.errors[page]
        return f"https://img.test/page-{page}.png"


class FakePublisher:
    def __init__(self, error=None):
        self.error = error
        self.published: list[StillImage] = []

    async def publish(self, still):
        if self.error:
            raise self.error
        self.published.append(still)
        return REFERENCE_URL


class FakeFrames:
    def __init__(self, error=None):
        self.error = error
        self.calls = 0

    async def __call__(self, asset):
        self.calls += 1
        if self.error:
            raise self.error
        return StillImage(data=b"\xff\xd8frame")


def _png_bytes() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (8, 8), (200, 120, 40)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def parts(metadata, sample_script):
    return {
        "analyzer": FakeAnalyzer(metadata),
        "script_writer": FakeWriter(sample_script),
        "illustrator": FakeIllustrator(),
        "publisher": FakePublisher(),
        "frame_extractor": FakeFrames(),
        "placeholder": SeededPlaceholder("https://placeholder.test/{page}.png"),
    }


def _pipeline(parts, **overrides):
    return Pipeline(Config(), **{**parts, **overrides})


@pytest.mark.asyncio
async def test_happy_path(parts, subject_video, narrative_video):
    story = await _pipeline(parts).generate_story(subject_video, narrative_video)
    assert story.title == "小熊的月亮船"
    assert story.character.name == "Mia"
    assert story.character.visual_description == "6-year-old, girl, double buns black hair, round red glasses, pink hoodie"
    assert [s.page_number for s in story.scenes] == [1, 2, 3]
    assert [s.image_url for s in story.scenes] == [f"https://img.test/page-{i}.png" for i in (1, 2, 3)]
    assert story.scenes[0].narration.startswith("米娅")
    assert story.diagnostics == []
    assert all(ref == REFERENCE_URL for _, ref in parts["illustrator"].calls)
    assert parts["frame_extractor"].calls == 1


@pytest.mark.asyncio
async def test_scene_timeout_uses_placeholder(parts, subject_video, narrative_video):
    parts["illustrator"] = FakeIllustrator({2: GenerationTimeout("job j2 not ready")})
    story = await _pipeline(parts).generate_story(subject_video, narrative_video)
    assert len(story.scenes) == 3
    assert story.scenes[1].image_url == "https://placeholder.test/2.png"
    assert story.scenes[0].image_url == "https://img.test/page-1.png"
    assert story.scenes[2].image_url == "https://img.test/page-3.png"


@pytest.mark.asyncio
async def test_every_scene_failing_still_yields_a_story(parts, subject_video, narrative_video):
    parts["illustrator"] = FakeIllustrator({i: RuntimeError("boom") for i in (1, 2, 3)})
    story = await _pipeline(parts).generate_story(subject_video, narrative_video)
    assert [s.image_url for s in story.scenes] == [f"https://placeholder.test/{i}.png" for i in (1, 2, 3)]


@pytest.mark.asyncio
async def test_publish_failure_aborts_before_generation(parts, subject_video, narrative_video):
    parts["publisher"] = FakePublisher(AssetPublishFailed("broker down"))
    with pytest.raises(AssetPublishFailed):
        await _pipeline(parts).generate_story(subject_video, narrative_video)
    assert parts["analyzer"].calls == 0
    assert parts["script_writer"].calls == 0
    assert parts["illustrator"].calls == []


@pytest.mark.asyncio
async def test_frame_failure_is_fatal(parts, subject_video, narrative_video):
    parts["frame_extractor"] = FakeFrames(FrameExtractionFailed("corrupt"))
    with pytest.raises(FrameExtractionFailed):
        await _pipeline(parts).generate_story(subject_video, narrative_video)
    assert parts["publisher"].published == []


@pytest.mark.asyncio
async def test_analysis_failure_is_fatal(parts, subject_video, narrative_video, metadata):
    parts["analyzer"] = FakeAnalyzer(metadata, AnalysisFailed("quota"))
    with pytest.raises(AnalysisFailed):
        await _pipeline(parts).generate_story(subject_video, narrative_video)
    assert parts["script_writer"].calls == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("which", ["subject", "narrative"])
async def test_missing_input(parts, subject_video, narrative_video, which):
    args = {"subject": subject_video, "narrative": narrative_video, which: None}
    with pytest.raises(InputMissing):
        await _pipeline(parts).generate_story(args["subject"], args["narrative"])
    assert parts["publisher"].published == []


@pytest.mark.asyncio
async def test_degraded_parse_is_reported(parts, subject_video, narrative_video):
    script = f"\n{PAGE_SENTINEL}\n".join(["cover", "intro", '"one"', '"two"', '"three"'])
    parts["script_writer"] = FakeWriter(script)
    story = await _pipeline(parts).generate_story(subject_video, narrative_video)
    assert story.diagnostics == [PARSE_DEGRADED]
    assert [s.page_number for s in story.scenes] == [1, 2, 3]
    assert [s.narration for s in story.scenes] == ["one", "two", "three"]


@pytest.mark.asyncio
async def test_script_without_pages_fails(parts, subject_video, narrative_video):
    parts["script_writer"] = FakeWriter(f"cover\n{PAGE_SENTINEL}\nintro")
    with pytest.raises(ScriptGenerationFailed):
        await _pipeline(parts).generate_story(subject_video, narrative_video)
    assert parts["illustrator"].calls == []


@pytest.mark.asyncio
async def test_snapshot_skips_frame_extraction(parts, subject_video, narrative_video):
    snapshot = StillImage(data=_png_bytes(), mime_type="image/png")
    await _pipeline(parts).generate_story(subject_video, narrative_video, snapshot)
    assert parts["frame_extractor"].calls == 0
    published = parts["publisher"].published[0]
    assert published.mime_type == "image/jpeg"
    assert published.data.startswith(b"\xff\xd8")


@pytest.mark.asyncio
async def test_unnamed_character_gets_default_name(parts, subject_video, narrative_video, metadata):
    parts["analyzer"] = FakeAnalyzer(metadata.model_copy(update={"character_name": ""}))
    story = await _pipeline(parts).generate_story(subject_video, narrative_video)
    assert story.character.name == "Little Hero"


@pytest.mark.asyncio
async def test_progress_messages(parts, subject_video, narrative_video):
    messages: list[str] = []
    await _pipeline(parts, progress_cb=messages.append).generate_story(subject_video, narrative_video)
    assert any("Stage 1/4" in m for m in messages)
    assert any("Done!" in m for m in messages)


def test_missing_image_key_is_a_configuration_error(parts):
    parts.pop("illustrator")
    with pytest.raises(ConfigurationError):
        Pipeline(Config(), **parts)


def test_close_releases_sessions(parts):
    closed = []
    parts["publisher"].close = lambda: closed.append("publisher")
    parts["illustrator"].close = lambda: closed.append("illustrator")
    _pipeline(parts).close()
    assert closed == ["publisher", "illustrator"]
