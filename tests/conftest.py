"""Shared fixtures: sample scripts and fake remote collaborators."""
from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from schemas import Metadata
from storybook.assets import StillImage, VideoAsset
from storybook.config import PAGE_SENTINEL

SAMPLE_SCRIPT = f"""COVER
Title: 小熊的月亮船
Cover: A masterpiece watercolor illustration of a smiling girl holding a paper moon.
{PAGE_SENTINEL}
INTRODUCTION
Mia lives by the sea with her grey cat.
{PAGE_SENTINEL}
Page 1
中文文案: 米娅在海边捡到一只会发光的贝壳。
English Caption: Mia finds a glowing shell by the sea.
Illustration: A masterpiece watercolor illustration of Mia on the beach at dusk.
Layout: caption at the bottom third, rounded hand-lettered font.
{PAGE_SENTINEL}
Page 2
中文文案: 贝壳变成了一艘小船。
English Caption: The shell turns into a little boat.
Illustration: Mia sailing the shell boat over silver waves.
{PAGE_SENTINEL}
Page 3
中文文案: 她驶向月亮，和月亮说晚安。
English Caption: She sails to the moon and says good night.
Illustration: Mia waving at a smiling moon.
"""


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that records delays instead of waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class FakeGenaiClient:
    """Mimics ``genai.Client().aio.models.generate_content`` with scripted replies."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls: list[dict] = []
        self.aio = SimpleNamespace(models=SimpleNamespace(generate_content=self._generate_content))

    async def _generate_content(self, *, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(text=reply, candidates=None)


@pytest.fixture
def sample_script() -> str:
    return SAMPLE_SCRIPT


@pytest.fixture
def metadata() -> Metadata:
    return Metadata(
        title="小熊的月亮船",
        summary="一个女孩乘着贝壳船去见月亮。",
        character_age="6-year-old",
        character_gender="girl",
        character_clothing="double buns black hair, round red glasses, pink hoodie",
        character_name="Mia",
    )


@pytest.fixture
def subject_video() -> VideoAsset:
    return VideoAsset(data=b"\x1aE\xdf\xa3subject", mime_type="video/webm", role="subject")


@pytest.fixture
def narrative_video() -> VideoAsset:
    return VideoAsset(data=b"\x1aE\xdf\xa3narrative", mime_type="video/webm", role="narrative")


@pytest.fixture
def still() -> StillImage:
    return StillImage(data=b"\xff\xd8\xff\xe0jpeg", mime_type="image/jpeg")


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def genai_client():
    """Factory for ``FakeGenaiClient`` instances."""
    return FakeGenaiClient
