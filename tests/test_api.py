import pytest
from litestar.testing import TestClient

import storybook.config as config_mod
from schemas import Character, Scene, Story
from storybook.errors import AnalysisFailed, ConfigurationError, InputMissing
import webui.backend.app as app_mod
from webui.backend.app import create_app

STORY = Story(
    title="小熊的月亮船",
    character=Character(name="Mia", visual_description="6-year-old, girl, pink hoodie"),
    scenes=[
        Scene(page_number=i, narration=f"page {i}", image_prompt=f"Page {i}", image_url=f"https://img.test/{i}.png")
        for i in (1, 2, 3)
    ],
)


class FakePipeline:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    async def generate_story(self, subject, narrative, snapshot=None):
        self.calls.append((subject, narrative, snapshot))
        if self.error:
            raise self.error
        if subject is None or narrative is None:
            raise InputMissing("The subject video is missing or empty.")
        return STORY


def _client(pipeline):
    return TestClient(app=create_app(lambda: pipeline))


def _videos():
    return {
        "subject": ("subject.webm", b"subject-bytes", "video/webm"),
        "narrative": ("narrative.mp4", b"narrative-bytes", "video/mp4"),
    }


def test_create_story():
    pipeline = FakePipeline()
    with _client(pipeline) as client:
        resp = client.post("/api/stories", files=_videos())
    assert resp.status_code == 200
    body = resp.json()
    assert body["title"] == "小熊的月亮船"
    assert body["character"]["visualDescription"] == "6-year-old, girl, pink hoodie"
    assert [s["pageNumber"] for s in body["scenes"]] == [1, 2, 3]
    assert body["scenes"][0]["imageUrl"] == "https://img.test/1.png"

    subject, narrative, snapshot = pipeline.calls[0]
    assert subject.data == b"subject-bytes"
    assert subject.role == "subject"
    assert narrative.mime_type == "video/mp4"
    assert snapshot is None


def test_snapshot_is_forwarded():
    pipeline = FakePipeline()
    files = {**_videos(), "snapshot": ("still.png", b"png-bytes", "image/png")}
    with _client(pipeline) as client:
        assert client.post("/api/stories", files=files).status_code == 200
    snapshot = pipeline.calls[0][2]
    assert snapshot.data == b"png-bytes"
    assert snapshot.mime_type == "image/png"


def test_missing_video_is_a_bad_request():
    files = {"subject": ("subject.webm", b"subject-bytes", "video/webm")}
    with _client(FakePipeline()) as client:
        resp = client.post("/api/stories", files=files)
    assert resp.status_code == 400
    assert resp.json()["error"] == "input_missing"


@pytest.mark.parametrize(
    "error, status",
    [
        (AnalysisFailed("quota exhausted"), 502),
        (ConfigurationError("GEMINI_API_KEY is not set."), 503),
    ],
)
def test_pipeline_errors(error, status):
    with _client(FakePipeline(error)) as client:
        resp = client.post("/api/stories", files=_videos())
    assert resp.status_code == status
    assert resp.json() == {"error": error.kind, "detail": str(error)}


def test_health_reports_missing_keys(monkeypatch, tmp_path):
    monkeypatch.setattr(config_mod, "CONFIG_FILE", tmp_path / "config.json")
    monkeypatch.setenv("GEMINI_API_KEY", "g-key")
    monkeypatch.delenv("STORYBOOK_IMAGE_API_KEY", raising=False)
    monkeypatch.delenv("STORYBOOK_CREDENTIAL_URL", raising=False)
    with _client(FakePipeline()) as client:
        resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"ok": False, "missing_keys": ["STORYBOOK_IMAGE_API_KEY", "STORYBOOK_CREDENTIAL_URL"]}


def test_health_ok_when_configured(monkeypatch, tmp_path):
    monkeypatch.setattr(config_mod, "CONFIG_FILE", tmp_path / "config.json")
    monkeypatch.setenv("GEMINI_API_KEY", "g-key")
    monkeypatch.setenv("STORYBOOK_IMAGE_API_KEY", "i-key")
    monkeypatch.setenv("STORYBOOK_CREDENTIAL_URL", "https://broker.test/sts")
    with _client(FakePipeline()) as client:
        assert client.get("/api/health").json() == {"ok": True, "missing_keys": []}


def test_default_pipeline_is_shared_and_closed(monkeypatch):
    built = []

    class ClosingPipeline(FakePipeline):
        def __init__(self, config):
            super().__init__()
            self.closed = False
            built.append(self)

        def close(self):
            self.closed = True

    monkeypatch.setattr(app_mod, "Pipeline", ClosingPipeline)
    app_mod._default_pipeline.cache_clear()
    with TestClient(app=app_mod.create_app()) as client:
        for _ in range(2):
            assert client.post("/api/stories", files=_videos()).status_code == 200
    assert len(built) == 1
    assert len(built[0].calls) == 2
    assert built[0].closed
