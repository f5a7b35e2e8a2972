import json

import pytest

from schemas import Character, Scene, Story
from storybook import main as cli
from storybook.errors import AssetPublishFailed

STORY = Story(
    title="T",
    character=Character(name="Mia", visual_description="girl"),
    scenes=[Scene(page_number=1, narration="n", image_prompt="Page 1", image_url="https://img.test/1.png")],
)


@pytest.fixture
def videos(tmp_path):
    subject = tmp_path / "subject.webm"
    narrative = tmp_path / "narrative.webm"
    subject.write_bytes(b"s")
    narrative.write_bytes(b"n")
    return subject, narrative


@pytest.fixture
def no_logging_setup(monkeypatch):
    monkeypatch.setattr(cli, "_setup_logging", lambda verbose=False: None)


def test_prints_story_json(monkeypatch, capsys, videos, no_logging_setup):
    seen = {}

    def fake_run_story(subject, narrative, snapshot=None, **kwargs):
        seen.update(subject=subject, narrative=narrative, snapshot=snapshot, **kwargs)
        return STORY

    monkeypatch.setattr("storybook.pipeline.run_story", fake_run_story)
    code = cli.main(["--subject", str(videos[0]), "--narrative", str(videos[1]), "--timeout", "90"])
    assert code == 0
    out = json.loads(capsys.readouterr().out)
    assert out["scenes"][0]["imageUrl"] == "https://img.test/1.png"
    assert seen["subject"].role == "subject"
    assert seen["snapshot"] is None
    assert seen["timeout"] == 90.0


def test_writes_output_file(monkeypatch, tmp_path, videos, no_logging_setup):
    monkeypatch.setattr("storybook.pipeline.run_story", lambda *a, **k: STORY)
    out = tmp_path / "out" / "story.json"
    assert cli.main(["--subject", str(videos[0]), "--narrative", str(videos[1]), "--output", str(out)]) == 0
    assert json.loads(out.read_text(encoding="utf-8"))["title"] == "T"


def test_missing_file(capsys, tmp_path, videos, no_logging_setup):
    code = cli.main(["--subject", str(tmp_path / "nope.webm"), "--narrative", str(videos[1])])
    assert code == 1
    assert "subject file not found" in capsys.readouterr().err


def test_pipeline_error_exit_code(monkeypatch, capsys, videos, no_logging_setup):
    def failing(*args, **kwargs):
        raise AssetPublishFailed("broker down")

    monkeypatch.setattr("storybook.pipeline.run_story", failing)
    assert cli.main(["--subject", str(videos[0]), "--narrative", str(videos[1])]) == 1
    assert "asset_publish_failed" in capsys.readouterr().err
