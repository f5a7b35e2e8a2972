"""Settings and API key management."""
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

CONFIG_DIR = Path.home() / ".storybook"
CONFIG_FILE = CONFIG_DIR / "config.json"
LOG_FILE = CONFIG_DIR / "storybook.log"

# Models
DEFAULT_ANALYSIS_MODEL = "gemini-2.5-flash"
DEFAULT_SCRIPT_MODEL = "gemini-2.5-flash"

# Story shape
PAGE_COUNT = 3
PAGE_SENTINEL = "=====PAGE_BREAK====="
PLACEHOLDER_NARRATION = "illustration pending"
DEFAULT_CHARACTER_NAME = "Little Hero"

# Frame extraction
FRAME_OFFSET_SEC = 1.0
FRAME_JPEG_QUALITY = 80
FFMPEG_TIMEOUT_SEC = 60

# Image generation job protocol
DEFAULT_IMAGE_API_BASE = "https://api.picgen.example.com/v1/jobs"
IMAGE_ASPECT_RATIO = "1:1"
IMAGE_RESOLUTION = "2K"
IMAGE_READY_STATUS = "5"
POLL_INTERVAL_SEC = 3.0
POLL_MAX_ATTEMPTS = 30
IMAGE_STYLE_SUFFIX = (
    "masterpiece, best quality, watercolor art style, "
    "hand-painted on textured paper, soft edges, whimsical lighting"
)

# Placeholder illustration (deterministic per page)
DEFAULT_PLACEHOLDER_URL = "https://picsum.photos/seed/storybook-{page}/600/600"

# Retry (remote generation / analysis stages)
MAX_RETRIES = 3
RETRY_BASE_DELAY_SEC = 2.0
RETRY_FACTOR = 2.0

HTTP_TIMEOUT_SEC = 30


@dataclass
class Config:
    gemini_api_key: str = ""
    image_api_key: str = ""
    image_api_base: str = DEFAULT_IMAGE_API_BASE
    credential_url: str = ""
    analysis_model: str = DEFAULT_ANALYSIS_MODEL
    script_model: str = DEFAULT_SCRIPT_MODEL
    placeholder_url: str = DEFAULT_PLACEHOLDER_URL
    output_dir: Path = field(default_factory=lambda: Path("output"))

    @classmethod
    def load(cls, config_file: Path | None = None) -> "Config":
        """Load config from env vars, then the config file for anything unset."""
        cfg = cls()
        path = config_file or CONFIG_FILE

        data: dict = {}
        if path.exists():
            try:
                data = json.loads(path.read_text(encoding="utf-8-sig"))
            except (json.JSONDecodeError, OSError):
                data = {}

        cfg.gemini_api_key = os.environ.get("GEMINI_API_KEY", "") or data.get("gemini_api_key", "")
        cfg.image_api_key = os.environ.get("STORYBOOK_IMAGE_API_KEY", "") or data.get("image_api_key", "")
        cfg.credential_url = os.environ.get("STORYBOOK_CREDENTIAL_URL", "") or data.get("credential_url", "")
        if base := os.environ.get("STORYBOOK_IMAGE_API_BASE") or data.get("image_api_base"):
            cfg.image_api_base = base
        if model := data.get("analysis_model"):
            cfg.analysis_model = model
        if model := data.get("script_model"):
            cfg.script_model = model
        if url := data.get("placeholder_url"):
            cfg.placeholder_url = url
        if out := data.get("output_dir"):
            cfg.output_dir = Path(out)
        return cfg

    def save(self, config_file: Path | None = None) -> None:
        path = config_file or CONFIG_FILE
        path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "gemini_api_key": self.gemini_api_key,
            "image_api_key": self.image_api_key,
            "image_api_base": self.image_api_base,
            "credential_url": self.credential_url,
            "analysis_model": self.analysis_model,
            "script_model": self.script_model,
            "placeholder_url": self.placeholder_url,
            "output_dir": str(self.output_dir),
        }
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def missing_keys(self) -> list[str]:
        missing = []
        if not self.gemini_api_key:
            missing.append("GEMINI_API_KEY")
        if not self.image_api_key:
            missing.append("STORYBOOK_IMAGE_API_KEY")
        if not self.credential_url:
            missing.append("STORYBOOK_CREDENTIAL_URL")
        return missing
