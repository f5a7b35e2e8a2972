"""Metadata analyzer: one structured multimodal call over both videos."""
from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable

from google import genai
from google.genai import types
from pydantic import ValidationError

from schemas import Metadata

from .errors import AnalysisFailed, MalformedResponse
from .retry import DEFAULT_POLICY, RetryPolicy, with_retry
from .utils.gemini_client import generate_text

log = logging.getLogger(__name__)

_SYSTEM = """You are a world-class children's picture-book editor and visual director.
You receive two videos:
1. 'subject_video' shows the story's main character. Observe them closely:
   age, gender presentation, hair (colour/length/style), glasses, and clothing
   (colours, prints, style).
2. 'narrative_video' is a child narrating a story. Extract its core plot.

Return ONLY a JSON object with these fields:
- title: a warm, imaginative story title in Simplified Chinese
- summary: a 2-4 sentence synopsis of the narrated plot in Simplified Chinese
- character_age: estimated age in English, e.g. "6-year-old"
- character_gender: gender presentation in English, e.g. "girl"
- character_clothing: precise English visual tags for hair, glasses and
  clothing, e.g. "double buns black hair, round red glasses, pink hoodie with cat print"
- character_name: the hero's name if the narrator says one, else an empty string"""

_USER = "Analyse both videos. The hero in every later illustration must look exactly like the child in 'subject_video'."

METADATA_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "title": types.Schema(type=types.Type.STRING),
        "summary": types.Schema(type=types.Type.STRING),
        "character_age": types.Schema(type=types.Type.STRING),
        "character_gender": types.Schema(type=types.Type.STRING),
        "character_clothing": types.Schema(type=types.Type.STRING),
        "character_name": types.Schema(type=types.Type.STRING),
    },
    required=["title", "summary", "character_age", "character_gender", "character_clothing"],
)


def tagged_parts(subject: types.Part, narrative: types.Part) -> list[types.Part]:
    """Role-tagged video parts in the fixed order subject, narrative."""
    return [
        types.Part.from_text(text="subject_video:"),
        subject,
        types.Part.from_text(text="narrative_video:"),
        narrative,
    ]


def parse_metadata(raw: str) -> Metadata:
    """Validate model output against the Metadata shape.

    Non-conforming output raises ``MalformedResponse`` so the retry policy
    treats it as transient.
    """
    text = raw.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedResponse(f"Metadata is not valid JSON: {raw[:200]}") from e
    if not isinstance(data, dict):
        raise MalformedResponse(f"Metadata is not a JSON object: {raw[:200]}")
    try:
        return Metadata.model_validate(data)
    except ValidationError as e:
        raise MalformedResponse(f"Metadata does not match the expected shape: {e}") from e


class MetadataAnalyzer:
    def __init__(
        self,
        client: genai.Client,
        model: str,
        policy: RetryPolicy = DEFAULT_POLICY,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ):
        self.client = client
        self.model = model
        self.policy = policy
        self._sleep = sleep

    async def _analyze_once(self, subject: types.Part, narrative: types.Part) -> Metadata:
        raw = await generate_text(
            self.client,
            self.model,
            tagged_parts(subject, narrative) + [types.Part.from_text(text=_USER)],
            system_instruction=_SYSTEM,
            response_schema=METADATA_SCHEMA,
        )
        log.debug("Metadata raw response:\n%s", raw)
        return parse_metadata(raw)

    async def analyze(self, subject: types.Part, narrative: types.Part) -> Metadata:
        kwargs = {"sleep": self._sleep} if self._sleep else {}
        try:
            metadata = await with_retry(
                self._analyze_once, subject, narrative,
                policy=self.policy, label="metadata analysis", **kwargs,
            )
        except Exception as e:
            raise AnalysisFailed(f"Could not analyse the videos: {e}") from e
        log.info("Metadata: title=%r, character=%s", metadata.title, metadata.visual_description)
        return metadata
