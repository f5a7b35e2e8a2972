"""Gemini multimodal client helpers."""
from __future__ import annotations

import logging
from typing import Any, Sequence

from google import genai
from google.genai import types

from ..config import Config
from ..errors import ConfigurationError, MalformedResponse

log = logging.getLogger(__name__)


def make_client(config: Config) -> genai.Client:
    if not config.gemini_api_key:
        raise ConfigurationError("GEMINI_API_KEY is not set.")
    return genai.Client(api_key=config.gemini_api_key)


def response_text(response: Any) -> str:
    """Concatenate the text parts of a generate_content response."""
    text = getattr(response, "text", None)
    if text:
        return text
    out = []
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            if getattr(part, "text", None):
                out.append(part.text)
    return "\n".join(out).strip()


async def generate_text(
    client: genai.Client,
    model: str,
    parts: Sequence[types.Part],
    *,
    system_instruction: str | None = None,
    response_schema: types.Schema | None = None,
) -> str:
    """Send *parts* as one user turn and return the model's text.

    With *response_schema* the model is asked for JSON of that shape.
    An empty answer raises ``MalformedResponse``.
    """
    config = types.GenerateContentConfig(system_instruction=system_instruction)
    if response_schema is not None:
        config.response_mime_type = "application/json"
        config.response_schema = response_schema

    log.info("Calling %s with %d parts", model, len(parts))
    response = await client.aio.models.generate_content(
        model=model,
        contents=[types.Content(role="user", parts=list(parts))],
        config=config,
    )
    text = response_text(response)
    if not text.strip():
        raise MalformedResponse(f"{model} returned an empty response")
    return text
