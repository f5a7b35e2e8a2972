"""Script generator: free-text page blocks from both videos plus the metadata.

The model is asked for plain text, not JSON. Each block is separated by
``PAGE_SENTINEL`` and carries rich per-page layout guidance that later
becomes the illustration prompt verbatim; see ``pageparser`` for the
other half of this contract.
"""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from google import genai
from google.genai import types

from schemas import Metadata

from .analyzer import tagged_parts
from .config import PAGE_COUNT, PAGE_SENTINEL
from .errors import ScriptGenerationFailed
from .retry import DEFAULT_POLICY, RetryPolicy, with_retry
from .utils.gemini_client import generate_text

log = logging.getLogger(__name__)

_SYSTEM = """You are a world-class children's picture-book author and art director.
You write a short watercolour picture book from a child's narrated story,
starring the child from the subject video."""

_SCRIPT_TEMPLATE = """Write the picture book "{title}".

STORY SYNOPSIS:
{summary}

MAIN CHARACTER{name_clause}:
- Age: {age}
- Gender: {gender}
- Clothing and look: {clothing}
The character must look IDENTICAL on every page: same face, hair, glasses
and clothing as in 'subject_video'. Always describe them as
"{visual}".

STRUCTURE (exactly {block_count} blocks, in this order):
1. One COVER block: the title "{title}", a cover illustration description
   and the title lettering layout.
2. One INTRODUCTION block introducing the hero and their world.
3. Exactly {page_count} STORY blocks, labelled "Page 1" to "Page {page_count}"
   at the top of the block.

Separate every block from the next with a line containing only:
{sentinel}
Never use that line anywhere else.

EVERY STORY BLOCK MUST CONTAIN:
- The label "Page N" on its first line.
- 中文文案: one or two short sentences of narration in Simplified Chinese,
  suitable for a child to read.
- English Caption: the same narration in English.
- Illustration: a full English illustration prompt in the form
  "A masterpiece watercolor illustration of {visual} [doing the page's action].
  [Scene environment details]. Soft lighting, dreamy atmosphere, high quality."
- Layout: where the caption text sits on the page, font style (rounded,
  hand-lettered, child friendly) and composition (rule of thirds, hero in
  the foreground, calm negative space behind the text).

ART DIRECTION:
- Beautiful soft watercolour, hand-painted texture, whimsical, Ghibli-inspired colours.
- Forbidden: photorealism, 3D render, dark or scary elements.

Follow the narrated plot from 'narrative_video' closely, adapted into a
warm, imaginative fairy tale."""


def build_script_prompt(
    metadata: Metadata,
    page_count: int = PAGE_COUNT,
    sentinel: str = PAGE_SENTINEL,
) -> str:
    """Embed every metadata field and the structural rules into one instruction."""
    name_clause = f" ({metadata.character_name})" if metadata.character_name else ""
    return _SCRIPT_TEMPLATE.format(
        title=metadata.title,
        summary=metadata.summary,
        name_clause=name_clause,
        age=metadata.character_age,
        gender=metadata.character_gender,
        clothing=metadata.character_clothing,
        visual=metadata.visual_description,
        block_count=page_count + 2,
        page_count=page_count,
        sentinel=sentinel,
    )


class ScriptWriter:
    def __init__(
        self,
        client: genai.Client,
        model: str,
        policy: RetryPolicy = DEFAULT_POLICY,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
        page_count: int = PAGE_COUNT,
    ):
        self.client = client
        self.model = model
        self.policy = policy
        self.page_count = page_count
        self._sleep = sleep

    async def _write_once(self, metadata: Metadata, subject: types.Part, narrative: types.Part) -> str:
        prompt = build_script_prompt(metadata, self.page_count)
        raw = await generate_text(
            self.client,
            self.model,
            tagged_parts(subject, narrative) + [types.Part.from_text(text=prompt)],
            system_instruction=_SYSTEM,
        )
        log.debug("Script raw response:\n%s", raw)
        return raw

    async def write(self, metadata: Metadata, subject: types.Part, narrative: types.Part) -> str:
        """Return the raw sentinel-delimited script text."""
        kwargs = {"sleep": self._sleep} if self._sleep else {}
        try:
            raw = await with_retry(
                self._write_once, metadata, subject, narrative,
                policy=self.policy, label="script generation", **kwargs,
            )
        except Exception as e:
            raise ScriptGenerationFailed(f"Could not write the story script: {e}") from e
        log.info("Script received (%d chars, %d sentinels)", len(raw), raw.count(PAGE_SENTINEL))
        return raw
