"""Split a sentinel-delimited script into numbered pages.

``parse_pages`` is total and pure: identical input always yields identical
pages and it never raises. Narration comes from the first extraction
strategy that finds anything:

1. a localized (Chinese) caption field, plus an English caption field if
   present, joined with a newline;
2. the English caption field alone;
3. the first one or two quoted spans in the block;
4. ``PLACEHOLDER_NARRATION``.

When no block carries a ``Page N`` label but there are at least
``PAGE_COUNT`` blocks, the last ``PAGE_COUNT`` blocks become pages 1..N and
the result is flagged ``degraded``.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field

from .config import PAGE_COUNT, PAGE_SENTINEL, PLACEHOLDER_NARRATION

_LOCAL_LABELS = ("中文文案", "中文字幕", "中文旁白", "中文", "Chinese Caption", "Chinese")
_SECONDARY_LABELS = ("English Caption", "English")

_LINE_PREFIX = re.compile(r"^[\s\-*>#•]+")
_EMPHASIS = re.compile(r"\*\*|__")
_QUOTED = re.compile(r'"([^"\n]+)"|“([^”\n]+)”|「([^」\n]+)」')
_WRAPPING_QUOTES = "\"'“”「」‘’"


def _label_pattern(labels: tuple[str, ...]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(label) for label in labels)
    return re.compile(rf"(?<![A-Za-z])(?:{alternatives})\s*[:：]\s*(.*)$", re.IGNORECASE)


_LOCAL_FIELD = _label_pattern(_LOCAL_LABELS)
_SECONDARY_FIELD = _label_pattern(_SECONDARY_LABELS)
_OTHER_FIELD = _label_pattern(("Illustration", "Layout", "Prompt", "Cover", "Title"))
_PAGE_LINE = re.compile(r"^page\s?\d+\b", re.IGNORECASE)


@dataclass(frozen=True)
class ParsedPage:
    page_number: int
    narration: str
    image_prompt: str


@dataclass(frozen=True)
class ParsedScript:
    pages: list[ParsedPage] = field(default_factory=list)
    degraded: bool = False
    block_count: int = 0


def split_blocks(text: str, sentinel: str = PAGE_SENTINEL) -> list[str]:
    """Split on the sentinel and drop blocks that are empty once trimmed."""
    return [block.strip() for block in text.split(sentinel) if block.strip()]


def page_marker(index: int) -> re.Pattern[str]:
    """``Page 3`` or ``Page3``, but never ``Page 30`` or ``homepage3``."""
    return re.compile(rf"(?<![A-Za-z])page\s?{index}(?!\d)", re.IGNORECASE)


def _clean_line(line: str) -> str:
    return _EMPHASIS.sub("", _LINE_PREFIX.sub("", line)).strip()


def _field_text(raw: str) -> str:
    # "Page 1 | 中文文案: 你好 | Illustration: ..." keeps only its own cell
    return raw.split("|")[0].strip().strip(_WRAPPING_QUOTES).strip()


def _is_label_line(line: str) -> bool:
    if _PAGE_LINE.match(line):
        return True
    return any(p.match(line) for p in (_LOCAL_FIELD, _SECONDARY_FIELD, _OTHER_FIELD))


def _field_value(block: str, pattern: re.Pattern[str]) -> str:
    lines = [_clean_line(line) for line in block.splitlines()]
    for pos, line in enumerate(lines):
        match = pattern.search(line)
        if not match or (match.start() > 0 and _OTHER_FIELD.match(line)):
            continue
        value = _field_text(match.group(1))
        if not value:
            # heading-style label, caption on the next non-empty line
            following = next((nxt for nxt in lines[pos + 1:] if nxt), "")
            if not _is_label_line(following):
                value = _field_text(following)
        if value:
            return value
    return ""


def _quoted_spans(block: str, limit: int = 2) -> list[str]:
    spans = []
    for match in _QUOTED.finditer(block):
        span = next(group for group in match.groups() if group is not None).strip()
        if span:
            spans.append(span)
        if len(spans) == limit:
            break
    return spans


def extract_narration(block: str) -> str:
    local = _field_value(block, _LOCAL_FIELD)
    secondary = _field_value(block, _SECONDARY_FIELD)
    captions = [c for c in (local, secondary) if c]
    if captions:
        return "\n".join(captions)

    spans = _quoted_spans(block)
    if spans:
        return "\n".join(spans)

    return PLACEHOLDER_NARRATION


def _labelled_blocks(blocks: list[str]) -> list[str]:
    accepted: list[str] = []
    used: set[int] = set()
    index = 1
    while True:
        marker = page_marker(index)
        hit = next(
            (pos for pos, block in enumerate(blocks) if pos not in used and marker.search(block)),
            None,
        )
        if hit is None:
            return accepted
        used.add(hit)
        accepted.append(blocks[hit])
        index += 1


def parse_pages(
    text: str,
    sentinel: str = PAGE_SENTINEL,
    fallback_count: int = PAGE_COUNT,
) -> ParsedScript:
    blocks = split_blocks(text or "", sentinel)
    page_blocks = _labelled_blocks(blocks)
    degraded = False

    if not page_blocks and len(blocks) >= fallback_count:
        page_blocks = blocks[-fallback_count:]
        degraded = True

    pages = [
        ParsedPage(page_number=number, narration=extract_narration(block), image_prompt=block)
        for number, block in enumerate(page_blocks, start=1)
    ]
    return ParsedScript(pages=pages, degraded=degraded, block_count=len(blocks))
