"""Deterministic block construction for model output that is not structured JSON."""
from typing import List, Optional
import hashlib
import re

from api.schemas.template import Block

MAX_SECTIONS = 10
SUBHEADING_MAX_LENGTH = 100
TITLE_WORDS = 6
TITLE_MAX_LENGTH = 200

GENERIC_PARAGRAPH = "Use this template as a starting point and add your own content to each section."

_BLANK_LINE = re.compile(r"\n\s*\n")
_HEADING_MARKER = re.compile(r"^#+\s*")


def title_from_description(description: str) -> str:
    """First six words of the description, cut to the title length limit."""
    words = description.split()
    return " ".join(words[:TITLE_WORDS])[:TITLE_MAX_LENGTH] or "Generated Template"


def _block_id(position: int, block_type: str, content: str) -> str:
    digest = hashlib.sha1(f"{position}:{block_type}:{content}".encode("utf-8")).hexdigest()
    return f"block-{position}-{digest[:8]}"


def _make_block(position: int, block_type: str, content: str, level: Optional[int] = None) -> Block:
    return Block(id=_block_id(position, block_type, content), type=block_type, content=content, level=level)


def build_fallback_blocks(description: str, raw_text: Optional[str] = "") -> List[Block]:
    """
    Build blocks from the request description and unstructured model text.

    Args:
        description: The request description
        raw_text: Whatever the model produced, possibly empty

    Returns:
        At least two blocks: a level-1 heading and the full description,
        followed by blocks derived from the text
    """
    blocks = [
        _make_block(0, "heading", title_from_description(description), level=1),
        _make_block(1, "paragraph", description),
    ]

    text = (raw_text or "").strip()
    if not text:
        blocks.append(_make_block(len(blocks), "paragraph", GENERIC_PARAGRAPH))
        return blocks

    sections = [section for section in _BLANK_LINE.split(text) if section.strip()]
    for section in sections[:MAX_SECTIONS]:
        lines = [line for line in section.split("\n") if line.strip()]
        if not lines:
            continue

        first_line = lines[0].strip()
        if len(first_line) < SUBHEADING_MAX_LENGTH:
            heading = _HEADING_MARKER.sub("", first_line) or first_line
            blocks.append(_make_block(len(blocks), "heading", heading, level=2))
        else:
            blocks.append(_make_block(len(blocks), "paragraph", first_line))

        if len(lines) > 1:
            blocks.append(_make_block(len(blocks), "paragraph", "\n".join(lines[1:])))

    return blocks
