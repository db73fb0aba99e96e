"""
Conversion between template blocks and Notion's block objects.

``blocks_to_notion`` handles exactly the closed set of block types and fails
on anything else. Notion has no API for inline databases or simple tables
built from free text, so ``database`` and ``table`` blocks are rendered as a
labelled placeholder paragraph for the user to finish in Notion.
"""
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from api.schemas.template import Block
from core.errors import UnsupportedBlockType

RICH_TEXT_LIMIT = 2000
CODE_LANGUAGE = "plain text"
HEADING_TYPES = {1: "heading_1", 2: "heading_2", 3: "heading_3"}
TEXT_BLOCK_TYPES = ("paragraph", "quote", "heading_1", "heading_2", "heading_3", "code", "callout",
                    "bulleted_list_item", "numbered_list_item", "to_do", "toggle")
# Notion types that accept nested children in a create request
NESTABLE_TYPES = ("paragraph", "quote")


def rich_text(content: str) -> List[Dict[str, Any]]:
    """Split text into Notion rich text items of at most 2000 characters."""
    if not content:
        return []
    return [
        {"type": "text", "text": {"content": content[start:start + RICH_TEXT_LIMIT]}}
        for start in range(0, len(content), RICH_TEXT_LIMIT)
    ]


def plain_text(items: List[Dict[str, Any]]) -> str:
    return "".join(item.get("plain_text") or (item.get("text") or {}).get("content", "") for item in items or [])


def _text_block(block_type: str, content: str, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"rich_text": rich_text(content)}
    body.update(extra)
    return {"object": "block", "type": block_type, block_type: body}


def _is_external_url(value: str) -> bool:
    parts = urlsplit(value)
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def _placeholder(label: str, block: Block) -> Dict[str, Any]:
    return _text_block("paragraph", f"{label}: {block.content} (finish setting this up in Notion)")


def block_to_notion(block: Block) -> Dict[str, Any]:
    if block.type == "heading":
        return _text_block(HEADING_TYPES.get(block.level or 1, "heading_3"), block.content)
    if block.type == "paragraph":
        return _text_block("paragraph", block.content)
    if block.type == "quote":
        return _text_block("quote", block.content)
    if block.type == "code":
        language = (block.properties or {}).get("language", CODE_LANGUAGE)
        return _text_block("code", block.content, language=language)
    if block.type == "divider":
        return {"object": "block", "type": "divider", "divider": {}}
    if block.type == "image":
        if _is_external_url(block.content):
            return {"object": "block", "type": "image", "image": {"type": "external", "external": {"url": block.content}}}
        return _placeholder("Image", block)
    if block.type == "database":
        return _placeholder("Database", block)
    if block.type == "table":
        return _placeholder("Table", block)
    raise UnsupportedBlockType(f"Unsupported block type: {block.type}", details={"block_id": block.id})


def blocks_to_notion(blocks: List[Block]) -> List[Dict[str, Any]]:
    """
    Convert template blocks to Notion block objects, preserving order.

    Children nest under paragraphs and quotes; under any other block they
    follow their parent at the same level.
    """
    converted = []
    for block in blocks:
        notion_block = block_to_notion(block)
        converted.append(notion_block)
        if not block.children:
            continue
        children = blocks_to_notion(block.children)
        if notion_block["type"] in NESTABLE_TYPES:
            notion_block[notion_block["type"]]["children"] = children
        else:
            converted.extend(children)
    return converted


def notion_to_block(notion_block: Dict[str, Any]) -> Block:
    """Convert one Notion block back; types without a counterpart become tagged paragraphs."""
    block_id = notion_block.get("id") or ""
    notion_type = notion_block.get("type", "")
    body = notion_block.get(notion_type) or {}

    if notion_type in HEADING_TYPES.values():
        return Block(id=block_id, type="heading", level=int(notion_type[-1]), content=plain_text(body.get("rich_text")))
    if notion_type in ("paragraph", "quote"):
        return Block(id=block_id, type=notion_type, content=plain_text(body.get("rich_text")))
    if notion_type == "code":
        properties = {"language": body["language"]} if body.get("language") else None
        return Block(id=block_id, type="code", content=plain_text(body.get("rich_text")), properties=properties)
    if notion_type == "divider":
        return Block(id=block_id, type="divider", content="")
    if notion_type == "image":
        source = body.get(body.get("type", "external")) or {}
        return Block(id=block_id, type="image", content=source.get("url", ""))

    content = plain_text(body.get("rich_text")) if notion_type in TEXT_BLOCK_TYPES else ""
    return Block(id=block_id, type="paragraph", content=content, properties={"notion_type": notion_type or "unknown"})


def notion_to_blocks(notion_blocks: List[Dict[str, Any]]) -> List[Block]:
    return [notion_to_block(item) for item in notion_blocks if item.get("object", "block") == "block"]


def page_title(page: Dict[str, Any]) -> Optional[str]:
    for prop in (page.get("properties") or {}).values():
        if isinstance(prop, dict) and prop.get("type", "title") == "title" and "title" in prop:
            return plain_text(prop["title"]) or None
    return None
