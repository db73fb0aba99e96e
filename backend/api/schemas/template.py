from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional
from typing_extensions import Annotated
from urllib.parse import urlsplit
import re

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_serializer,
)
from pydantic_core import PydanticCustomError

from engine.generator.themes import THEME_PRESETS

DESCRIPTION_MIN_LENGTH = 10
DESCRIPTION_MAX_LENGTH = 2000

HEX_COLOR_PATTERN = re.compile(r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$")

BlockType = Literal["heading", "paragraph", "database", "table", "image", "quote", "code", "divider"]
BLOCK_TYPES = ("heading", "paragraph", "database", "table", "image", "quote", "code", "divider")

Spacing = Literal["compact", "comfortable", "spacious"]


def _check_description(value: str) -> str:
    if len(value) < DESCRIPTION_MIN_LENGTH:
        raise PydanticCustomError(
            "description_too_short",
            "Description is too short: must be at least {min} characters (got {length})",
            {"min": DESCRIPTION_MIN_LENGTH, "length": len(value)},
        )
    if len(value) > DESCRIPTION_MAX_LENGTH:
        raise PydanticCustomError(
            "description_too_long",
            "Description is too long: must be at most {max} characters (got {length})",
            {"max": DESCRIPTION_MAX_LENGTH, "length": len(value)},
        )
    return value


def _check_hex_color(value: str) -> str:
    if not HEX_COLOR_PATTERN.match(value):
        raise PydanticCustomError(
            "hex_color",
            "Invalid hex color '{value}': expected #RGB or #RRGGBB",
            {"value": value},
        )
    return value


def _check_absolute_url(value: str) -> str:
    parts = urlsplit(value)
    if not parts.scheme or not parts.netloc:
        raise PydanticCustomError("url", "Invalid URL format: '{value}' is not an absolute URL", {"value": value})
    return value


def _as_utc(value: datetime) -> datetime:
    """Naive timestamps are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _resolve_theme_preset(value: Any) -> Any:
    """Accept a preset name wherever a full theme is expected."""
    if isinstance(value, str):
        preset = THEME_PRESETS.get(value.lower())
        if preset is None:
            raise PydanticCustomError(
                "theme_preset",
                "Unknown theme preset '{name}' (expected one of: {choices})",
                {"name": value, "choices": ", ".join(sorted(THEME_PRESETS))},
            )
        return preset
    return value


Description = Annotated[str, AfterValidator(_check_description)]
HexColor = Annotated[str, AfterValidator(_check_hex_color)]
AbsoluteUrl = Annotated[str, AfterValidator(_check_absolute_url)]
Timestamp = Annotated[datetime, AfterValidator(_as_utc)]


class ThemeColors(BaseModel):
    primary: HexColor
    secondary: HexColor
    background: HexColor
    surface: HexColor
    text: HexColor
    accent: HexColor


class ThemeFonts(BaseModel):
    heading: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)


class Theme(BaseModel):
    """Visual theme: six colors, a font pair and a spacing category."""
    name: str = Field(..., min_length=1)
    colors: ThemeColors
    fonts: ThemeFonts
    spacing: Spacing


ThemeInput = Annotated[Theme, BeforeValidator(_resolve_theme_preset)]


class Block(BaseModel):
    """
    A single content block.

    ``type`` is the discriminant over the closed variant set; ``level`` is
    only meaningful (and only allowed) for headings.
    """
    id: str = Field(..., min_length=1)
    type: BlockType
    content: str = ""
    level: Optional[int] = Field(default=None, validate_default=True)
    properties: Optional[Dict[str, Any]] = None
    children: Optional[List["Block"]] = None

    @field_validator("level")
    @classmethod
    def _check_level(cls, value: Optional[int], info: ValidationInfo) -> Optional[int]:
        block_type = info.data.get("type")
        if block_type == "heading":
            if value is None or not 1 <= value <= 3:
                raise PydanticCustomError("heading_level", "Heading blocks require a level between 1 and 3")
        elif value is not None:
            raise PydanticCustomError("level_not_allowed", "level is only allowed on heading blocks")
        return value

    @model_serializer(mode="wrap")
    def _drop_absent_optionals(self, handler) -> Dict[str, Any]:
        data = handler(self)
        for key in ("level", "properties", "children"):
            if data.get(key) is None:
                data.pop(key, None)
        return data


def iter_block_ids(blocks: List[Block]):
    for block in blocks:
        yield block.id
        if block.children:
            yield from iter_block_ids(block.children)


class Template(BaseModel):
    """A generated workspace template."""
    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=200)
    description: Description
    blocks: List[Block] = Field(..., min_length=1)
    theme: ThemeInput
    created_at: Timestamp
    updated_at: Timestamp
    is_public: bool = False
    notion_page_id: Optional[str] = None
    shared_url: Optional[AbsoluteUrl] = None

    @field_validator("blocks")
    @classmethod
    def _check_unique_block_ids(cls, blocks: List[Block]) -> List[Block]:
        seen = set()
        duplicates = []
        for block_id in iter_block_ids(blocks):
            if block_id in seen:
                duplicates.append(block_id)
            seen.add(block_id)
        if duplicates:
            raise PydanticCustomError(
                "duplicate_block_id",
                "Block ids must be unique within a template (duplicates: {ids})",
                {"ids": ", ".join(sorted(set(duplicates)))},
            )
        return blocks

    @field_validator("updated_at")
    @classmethod
    def _check_timestamps(cls, value: datetime, info: ValidationInfo) -> datetime:
        created_at = info.data.get("created_at")
        if created_at is not None and value < created_at:
            raise PydanticCustomError("timestamp_order", "updated_at must not be earlier than created_at")
        return value

    @model_serializer(mode="wrap")
    def _drop_absent_links(self, handler) -> Dict[str, Any]:
        data = handler(self)
        for key in ("notion_page_id", "shared_url"):
            if data.get(key) is None:
                data.pop(key, None)
        return data


class TemplateCreate(BaseModel):
    """Payload for creating a template directly (outside generation)."""
    id: Optional[str] = Field(default=None, min_length=1)
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Description
    blocks: List[Block] = Field(..., min_length=1)
    theme: ThemeInput = Field(default="minimal", validate_default=True)
    is_public: bool = False
    notion_page_id: Optional[str] = None
    shared_url: Optional[AbsoluteUrl] = None


class TemplateUpdate(BaseModel):
    """Partial update; ``id`` and ``created_at`` cannot be changed."""
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[Description] = None
    blocks: Optional[List[Block]] = Field(default=None, min_length=1)
    theme: Optional[ThemeInput] = None
    is_public: Optional[bool] = None
    notion_page_id: Optional[str] = None
    shared_url: Optional[AbsoluteUrl] = None


class PaginatedTemplates(BaseModel):
    items: List[Template]
    total: int
    page: int
    per_page: int
    has_more: bool
