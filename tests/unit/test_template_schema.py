"""Tests for the template data model."""
from datetime import timedelta

import pytest
from pydantic import ValidationError

from api.schemas.template import Block, Template, Theme


VALID_COLORS = ["#fff", "#FFF", "#000000", "#a1B2c3", "#123", "#abcdef"]
INVALID_COLORS = ["fff", "#ffff", "#12345", "#1234567", "#ggg", "blue", "", "# 123456", "#12345g"]


class TestThemeColors:
    @pytest.mark.parametrize("color", VALID_COLORS)
    def test_accepts_hex_colors(self, dark_theme, color):
        dark_theme["colors"]["accent"] = color
        theme = Theme.model_validate(dark_theme)
        assert theme.colors.accent == color

    @pytest.mark.parametrize("color", INVALID_COLORS)
    def test_rejects_other_strings_naming_the_field(self, dark_theme, color):
        dark_theme["colors"]["surface"] = color
        with pytest.raises(ValidationError) as excinfo:
            Theme.model_validate(dark_theme)
        locations = [error["loc"] for error in excinfo.value.errors()]
        assert ("colors", "surface") in locations

    def test_rejects_unknown_spacing(self, dark_theme):
        dark_theme["spacing"] = "roomy"
        with pytest.raises(ValidationError):
            Theme.model_validate(dark_theme)


class TestBlock:
    def test_heading_requires_level(self):
        with pytest.raises(ValidationError) as excinfo:
            Block(id="h", type="heading", content="Title")
        assert "level between 1 and 3" in str(excinfo.value)

    @pytest.mark.parametrize("level", [0, 4])
    def test_heading_level_out_of_range(self, level):
        with pytest.raises(ValidationError):
            Block(id="h", type="heading", content="Title", level=level)

    def test_level_not_allowed_on_paragraph(self):
        with pytest.raises(ValidationError) as excinfo:
            Block(id="p", type="paragraph", content="Text", level=2)
        assert "only allowed on heading" in str(excinfo.value)

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            Block(id="x", type="video", content="clip")

    def test_serialization_omits_absent_optionals(self):
        data = Block(id="p", type="paragraph", content="Text").model_dump()
        assert data == {"id": "p", "type": "paragraph", "content": "Text"}


class TestTemplate:
    def test_round_trip_preserves_every_field(self, template_document):
        template = Template.model_validate(template_document)
        restored = Template.model_validate_json(template.model_dump_json())
        assert restored == template
        assert restored.blocks[2].properties == {"Status": "select", "Due": {"type": "date", "required": True}}
        assert restored.blocks[2].children[0].content == "Nested note"

    def test_round_trip_with_links(self, template_document):
        template_document["notion_page_id"] = "page-123"
        template_document["shared_url"] = "https://www.notion.so/page-123"
        template = Template.model_validate(template_document)
        assert Template.model_validate(template.model_dump(mode="json")) == template

    def test_absent_links_are_not_serialized(self, template_document):
        data = Template.model_validate(template_document).model_dump(mode="json")
        assert "notion_page_id" not in data
        assert "shared_url" not in data

    def test_duplicate_block_ids_rejected_including_children(self, template_document):
        template_document["blocks"][2]["children"][0]["id"] = "b1"
        with pytest.raises(ValidationError) as excinfo:
            Template.model_validate(template_document)
        assert "duplicates: b1" in str(excinfo.value)

    def test_updated_before_created_rejected(self, template_document):
        template = Template.model_validate(template_document)
        template_document["updated_at"] = (template.created_at - timedelta(seconds=1)).isoformat()
        with pytest.raises(ValidationError):
            Template.model_validate(template_document)

    def test_requires_at_least_one_block(self, template_document):
        template_document["blocks"] = []
        with pytest.raises(ValidationError):
            Template.model_validate(template_document)

    def test_theme_preset_name_expands(self, template_document):
        template_document["theme"] = "modern"
        template = Template.model_validate(template_document)
        assert template.theme.name == "modern"
        assert template.theme.colors.primary == "#8b5cf6"

    def test_relative_shared_url_rejected(self, template_document):
        template_document["shared_url"] = "/pages/123"
        with pytest.raises(ValidationError) as excinfo:
            Template.model_validate(template_document)
        assert "not an absolute URL" in str(excinfo.value)

    def test_naive_timestamps_treated_as_utc(self, template_document):
        template_document["created_at"] = "2024-05-01T12:00:00"
        template_document["updated_at"] = "2024-05-02T12:00:00"
        template = Template.model_validate(template_document)
        assert template.created_at.utcoffset() == timedelta(0)
