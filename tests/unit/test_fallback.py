"""Tests for the fallback block builder."""
import pytest

from api.schemas.template import Template
from engine.generator.fallback import (
    GENERIC_PARAGRAPH,
    build_fallback_blocks,
    title_from_description,
)
from engine.generator.themes import get_theme_preset

DESCRIPTION = "A fitness tracker with workouts, meals and weekly progress charts"


class TestTitleFromDescription:
    def test_first_six_words(self):
        assert title_from_description(DESCRIPTION) == "A fitness tracker with workouts, meals"

    def test_short_description(self):
        assert title_from_description("Daily journal") == "Daily journal"

    def test_blank_description(self):
        assert title_from_description("   ") == "Generated Template"

    def test_long_words_cut_to_title_limit(self):
        assert title_from_description(" ".join(["y" * 60] * 6)) == " ".join(["y" * 60] * 6)[:200]
        assert len(title_from_description("z" * 2000)) == 200


class TestBuildFallbackBlocks:
    def test_starts_with_heading_and_description(self):
        blocks = build_fallback_blocks(DESCRIPTION, "Some prose")
        assert blocks[0].type == "heading"
        assert blocks[0].level == 1
        assert blocks[0].content == title_from_description(DESCRIPTION)
        assert blocks[1].type == "paragraph"
        assert blocks[1].content == DESCRIPTION

    @pytest.mark.parametrize("raw_text", ["", None, "   \n\n  "])
    def test_empty_text_adds_generic_paragraph(self, raw_text):
        blocks = build_fallback_blocks(DESCRIPTION, raw_text)
        assert len(blocks) == 3
        assert blocks[2].content == GENERIC_PARAGRAPH

    def test_short_first_line_becomes_subheading(self):
        text = "## Workouts\nLog sets and reps\nTrack rest days\n\nMeals\nCalories per day"
        blocks = build_fallback_blocks(DESCRIPTION, text)
        assert [(block.type, block.level) for block in blocks[2:]] == [
            ("heading", 2),
            ("paragraph", None),
            ("heading", 2),
            ("paragraph", None),
        ]
        assert blocks[2].content == "Workouts"
        assert blocks[3].content == "Log sets and reps\nTrack rest days"

    def test_long_first_line_becomes_paragraph(self):
        long_line = "word " * 30
        blocks = build_fallback_blocks(DESCRIPTION, long_line)
        assert blocks[2].type == "paragraph"
        assert blocks[2].content == long_line.strip()

    def test_at_most_ten_sections(self):
        text = "\n\n".join(f"Section {n}" for n in range(15))
        blocks = build_fallback_blocks(DESCRIPTION, text)
        assert len(blocks) == 2 + 10
        assert blocks[-1].content == "Section 9"

    def test_deterministic(self):
        text = "Intro\nbody\n\nMore"
        first = build_fallback_blocks(DESCRIPTION, text)
        second = build_fallback_blocks(DESCRIPTION, text)
        assert [block.model_dump() for block in first] == [block.model_dump() for block in second]

    def test_ids_unique_and_template_valid(self):
        text = "Same\n\nSame\n\nSame"
        blocks = build_fallback_blocks(DESCRIPTION, text)
        assert len({block.id for block in blocks}) == len(blocks)
        template = Template(
            id="t",
            title="x",
            description=DESCRIPTION,
            blocks=blocks,
            theme=get_theme_preset("minimal"),
            created_at="2024-01-01T00:00:00Z",
            updated_at="2024-01-01T00:00:00Z",
        )
        assert len(template.blocks) == 5

    @pytest.mark.parametrize("raw_text", ["{broken json", "```\n```", "#\n\n#", "\x00\x01", "\n" * 50])
    def test_never_raises_on_odd_input(self, raw_text):
        blocks = build_fallback_blocks(DESCRIPTION, raw_text)
        assert len(blocks) >= 2
