"""Tests for request-to-template generation."""
import json

import pytest

from api.schemas.generation import GenerationRequest
from core.errors import GenerationFailure
from engine.generator.fallback import GENERIC_PARAGRAPH
from engine.generator.template_generator import TemplateGenerator, normalise_blocks
from engine.mcp.registry import ToolRegistry

FITNESS = "A fitness tracker with weekly goals and progress charts"


def make_request(**overrides):
    payload = {"description": FITNESS, "theme": "dark", "complexity": "intermediate", "useMCP": False}
    payload.update(overrides)
    return GenerationRequest.model_validate(payload)


@pytest.fixture
def registry(fake_mcp_client, server_factory, tool_factory):
    search = tool_factory("search_pages", properties={"query": {"type": "string"}})
    client = fake_mcp_client(servers=[server_factory()], tools=[search])
    return ToolRegistry(client)


class TestProseResponse:
    async def test_fitness_tracker_falls_back_to_structured_blocks(self, fake_generator):
        generator = fake_generator([
            "Here is a plan.\n\nWorkouts\nTrack sets, reps and rest\n\nMeals\nLog calories per meal"
        ])
        outcome = await TemplateGenerator(generator).generate(make_request())
        template = outcome.template

        assert template.title
        assert template.blocks[0].type == "heading"
        assert template.blocks[0].level == 1
        assert FITNESS.startswith(template.blocks[0].content)
        assert len(template.blocks[0].content.split()) <= 6
        assert template.blocks[1].type == "paragraph"
        assert template.blocks[1].content == FITNESS
        assert template.theme.name == "dark"
        assert template.is_public is False
        assert template.created_at == template.updated_at
        assert outcome.error is None
        assert outcome.metadata.degraded is False
        assert outcome.metadata.loop_status == "done"

    async def test_single_long_word_description_gets_bounded_title(self, fake_generator):
        description = "x" * 300
        request = make_request(description=description, complexity="simple")
        outcome = await TemplateGenerator(fake_generator(["plain prose"])).generate(request)

        assert outcome.template.title == "x" * 200
        assert outcome.template.blocks[1].content == description
        assert outcome.error is None

    async def test_empty_response_gets_generic_paragraph(self, fake_generator):
        outcome = await TemplateGenerator(fake_generator([""])).generate(make_request())
        assert [block.content for block in outcome.template.blocks][2] == GENERIC_PARAGRAPH


class TestStructuredResponse:
    async def test_model_template_adopted(self, fake_generator):
        response = json.dumps({"template": {
            "title": "Fitness Hub",
            "description": "Workouts and meals in one place",
            "blocks": [
                {"id": "b1", "type": "heading", "level": 1, "content": "Fitness Hub"},
                {"id": "b2", "type": "database", "content": "Workouts", "properties": {"Date": "date"}},
            ],
        }})
        outcome = await TemplateGenerator(fake_generator([f"```json\n{response}\n```"])).generate(make_request())
        template = outcome.template

        assert template.title == "Fitness Hub"
        assert template.description == "Workouts and meals in one place"
        assert [block.id for block in template.blocks] == ["b1", "b2"]
        assert outcome.metadata.model_used == "fake-model"
        assert outcome.metadata.iterations == 1

    async def test_short_model_description_ignored(self, fake_generator):
        response = json.dumps({"template": {
            "title": "Fit",
            "description": "Too short",
            "blocks": [{"id": "b1", "type": "paragraph", "content": "Hi"}],
        }})
        outcome = await TemplateGenerator(fake_generator([response])).generate(make_request())
        assert outcome.template.description == FITNESS

    async def test_long_model_title_truncated(self, fake_generator):
        response = json.dumps({"template": {"title": "T" * 300, "blocks": [{"type": "paragraph", "content": "x"}]}})
        outcome = await TemplateGenerator(fake_generator([response])).generate(make_request())
        assert len(outcome.template.title) == 200

    async def test_unusable_blocks_use_defaults_not_raw_json(self, fake_generator):
        response = json.dumps({"template": {"title": "Broken", "blocks": [{"type": "video", "content": "clip"}]}})
        outcome = await TemplateGenerator(fake_generator([response])).generate(make_request())
        blocks = outcome.template.blocks

        assert outcome.template.title == "Broken"
        assert len(blocks) == 3
        assert blocks[2].content == GENERIC_PARAGRAPH


class TestFailures:
    async def test_generation_failure_degrades_to_fallback(self, fake_generator):
        generator = fake_generator([GenerationFailure("OpenRouter unavailable")])
        outcome = await TemplateGenerator(generator).generate(make_request())

        assert outcome.error.code == "GENERATION_FAILED"
        assert outcome.metadata.degraded is True
        assert outcome.metadata.loop_status == "failed"
        assert outcome.template.blocks[1].content == FITNESS


class TestToolUse:
    async def test_selected_server_is_discovered_and_used(self, fake_generator, registry):
        generator = fake_generator([
            json.dumps({"tool_calls": [{"tool_name": "search_pages", "parameters": {"query": "fitness"}}]}),
            json.dumps({"template": {"title": "Fitness", "blocks": [{"id": "a", "type": "divider"}]}}),
        ])
        request = make_request(useMCP=True, selectedMCPServers=["notion-mcp"])
        outcome = await TemplateGenerator(generator, registry).generate(request)

        assert registry.has_tool("search_pages")
        assert "search_pages" in generator.calls[0]["system_prompt"]
        assert len(outcome.tool_results) == 1
        assert outcome.tool_results[0].success
        assert outcome.metadata.iterations == 2

    async def test_unknown_server_skipped_and_tool_calls_ignored(self, fake_generator, registry):
        generator = fake_generator([
            json.dumps({"tool_calls": [{"tool_name": "search_pages", "parameters": {}}]}),
        ])
        request = make_request(useMCP=True, selectedMCPServers=["ghost"])
        outcome = await TemplateGenerator(generator, registry).generate(request)

        assert outcome.tool_calls == []
        assert registry.client.dispatched == []
        assert outcome.metadata.iterations == 1
        assert outcome.template.blocks[0].type == "heading"

    async def test_no_selection_uses_active_servers(self, fake_generator, registry):
        tools = await TemplateGenerator(fake_generator(["x"]), registry).collect_tools([])
        assert [tool.name for tool in tools] == ["search_pages"]


class TestNormaliseBlocks:
    def test_reassigns_missing_and_duplicate_ids(self):
        blocks = normalise_blocks([
            {"type": "paragraph", "content": "a"},
            {"id": "x", "type": "paragraph", "content": "b"},
            {"id": "x", "type": "paragraph", "content": "c", "children": [{"id": "x", "type": "quote"}]},
        ])
        ids = [blocks[0].id, blocks[1].id, blocks[2].id, blocks[2].children[0].id]
        assert len(set(ids)) == 4
        assert blocks[1].id == "x"

    def test_heading_levels(self):
        blocks = normalise_blocks([
            {"id": "a", "type": "heading", "content": "A"},
            {"id": "b", "type": "heading", "content": "B", "properties": {"level": 2}},
            {"id": "c", "type": "heading", "content": "C", "level": 7},
            {"id": "d", "type": "Paragraph", "content": "D", "level": 2},
        ])
        assert [block.level for block in blocks] == [1, 2, 3, None]
        assert blocks[3].type == "paragraph"

    def test_null_content_becomes_empty(self):
        assert normalise_blocks([{"id": "a", "type": "divider", "content": None}])[0].content == ""

    @pytest.mark.parametrize("raw", [None, [], "blocks", [1, 2], [{"type": "video"}]])
    def test_unusable_input(self, raw):
        assert normalise_blocks(raw) is None
