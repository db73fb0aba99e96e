"""Tests for the bounded tool-calling loop."""
import json

import pytest

from core.errors import GenerationFailure, NotImplementedFeature
from engine.generator.response_parser import IterationOutcome
from engine.generator.tool_loop import LoopStatus, ToolLoop
from engine.mcp.registry import ToolRegistry

SEARCH_CALL = json.dumps({"tool_calls": [{"tool_name": "search_pages", "parameters": {"query": "habits"}}]})
TEMPLATE_RESPONSE = json.dumps({"template": {"title": "Habit Tracker", "blocks": []}})


@pytest.fixture
def registry(fake_mcp_client, server_factory, tool_factory):
    search = tool_factory("search_pages", required=["query"], properties={"query": {"type": "string"}})
    client = fake_mcp_client(servers=[server_factory()], tools=[search])
    registry = ToolRegistry(client)
    registry.register(search)
    return registry


async def run_loop(generator, registry, use_mcp=True, max_iterations=3, allowed_tools=None):
    loop = ToolLoop(generator, registry, max_iterations=max_iterations)
    return await loop.run(
        description="A habit tracker for daily routines",
        prompt="Generate a template",
        system_prompt="system",
        use_mcp=use_mcp,
        allowed_tools=allowed_tools,
    )


class TestIterationBound:
    @pytest.mark.parametrize("max_iterations", [1, 2, 3, 5])
    async def test_endless_tool_requests_stop_at_the_bound(self, fake_generator, registry, max_iterations):
        generator = fake_generator([SEARCH_CALL])
        result = await run_loop(generator, registry, max_iterations=max_iterations)

        assert len(generator.calls) == max_iterations
        assert result.iterations == max_iterations
        assert result.status == LoopStatus.GAVE_UP
        assert len(result.tool_results) == max_iterations
        assert result.template is None

    def test_bound_must_be_positive(self, fake_generator, registry):
        with pytest.raises(ValueError):
            ToolLoop(fake_generator(["x"]), registry, max_iterations=0)


class TestOutcomes:
    async def test_template_on_first_call(self, fake_generator, registry):
        generator = fake_generator([TEMPLATE_RESPONSE])
        result = await run_loop(generator, registry)

        assert result.status == LoopStatus.DONE
        assert result.iterations == 1
        assert result.outcomes == [IterationOutcome.TEMPLATE]
        assert result.template["title"] == "Habit Tracker"
        assert registry.client.dispatched == []

    async def test_tool_round_then_template(self, fake_generator, registry):
        generator = fake_generator([SEARCH_CALL, TEMPLATE_RESPONSE])
        result = await run_loop(generator, registry)

        assert result.status == LoopStatus.DONE
        assert result.iterations == 2
        assert result.outcomes == [IterationOutcome.TOOL_CALLS, IterationOutcome.TEMPLATE]
        assert [call.tool_name for call in result.tool_calls] == ["search_pages"]
        assert result.tool_results[0].success
        assert generator.calls[1]["prompt"].startswith("Results of the tools you requested")
        assert "search_pages ok on notion-mcp" in generator.calls[1]["prompt"]

    async def test_template_wins_but_requested_tools_still_run(self, fake_generator, registry):
        both = json.dumps({
            "template": {"title": "Both"},
            "tool_calls": [{"tool_name": "search_pages", "parameters": {"query": "q"}}],
        })
        generator = fake_generator([both])
        result = await run_loop(generator, registry)

        assert result.status == LoopStatus.DONE
        assert len(generator.calls) == 1
        assert result.template == {"title": "Both"}
        assert len(registry.client.dispatched) == 1

    async def test_prose_terminates_immediately(self, fake_generator, registry):
        generator = fake_generator(["I think a tracker needs three sections."])
        result = await run_loop(generator, registry)

        assert result.status == LoopStatus.DONE
        assert result.outcomes == [IterationOutcome.NEITHER]
        assert result.template is None
        assert result.last_text.startswith("I think")

    async def test_tool_calls_ignored_without_mcp(self, fake_generator, registry):
        generator = fake_generator([SEARCH_CALL])
        result = await run_loop(generator, registry, use_mcp=False)

        assert result.status == LoopStatus.DONE
        assert result.iterations == 1
        assert result.tool_calls == []
        assert registry.client.dispatched == []

    async def test_tokens_accumulate(self, fake_generator, registry):
        generator = fake_generator([SEARCH_CALL, TEMPLATE_RESPONSE])
        result = await run_loop(generator, registry)
        assert result.tokens_used == 20
        assert result.model == "fake-model"


class TestFailures:
    async def test_generation_failure_marks_loop_failed(self, fake_generator, registry):
        generator = fake_generator([GenerationFailure("OpenRouter unavailable")])
        result = await run_loop(generator, registry)

        assert result.status == LoopStatus.FAILED
        assert result.iterations == 1
        assert result.error.code == "GENERATION_FAILED"
        assert result.error.message == "OpenRouter unavailable"

    async def test_failure_after_a_tool_round(self, fake_generator, registry):
        generator = fake_generator([SEARCH_CALL, GenerationFailure("timeout")])
        result = await run_loop(generator, registry)

        assert result.status == LoopStatus.FAILED
        assert len(result.tool_results) == 1

    async def test_not_implemented_provider_propagates(self, fake_generator, registry):
        generator = fake_generator([NotImplementedFeature("Local models are not supported")])
        with pytest.raises(NotImplementedFeature):
            await run_loop(generator, registry)

    async def test_failed_calls_do_not_abort_the_loop(self, fake_generator, registry):
        registry.client.failures["search_pages"] = "rate limited"
        calls = json.dumps({"tool_calls": [
            {"tool_name": "search_pages", "parameters": {"query": "a"}},
            {"tool_name": "missing_tool", "parameters": {}},
        ]})
        generator = fake_generator([calls, TEMPLATE_RESPONSE])
        result = await run_loop(generator, registry)

        assert result.status == LoopStatus.DONE
        assert [r.error.code for r in result.tool_results] == ["TOOL_ERROR", "TOOL_NOT_FOUND"]
        assert len(registry.client.dispatched) == 1

    async def test_calls_outside_allowed_tools_are_not_dispatched(self, fake_generator, registry, tool_factory):
        generator = fake_generator([SEARCH_CALL, TEMPLATE_RESPONSE])
        result = await run_loop(generator, registry, allowed_tools=[tool_factory("get_page")])

        assert result.tool_results[0].error.code == "TOOL_NOT_FOUND"
        assert registry.client.dispatched == []
