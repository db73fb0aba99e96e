"""
Bounded tool-calling loop.

The loop is a two-node LangGraph state machine::

    START -> call_model -(tool calls)-> dispatch_tools -(running)-> call_model ...
                  |                           |
                  +-(template/neither/failed)-+-(done/gave_up)-> END

Every model call counts as one iteration; the loop never calls the model
more than ``max_iterations`` times.
"""
from enum import Enum
from typing import Any, Dict, List, Optional, TypedDict
import logging

from langgraph.graph import END, START, StateGraph
from pydantic import BaseModel, Field

from api.schemas.generation import ErrorDetail
from api.schemas.mcp import ToolCall, ToolCallResult, ToolDefinition
from core.errors import GenerationFailure
from engine.generator.prompts import get_tool_result_prompt
from engine.generator.response_parser import IterationOutcome, parse_response
from engine.generator.text_generation import TextGenerator

# Configure logger
logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 3


class LoopStep(str, Enum):
    CALL_MODEL = "call_model"
    DISPATCH_TOOLS = "dispatch_tools"


class LoopStatus(str, Enum):
    RUNNING = "running"
    DONE = "done"
    GAVE_UP = "gave_up"
    FAILED = "failed"


class LoopState(TypedDict):
    description: str
    system_prompt: str
    prompt: str
    use_mcp: bool
    allowed_tools: Optional[List[str]]
    max_iterations: int
    iteration: int
    status: LoopStatus
    outcomes: List[IterationOutcome]
    last_text: str
    template: Optional[Dict[str, Any]]
    pending_calls: List[ToolCall]
    tool_calls: List[ToolCall]
    tool_results: List[ToolCallResult]
    tokens_used: int
    model: Optional[str]
    error: Optional[ErrorDetail]


class ToolLoopResult(BaseModel):
    status: LoopStatus
    iterations: int
    outcomes: List[IterationOutcome] = Field(default_factory=list)
    last_text: str = ""
    template: Optional[Dict[str, Any]] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)
    tool_results: List[ToolCallResult] = Field(default_factory=list)
    tokens_used: int = 0
    model: Optional[str] = None
    error: Optional[ErrorDetail] = None


class ToolLoop:
    """Drives the model and the tool registry until a template is produced or the bound is hit."""

    def __init__(self, generator: TextGenerator, registry=None, max_iterations: int = DEFAULT_MAX_ITERATIONS):
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.generator = generator
        self.registry = registry
        self.max_iterations = max_iterations
        self.workflow = self._create_workflow()

    def _create_workflow(self):
        """Create the loop workflow using LangGraph."""
        builder = StateGraph(LoopState)

        builder.add_node(LoopStep.CALL_MODEL.value, self._call_model_node)
        builder.add_node(LoopStep.DISPATCH_TOOLS.value, self._dispatch_tools_node)

        builder.add_edge(START, LoopStep.CALL_MODEL.value)
        builder.add_conditional_edges(
            LoopStep.CALL_MODEL.value,
            self._after_model,
            {LoopStep.DISPATCH_TOOLS.value: LoopStep.DISPATCH_TOOLS.value, END: END},
        )
        builder.add_conditional_edges(
            LoopStep.DISPATCH_TOOLS.value,
            self._after_dispatch,
            {LoopStep.CALL_MODEL.value: LoopStep.CALL_MODEL.value, END: END},
        )

        return builder.compile()

    async def _call_model_node(self, state: LoopState) -> Dict[str, Any]:
        iteration = state["iteration"] + 1
        logger.info(f"Tool loop iteration {iteration}/{state['max_iterations']}")

        try:
            inference = await self.generator.generate(state["prompt"], system_prompt=state["system_prompt"])
        except GenerationFailure as e:
            logger.error(f"Text generation failed on iteration {iteration}: {e.message}")
            return {
                "iteration": iteration,
                "status": LoopStatus.FAILED,
                "pending_calls": [],
                "error": ErrorDetail(code=e.code, message=e.message),
            }

        parsed = parse_response(inference.text)
        outcome = parsed.outcome
        update: Dict[str, Any] = {
            "iteration": iteration,
            "outcomes": state["outcomes"] + [outcome],
            "last_text": inference.text,
            "tokens_used": state["tokens_used"] + inference.tokens_used,
            "model": inference.model or state["model"],
            "pending_calls": [],
        }
        if parsed.template is not None:
            update["template"] = parsed.template

        calls = parsed.tool_calls if state["use_mcp"] and self.registry is not None else []
        if calls:
            update["pending_calls"] = calls
            update["tool_calls"] = state["tool_calls"] + calls
            update["status"] = LoopStatus.RUNNING
        else:
            if parsed.tool_calls:
                logger.info("Model requested tools but tool use is disabled; ignoring them")
            update["status"] = LoopStatus.DONE

        return update

    async def _dispatch_tools_node(self, state: LoopState) -> Dict[str, Any]:
        calls = state["pending_calls"]
        logger.info(f"Dispatching {len(calls)} tool call(s)")
        results = await self.registry.call_batch(calls, allowed_tools=state["allowed_tools"])

        failed = sum(1 for result in results if not result.success)
        if failed:
            logger.warning(f"{failed} of {len(results)} tool call(s) failed")

        update: Dict[str, Any] = {
            "pending_calls": [],
            "tool_results": state["tool_results"] + results,
        }
        if state["template"] is not None:
            update["status"] = LoopStatus.DONE
        elif state["iteration"] >= state["max_iterations"]:
            logger.warning(f"Tool loop gave up after {state['iteration']} iterations")
            update["status"] = LoopStatus.GAVE_UP
        else:
            update["status"] = LoopStatus.RUNNING
            update["prompt"] = get_tool_result_prompt(state["description"], results)
        return update

    def _after_model(self, state: LoopState) -> str:
        if state["status"] == LoopStatus.RUNNING and state["pending_calls"]:
            return LoopStep.DISPATCH_TOOLS.value
        return END

    def _after_dispatch(self, state: LoopState) -> str:
        if state["status"] == LoopStatus.RUNNING:
            return LoopStep.CALL_MODEL.value
        return END

    async def run(
        self,
        description: str,
        prompt: str,
        system_prompt: str,
        use_mcp: bool = False,
        allowed_tools: Optional[List[ToolDefinition]] = None,
    ) -> ToolLoopResult:
        """
        Run the loop to completion.

        Args:
            description: Request description, repeated in follow-up prompts
            prompt: Initial user prompt
            system_prompt: System prompt (lists tools when use_mcp is set)
            use_mcp: Whether requested tool calls are dispatched
            allowed_tools: Tools the model may call; None allows every registered tool

        Returns:
            ToolLoopResult with the final status and everything collected
        """
        state: LoopState = {
            "description": description,
            "system_prompt": system_prompt,
            "prompt": prompt,
            "use_mcp": use_mcp,
            "allowed_tools": [tool.name for tool in allowed_tools] if allowed_tools is not None else None,
            "max_iterations": self.max_iterations,
            "iteration": 0,
            "status": LoopStatus.RUNNING,
            "outcomes": [],
            "last_text": "",
            "template": None,
            "pending_calls": [],
            "tool_calls": [],
            "tool_results": [],
            "tokens_used": 0,
            "model": getattr(self.generator, "model_name", None),
            "error": None,
        }

        # Two graph steps per iteration, plus headroom for the final transition
        config = {"recursion_limit": 2 * self.max_iterations + 5}
        final = await self.workflow.ainvoke(state, config=config)

        return ToolLoopResult(
            status=final["status"],
            iterations=final["iteration"],
            outcomes=final["outcomes"],
            last_text=final["last_text"],
            template=final["template"],
            tool_calls=final["tool_calls"],
            tool_results=final["tool_results"],
            tokens_used=final["tokens_used"],
            model=final["model"],
            error=final["error"],
        )
