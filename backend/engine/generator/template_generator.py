from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set
import logging
import time
import uuid

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from api.schemas.generation import ErrorDetail, GenerationMetadata, GenerationRequest
from api.schemas.mcp import ToolCall, ToolCallResult, ToolDefinition
from api.schemas.template import DESCRIPTION_MAX_LENGTH, DESCRIPTION_MIN_LENGTH, Block, Template
from core.errors import AppError
from engine.generator.fallback import TITLE_MAX_LENGTH, build_fallback_blocks, title_from_description
from engine.generator.prompts import get_system_prompt, get_user_prompt
from engine.generator.response_parser import extract_json
from engine.generator.text_generation import TextGenerator
from engine.generator.tool_loop import DEFAULT_MAX_ITERATIONS, LoopStatus, ToolLoop, ToolLoopResult

# Configure logger
logger = logging.getLogger(__name__)


class GenerationOutcome(BaseModel):
    template: Template
    tool_calls: List[ToolCall] = Field(default_factory=list)
    tool_results: List[ToolCallResult] = Field(default_factory=list)
    metadata: GenerationMetadata
    error: Optional[ErrorDetail] = None


def _new_block_id() -> str:
    return f"block-{uuid.uuid4().hex[:8]}"


def _heading_level(item: Dict[str, Any]) -> int:
    properties = item.get("properties") if isinstance(item.get("properties"), dict) else {}
    for candidate in (item.get("level"), properties.get("level")):
        try:
            level = int(candidate)
        except (TypeError, ValueError):
            continue
        return min(max(level, 1), 3)
    return 1


def _normalise_items(items: List[Any], seen: Set[str]) -> List[Dict[str, Any]]:
    normalised = []
    for item in items:
        if not isinstance(item, dict):
            raise ValueError(f"Block entries must be objects, got {type(item).__name__}")

        block = dict(item)
        block_id = block.get("id")
        if not isinstance(block_id, str) or not block_id or block_id in seen:
            block_id = _new_block_id()
        seen.add(block_id)
        block["id"] = block_id

        block_type = str(block.get("type", "paragraph")).lower()
        block["type"] = block_type
        content = block.get("content")
        block["content"] = "" if content is None else str(content)

        if block_type == "heading":
            block["level"] = _heading_level(block)
        else:
            block.pop("level", None)

        children = block.get("children")
        if isinstance(children, list) and children:
            block["children"] = _normalise_items(children, seen)
        else:
            block.pop("children", None)

        normalised.append(block)
    return normalised


def normalise_blocks(raw_blocks: Any) -> Optional[List[Block]]:
    """
    Repair common defects in model-produced blocks.

    Missing or duplicate ids are reassigned and heading levels are taken from
    ``level`` or ``properties.level`` (default 1). Returns None when the
    blocks are absent or still invalid afterwards.
    """
    if not isinstance(raw_blocks, list) or not raw_blocks:
        return None
    try:
        items = _normalise_items(raw_blocks, set())
        return [Block.model_validate(item) for item in items]
    except (ValueError, PydanticValidationError) as e:
        logger.warning(f"Discarding model blocks: {str(e)}")
        return None


class TemplateGenerator:
    """
    Turns a generation request into a Template.

    Malformed model output never escapes this class: it degrades to the
    fallback blocks. Only failures of the text generator itself are reported
    as an error next to the (fallback) template.
    """

    def __init__(self, generator: TextGenerator, registry=None, max_iterations: int = DEFAULT_MAX_ITERATIONS):
        self.generator = generator
        self.registry = registry
        self.max_iterations = max_iterations

    async def collect_tools(self, server_ids: List[str]) -> List[ToolDefinition]:
        """
        Tools the model may use, discovering servers not yet known to the registry.

        With no explicit selection every active configured server is used.
        Discovery failures are logged and the server is skipped.
        """
        if self.registry is None:
            return []

        if not server_ids:
            client = self.registry.client
            server_ids = [server.id for server in client.get_active_servers()] if client else self.registry.server_ids()

        for server_id in server_ids:
            if self.registry.server_tools(server_id) or self.registry.client is None:
                continue
            try:
                await self.registry.discover(server_id)
            except AppError as e:
                logger.warning(f"Skipping MCP server {server_id}: {e.message}")

        return self.registry.tools_for_servers(server_ids)

    async def generate(self, request: GenerationRequest) -> GenerationOutcome:
        """
        Generate a template for a validated request.

        Args:
            request: The generation request

        Returns:
            GenerationOutcome with the template, any tool activity and metadata
        """
        started = time.perf_counter()

        tools: List[ToolDefinition] = []
        if request.use_mcp:
            tools = await self.collect_tools(request.selected_servers)
            logger.info(f"{len(tools)} tool(s) available for generation")

        loop = ToolLoop(self.generator, self.registry, max_iterations=self.max_iterations)
        result = await loop.run(
            description=request.description,
            prompt=get_user_prompt(request),
            system_prompt=get_system_prompt(request.use_mcp, tools),
            use_mcp=request.use_mcp and bool(tools),
            allowed_tools=tools,
        )

        template = self._build_template(request, result)
        degraded = result.status == LoopStatus.FAILED

        metadata = GenerationMetadata(
            model_used=result.model,
            generation_time=round(time.perf_counter() - started, 3),
            token_count=result.tokens_used,
            iterations=result.iterations,
            loop_status=result.status.value,
            degraded=degraded,
        )
        logger.info(
            f"Generated template {template.id} with {len(template.blocks)} block(s) "
            f"(status={result.status.value}, iterations={result.iterations})"
        )
        return GenerationOutcome(
            template=template,
            tool_calls=result.tool_calls,
            tool_results=result.tool_results,
            metadata=metadata,
            error=result.error,
        )

    def _build_template(self, request: GenerationRequest, result: ToolLoopResult) -> Template:
        title = title_from_description(request.description)
        description = request.description
        blocks: Optional[List[Block]] = None

        if result.template is not None:
            candidate_title = result.template.get("title")
            if isinstance(candidate_title, str) and candidate_title.strip():
                title = candidate_title.strip()[:TITLE_MAX_LENGTH]

            candidate_description = result.template.get("description")
            if (
                isinstance(candidate_description, str)
                and DESCRIPTION_MIN_LENGTH <= len(candidate_description) <= DESCRIPTION_MAX_LENGTH
            ):
                description = candidate_description

            blocks = normalise_blocks(result.template.get("blocks"))

        if blocks is None:
            # Unparsable text feeds the fallback; parsed JSON without usable blocks gets the defaults
            raw_text = result.last_text if extract_json(result.last_text) is None else ""
            blocks = build_fallback_blocks(request.description, raw_text)

        now = datetime.now(timezone.utc)
        return Template(
            id=str(uuid.uuid4()),
            title=title,
            description=description,
            blocks=blocks,
            theme=request.theme,
            created_at=now,
            updated_at=now,
            is_public=False,
        )
