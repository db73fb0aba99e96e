import json
from typing import Any, Dict, List, Optional

from langchain_core.prompts import PromptTemplate

from api.schemas.generation import GenerationRequest
from api.schemas.mcp import ToolCallResult, ToolDefinition

BASE_SYSTEM_PROMPT = (
    "You are an expert Notion template generator. Always respond with valid JSON."
)

# Define the JSON structure separately as a string literal
TEMPLATE_JSON_STRUCTURE = """
{
    "template": {
        "title": "Short template title",
        "description": "One or two sentences describing the template",
        "blocks": [
            {"id": "block-1", "type": "heading", "level": 1, "content": "Heading text"},
            {"id": "block-2", "type": "paragraph", "content": "Paragraph text"},
            {"id": "block-3", "type": "database", "content": "Tasks", "properties": {"Status": "select", "Due": "date"}},
            {"id": "block-4", "type": "divider", "content": ""}
        ]
    }
}
"""

TOOL_CALL_JSON_STRUCTURE = """
{
    "tool_calls": [
        {"tool_name": "name_of_tool", "tool_use_id": "call-1", "parameters": {"param": "value"}}
    ]
}
"""

USER_PROMPT = PromptTemplate.from_template(
    """Generate a Notion template.

Description: {description}
Theme: {theme_name}
Target audience: {audience}
Complexity: {complexity}
Include images: {include_images}

Allowed block types: heading (with level 1-3), paragraph, database, table, image, quote, code, divider.
{complexity_hint}

Respond with a single JSON object shaped like:
{structure}"""
)

TOOL_RESULT_PROMPT = PromptTemplate.from_template(
    """Results of the tools you requested:

{results}

Use these results to finish the template for: {description}
Respond with a single JSON object containing a "template" key, or request more tools with "tool_calls"."""
)

COMPLEXITY_HINTS = {
    "simple": "Keep it short: a handful of blocks with a single section.",
    "intermediate": "Use a few sections with headings, at least one database and supporting paragraphs.",
    "advanced": "Build a complete workspace: several sections, multiple databases or tables with properties, and nested structure where useful.",
}


def describe_tools(tools: List[ToolDefinition]) -> str:
    """Render tool descriptors (name, description, JSON input shape) for the system prompt."""
    lines = []
    for tool in tools:
        lines.append(f"- {tool.name}: {tool.description}")
        lines.append(f"  input_schema: {json.dumps(tool.input_schema, sort_keys=True)}")
    return "\n".join(lines)


def get_system_prompt(use_mcp: bool, tools: Optional[List[ToolDefinition]] = None) -> str:
    if not use_mcp or not tools:
        return BASE_SYSTEM_PROMPT

    return (
        f"{BASE_SYSTEM_PROMPT}\n\n"
        "You can call the following tools before producing the template:\n"
        f"{describe_tools(tools)}\n\n"
        "To call tools, respond with JSON shaped like:\n"
        f"{TOOL_CALL_JSON_STRUCTURE}\n"
        "When you have everything you need, respond with the template JSON instead."
    )


def get_user_prompt(request: GenerationRequest) -> str:
    return USER_PROMPT.format(
        description=request.description,
        theme_name=request.theme.name,
        audience=request.target_audience or "general users",
        complexity=request.complexity,
        include_images="yes" if request.include_images else "no",
        complexity_hint=COMPLEXITY_HINTS[request.complexity],
        structure=TEMPLATE_JSON_STRUCTURE,
    )


def format_tool_results(results: List[ToolCallResult]) -> str:
    entries: List[Dict[str, Any]] = []
    for result in results:
        entry: Dict[str, Any] = {
            "tool_name": result.tool_call.tool_name,
            "tool_use_id": result.tool_call.tool_use_id,
            "success": result.success,
        }
        if result.result is not None:
            entry["output"] = result.result.text()
        if result.error is not None:
            entry["error"] = result.error.message
        entries.append(entry)
    return json.dumps(entries, indent=2)


def get_tool_result_prompt(description: str, results: List[ToolCallResult]) -> str:
    return TOOL_RESULT_PROMPT.format(description=description, results=format_tool_results(results))
