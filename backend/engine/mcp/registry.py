"""Tool registry: which tools exist, which server owns each, and how to call them."""
from typing import Any, Dict, Iterable, List, Optional
import asyncio
import logging

from api.schemas.mcp import (
    MCPDiscoveryResponse,
    ToolCall,
    ToolCallError,
    ToolCallResult,
    ToolDefinition,
    ToolResponse,
    new_tool_use_id,
)
from core.errors import (
    AppError,
    InvalidParameters,
    NoServerForTool,
    NotFoundError,
    ToolDispatchFailure,
    ToolNotFound,
)
from engine.mcp.client import MCPClient

# Configure logger
logger = logging.getLogger(__name__)


def _matches_type(value: Any, expected: str) -> bool:
    if expected == "string":
        return isinstance(value, str)
    if expected == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if expected == "integer":
        return isinstance(value, int) and not isinstance(value, bool)
    if expected == "boolean":
        return isinstance(value, bool)
    if expected == "array":
        return isinstance(value, list)
    if expected == "object":
        return isinstance(value, dict)
    if expected == "null":
        return value is None
    # Unknown type names are not checked
    return True


def validate_parameters(tool: ToolDefinition, parameters: Dict[str, Any]) -> List[str]:
    """
    Check call parameters against a tool's input schema.

    Only required keys and declared primitive types are checked. Every
    problem is reported, not just the first.
    """
    schema = tool.input_schema or {}
    properties = schema.get("properties") or {}
    errors = []

    for name in schema.get("required") or []:
        if name not in parameters:
            errors.append(f"{name}: Missing required parameter")

    for name, value in parameters.items():
        declared = properties.get(name)
        if not isinstance(declared, dict) or "type" not in declared:
            continue
        expected = declared["type"]
        choices = expected if isinstance(expected, list) else [expected]
        if not any(_matches_type(value, choice) for choice in choices):
            errors.append(f"{name}: Invalid type, expected {' or '.join(str(choice) for choice in choices)}")

    return errors


def create_tool_call(tool_name: str, parameters: Dict[str, Any], tool_use_id: Optional[str] = None) -> ToolCall:
    return ToolCall(tool_name=tool_name, tool_use_id=tool_use_id or new_tool_use_id(), parameters=parameters)


class ToolRegistry:
    """
    Registry of tool definitions keyed by tool name.

    Instances are constructed explicitly and passed to whoever needs them;
    registration happens at configuration time, dispatch at request time.
    """

    def __init__(self, client: Optional[MCPClient] = None):
        self.client = client
        self.tools: Dict[str, ToolDefinition] = {}
        self._server_tools: Dict[str, List[str]] = {}

    def register(self, tool: ToolDefinition) -> None:
        """Insert or replace a tool by name."""
        previous = self.tools.get(tool.name)
        if previous is not None and previous.server_id != tool.server_id:
            self._server_tools.get(previous.server_id, []).remove(tool.name)

        self.tools[tool.name] = tool
        names = self._server_tools.setdefault(tool.server_id, [])
        if tool.name not in names:
            names.append(tool.name)

    def unregister_server(self, server_id: str) -> None:
        for name in self._server_tools.pop(server_id, []):
            if name in self.tools and self.tools[name].server_id == server_id:
                del self.tools[name]

    def clear(self) -> None:
        self.tools.clear()
        self._server_tools.clear()

    def get_tool(self, tool_name: str) -> Optional[ToolDefinition]:
        return self.tools.get(tool_name)

    def has_tool(self, tool_name: str) -> bool:
        return tool_name in self.tools

    def all_tools(self) -> List[ToolDefinition]:
        return list(self.tools.values())

    def server_tools(self, server_id: str) -> List[ToolDefinition]:
        return [self.tools[name] for name in self._server_tools.get(server_id, []) if name in self.tools]

    def server_ids(self) -> List[str]:
        return [server_id for server_id, names in self._server_tools.items() if names]

    def tools_for_servers(self, server_ids: Iterable[str]) -> List[ToolDefinition]:
        tools: List[ToolDefinition] = []
        for server_id in server_ids:
            tools.extend(self.server_tools(server_id))
        return tools

    def find_server_for_tool(self, tool_name: str) -> Optional[str]:
        """Return the id of the active server owning a tool, if any."""
        for server_id, names in self._server_tools.items():
            if tool_name not in names:
                continue
            if self.client is None:
                return None
            server = self.client.get_server(server_id)
            if server is not None and server.active:
                return server_id
        return None

    async def discover_server(self, server_id: str) -> MCPDiscoveryResponse:
        """
        Fetch everything a server exposes and register its tools.

        Tools previously registered for the server but no longer exposed are
        dropped. Raises whatever the client raises when the server is unknown,
        inactive or unreachable.
        """
        if self.client is None:
            raise NotFoundError(f"Server {server_id} not found (no MCP client configured)")

        discovery = await self.client.discover_tools(server_id)
        self.unregister_server(server_id)
        for tool in discovery.tools:
            self.register(tool)
        return discovery

    async def discover(self, server_id: str) -> List[ToolDefinition]:
        """Register and return the tools a server currently exposes."""
        return (await self.discover_server(server_id)).tools

    async def call(self, tool_call: ToolCall) -> ToolResponse:
        """
        Validate and dispatch one tool call.

        Raises:
            ToolNotFound: the tool is not registered (nothing is dispatched)
            InvalidParameters: parameters violate the tool's input schema
            NoServerForTool: no active server owns the tool
        """
        tool = self.get_tool(tool_call.tool_name)
        if tool is None:
            raise ToolNotFound(tool_call.tool_name)

        errors = validate_parameters(tool, tool_call.parameters)
        if errors:
            raise InvalidParameters(tool_call.tool_name, errors)

        server_id = self.find_server_for_tool(tool_call.tool_name)
        if server_id is None:
            raise NoServerForTool(tool_call.tool_name)

        logger.info(f"Calling tool {tool_call.tool_name} on server {server_id}")
        return await self.client.call_tool(server_id, tool_call)

    async def _call_one(self, tool_call: ToolCall, allowed_tools: Optional[List[str]]) -> ToolCallResult:
        try:
            if allowed_tools is not None and tool_call.tool_name not in allowed_tools:
                raise ToolNotFound(tool_call.tool_name)
            response = await self.call(tool_call)
        except ToolDispatchFailure as e:
            logger.warning(f"Tool call {tool_call.tool_use_id} ({tool_call.tool_name}) rejected: {e.message}")
            return ToolCallResult(
                tool_call=tool_call, success=False, error=ToolCallError(code=e.code, message=e.message)
            )

        if response.is_error:
            return ToolCallResult(
                tool_call=tool_call,
                success=False,
                result=response,
                error=ToolCallError(code="TOOL_ERROR", message=response.text() or "Tool reported an error"),
            )
        return ToolCallResult(tool_call=tool_call, success=True, result=response)

    async def call_batch(
        self, tool_calls: List[ToolCall], allowed_tools: Optional[List[str]] = None
    ) -> List[ToolCallResult]:
        """
        Dispatch calls concurrently; one failure never affects the others.

        Returns one result per call, in the order the calls were given.
        """
        outcomes = await asyncio.gather(
            *(self._call_one(tool_call, allowed_tools) for tool_call in tool_calls), return_exceptions=True
        )

        results = []
        for tool_call, outcome in zip(tool_calls, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error(f"Unexpected failure in tool call {tool_call.tool_name}: {str(outcome)}")
                code = outcome.code if isinstance(outcome, AppError) else "INTERNAL_ERROR"
                outcome = ToolCallResult(
                    tool_call=tool_call, success=False, error=ToolCallError(code=code, message=str(outcome))
                )
            results.append(outcome)
        return results
