"""
MCP client speaking JSON-RPC 2.0 over the streamable HTTP transport.

The client owns an instance-scoped map of configured servers. Every request
opens a short-lived httpx client; replies may come back as plain JSON or as
a ``text/event-stream`` body whose ``data:`` lines carry the JSON-RPC message.
"""
from typing import Any, Dict, List, Optional
import itertools
import json
import logging
import time

import httpx

from api.schemas.mcp import (
    ImageContent,
    MCPDiscoveryResponse,
    MCPPrompt,
    MCPResource,
    MCPServer,
    ResourceContent,
    ToolCall,
    ToolContent,
    ToolDefinition,
    ToolResponse,
)
from core.errors import AppError, MCPServerError, NotFoundError, ValidationError
from engine.validation.validator import validate

# Configure logger
logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2025-03-26"
CLIENT_INFO = {"name": "notion-template-generator", "version": "1.0.0"}
ACCEPT_HEADER = "application/json, text/event-stream"
SESSION_HEADER = "Mcp-Session-Id"


def parse_event_stream(body: str) -> List[Dict[str, Any]]:
    """Collect the JSON messages carried by ``data:`` lines of an SSE body."""
    messages = []
    data_lines: List[str] = []
    for line in body.splitlines() + [""]:
        if line.startswith("data:"):
            data_lines.append(line[5:].strip())
        elif not line.strip() and data_lines:
            payload = "\n".join(data_lines)
            data_lines = []
            try:
                message = json.loads(payload)
            except ValueError:
                logger.debug(f"Skipping non-JSON event payload: {payload[:80]}")
                continue
            if isinstance(message, dict):
                messages.append(message)
    return messages


def _to_tool_content(item: Dict[str, Any]) -> ToolContent:
    item_type = item.get("type")
    if item_type == "text":
        return ToolContent(type="text", text=str(item.get("text", "")))
    if item_type == "image":
        return ToolContent(
            type="image",
            image=ImageContent(data=item.get("data", ""), mime_type=item.get("mimeType") or item.get("mime_type", "")),
        )
    return ToolContent(
        type="resource",
        resource=ResourceContent(type=str(item_type or "resource"), resource=item.get("resource", item)),
    )


class MCPClient:
    """Client for the configured MCP servers."""

    def __init__(
        self,
        servers: Optional[List[MCPServer]] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.transport = transport
        self.servers: Dict[str, MCPServer] = {}
        self._sessions: Dict[str, Optional[str]] = {}
        self._capabilities: Dict[str, Dict[str, Any]] = {}
        self._request_ids = itertools.count(1)
        self.load_servers(servers or [])

    def load_servers(self, servers: List[MCPServer]) -> None:
        """Replace the server map, dropping any open sessions."""
        self.servers = {server.id: server for server in servers}
        self._sessions.clear()
        self._capabilities.clear()

    def get_servers(self) -> List[MCPServer]:
        return list(self.servers.values())

    def get_active_servers(self) -> List[MCPServer]:
        return [server for server in self.servers.values() if server.active]

    def get_server(self, server_id: str) -> Optional[MCPServer]:
        return self.servers.get(server_id)

    def add_server(self, server: MCPServer) -> None:
        self.servers[server.id] = server
        self._forget_session(server.id)

    def remove_server(self, server_id: str) -> None:
        self.servers.pop(server_id, None)
        self._forget_session(server_id)

    def update_server(self, server_id: str, updates: Dict[str, Any]) -> MCPServer:
        server = self.servers.get(server_id)
        if server is None:
            raise NotFoundError(f"Server {server_id} not found")

        merged = {**server.model_dump(), **updates, "id": server_id}
        result = validate(merged, MCPServer)
        if not result.success:
            raise ValidationError(result.errors)

        self.servers[server_id] = result.data
        self._forget_session(server_id)
        return result.data

    def is_server_connected(self, server_id: str) -> bool:
        return server_id in self._sessions

    def _forget_session(self, server_id: str) -> None:
        self._sessions.pop(server_id, None)
        self._capabilities.pop(server_id, None)

    def _require_active(self, server_id: str) -> MCPServer:
        server = self.servers.get(server_id)
        if server is None or not server.active:
            raise NotFoundError(f"Server {server_id} not found or inactive")
        return server

    def _headers(self, server: MCPServer) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": ACCEPT_HEADER}
        if server.auth_type in ("bearer", "oauth_2.1") and server.key:
            headers["Authorization"] = f"Bearer {server.key}"
        session_id = self._sessions.get(server.id)
        if session_id:
            headers[SESSION_HEADER] = session_id
        return headers

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def _post(self, server: MCPServer, payload: Dict[str, Any]) -> httpx.Response:
        async with self._http_client() as client:
            try:
                response = await client.post(server.url, json=payload, headers=self._headers(server))
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise MCPServerError(
                    f"Server {server.id} returned HTTP {e.response.status_code}",
                    details={"server_id": server.id, "status_code": e.response.status_code},
                ) from e
            except httpx.HTTPError as e:
                raise MCPServerError(f"Could not reach server {server.id}: {str(e)}", details={"server_id": server.id}) from e
        return response

    def _read_message(self, server: MCPServer, response: httpx.Response, request_id: int) -> Dict[str, Any]:
        content_type = response.headers.get("content-type", "")
        if content_type.startswith("text/event-stream"):
            messages = parse_event_stream(response.text)
        else:
            try:
                body = response.json()
            except ValueError as e:
                raise MCPServerError(f"Server {server.id} returned invalid JSON") from e
            messages = body if isinstance(body, list) else [body]

        for message in messages:
            if isinstance(message, dict) and message.get("id") == request_id:
                return message
        raise MCPServerError(f"Server {server.id} sent no response for request {request_id}")

    async def _rpc(self, server: MCPServer, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        request_id = next(self._request_ids)
        payload: Dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params is not None:
            payload["params"] = params

        response = await self._post(server, payload)
        message = self._read_message(server, response, request_id)

        if "error" in message:
            error = message["error"] or {}
            raise MCPServerError(
                f"{method} failed on server {server.id}: {error.get('message', 'unknown error')}",
                details={"server_id": server.id, "rpc_code": error.get("code")},
            )
        return message.get("result") or {}

    async def _ensure_session(self, server: MCPServer) -> None:
        if server.id in self._sessions:
            return

        request_id = next(self._request_ids)
        payload = {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": "initialize",
            "params": {"protocolVersion": PROTOCOL_VERSION, "capabilities": {}, "clientInfo": CLIENT_INFO},
        }
        response = await self._post(server, payload)
        message = self._read_message(server, response, request_id)
        if "error" in message:
            raise MCPServerError(f"initialize failed on server {server.id}: {message['error'].get('message')}")

        self._sessions[server.id] = response.headers.get(SESSION_HEADER)
        self._capabilities[server.id] = (message.get("result") or {}).get("capabilities") or {}

        await self._post(server, {"jsonrpc": "2.0", "method": "notifications/initialized"})
        logger.info(f"Initialized MCP session with server {server.id}")

    async def discover_tools(self, server_id: str) -> MCPDiscoveryResponse:
        """
        Ask a server for the tools (and resources/prompts, if advertised) it exposes.

        Args:
            server_id: Id of an active configured server

        Returns:
            MCPDiscoveryResponse with tools stamped with ``server_id``
        """
        server = self._require_active(server_id)
        await self._ensure_session(server)

        result = await self._rpc(server, "tools/list")
        tools = [
            ToolDefinition(
                name=tool["name"],
                description=tool.get("description") or "",
                input_schema=tool.get("inputSchema") or tool.get("input_schema") or {"type": "object", "properties": {}},
                server_id=server_id,
            )
            for tool in result.get("tools", [])
        ]

        capabilities = self._capabilities.get(server_id, {})
        resources: List[MCPResource] = []
        prompts: List[MCPPrompt] = []
        if "resources" in capabilities:
            listed = await self._rpc(server, "resources/list")
            resources = [MCPResource.model_validate(item) for item in listed.get("resources", [])]
        if "prompts" in capabilities:
            listed = await self._rpc(server, "prompts/list")
            prompts = [MCPPrompt.model_validate(item) for item in listed.get("prompts", [])]

        logger.info(f"Discovered {len(tools)} tool(s) on server {server_id}")
        return MCPDiscoveryResponse(tools=tools, resources=resources, prompts=prompts)

    async def call_tool(self, server_id: str, tool_call: ToolCall) -> ToolResponse:
        """Call a tool; every failure comes back as a ToolResponse with ``is_error`` set."""
        try:
            server = self._require_active(server_id)
            await self._ensure_session(server)
            result = await self._rpc(
                server, "tools/call", {"name": tool_call.tool_name, "arguments": tool_call.parameters}
            )
        except AppError as e:
            logger.error(f"Tool call {tool_call.tool_name} failed on server {server_id}: {e.message}")
            return ToolResponse.error(e.message)

        content = [_to_tool_content(item) for item in result.get("content", []) if isinstance(item, dict)]
        if not content and "structuredContent" in result:
            content = [ToolContent(type="text", text=json.dumps(result["structuredContent"]))]
        return ToolResponse(content=content, is_error=bool(result.get("isError", False)))

    async def test_connection(self, server_id: str) -> Dict[str, Any]:
        """Ping a server and report whether it answered, with the round-trip latency."""
        server = self.servers.get(server_id)
        if server is None:
            return {"server_id": server_id, "connected": False, "error": f"Server {server_id} not found"}

        started = time.perf_counter()
        try:
            self._forget_session(server_id)
            await self._ensure_session(server)
            await self._rpc(server, "ping")
        except AppError as e:
            logger.warning(f"Connection test failed for server {server_id}: {e.message}")
            return {"server_id": server_id, "connected": False, "error": e.message}

        latency_ms = round((time.perf_counter() - started) * 1000, 2)
        return {"server_id": server_id, "connected": True, "latency_ms": latency_ms}
