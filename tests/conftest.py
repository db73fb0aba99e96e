"""Shared fixtures: fake collaborators, sample documents and an app wired to temp storage."""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from api.schemas.generation import InferenceResult
from api.schemas.mcp import MCPDiscoveryResponse, MCPServer, ToolCall, ToolDefinition, ToolResponse, ToolContent
from core.config import Settings
from core.errors import NotFoundError
from engine.generator.template_generator import TemplateGenerator
from engine.generator.themes import get_theme_preset


class FakeTextGenerator:
    """Replays canned responses; the last one repeats once the queue runs dry."""

    def __init__(self, responses: List[Any], model_name: str = "fake-model"):
        self.responses = list(responses)
        self.model_name = model_name
        self.available = True
        self.calls: List[Dict[str, Optional[str]]] = []

    async def generate(self, prompt, system_prompt=None, max_tokens=None, temperature=None):
        self.calls.append({"prompt": prompt, "system_prompt": system_prompt})
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return InferenceResult(text=item, tokens_used=10, finish_reason="stop", model=self.model_name)


class FakeMCPClient:
    """In-memory stand-in for MCPClient that records every dispatched call."""

    def __init__(self, servers: Optional[List[MCPServer]] = None, tools: Optional[List[ToolDefinition]] = None):
        self.servers = {server.id: server for server in servers or []}
        self.tools = tools or []
        self.dispatched: List[ToolCall] = []
        self.failures: Dict[str, str] = {}

    def get_server(self, server_id):
        return self.servers.get(server_id)

    def get_active_servers(self):
        return [server for server in self.servers.values() if server.active]

    async def discover_tools(self, server_id):
        if server_id not in self.servers:
            raise NotFoundError(f"Server {server_id} not found or inactive")
        return MCPDiscoveryResponse(tools=[tool for tool in self.tools if tool.server_id == server_id])

    async def call_tool(self, server_id, tool_call):
        self.dispatched.append(tool_call)
        if tool_call.tool_name in self.failures:
            return ToolResponse.error(self.failures[tool_call.tool_name])
        text = f"{tool_call.tool_name} ok on {server_id}"
        return ToolResponse(content=[ToolContent(type="text", text=text)])


MCP_TOOLS = [
    {
        "name": "search_pages",
        "description": "Search the workspace",
        "inputSchema": {"type": "object", "properties": {"query": {"type": "string"}}, "required": ["query"]},
    },
    {"name": "get_self"},
]


class FakeMCPServer:
    """Minimal streamable-HTTP MCP server for httpx.MockTransport; records every request."""

    def __init__(self, capabilities=None, sse=False, fail_status=None, rpc_error=None):
        self.capabilities = capabilities if capabilities is not None else {"tools": {}}
        self.sse = sse
        self.fail_status = fail_status
        self.rpc_error = rpc_error
        self.requests = []

    def reply(self, request_id, result=None, error=None):
        message = {"jsonrpc": "2.0", "id": request_id}
        if error is not None:
            message["error"] = error
        else:
            message["result"] = result
        if self.sse:
            body = f"event: message\ndata: {json.dumps(message)}\n\n"
            return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})
        return httpx.Response(200, json=message)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append((body.get("method"), request.headers))
        if self.fail_status:
            return httpx.Response(self.fail_status)
        if "id" not in body:
            return httpx.Response(202)

        method = body["method"]
        if method == "initialize":
            response = self.reply(body["id"], {"protocolVersion": "2025-03-26", "capabilities": self.capabilities})
            response.headers["Mcp-Session-Id"] = "session-abc"
            return response
        if self.rpc_error and method == self.rpc_error:
            return self.reply(body["id"], error={"code": -32601, "message": "Method not found"})
        if method == "tools/list":
            return self.reply(body["id"], {"tools": MCP_TOOLS})
        if method == "resources/list":
            resource = {"uri": "notion://page/1", "name": "Home", "mimeType": "text/plain"}
            return self.reply(body["id"], {"resources": [resource]})
        if method == "prompts/list":
            return self.reply(body["id"], {"prompts": [{"name": "summarize", "arguments": [{"name": "page"}]}]})
        if method == "tools/call":
            params = body["params"]
            if params["name"] == "broken":
                return self.reply(body["id"], {"content": [{"type": "text", "text": "it broke"}], "isError": True})
            text = f"{params['name']}({json.dumps(params['arguments'], sort_keys=True)})"
            return self.reply(body["id"], {"content": [{"type": "text", "text": text}]})
        if method == "ping":
            return self.reply(body["id"], {})
        return self.reply(body["id"], error={"code": -32601, "message": "Method not found"})


def make_server(server_id: str = "notion-mcp", **overrides) -> MCPServer:
    data = {"id": server_id, "name": "Notion MCP", "url": "https://mcp.example.com/mcp", "auth_type": "none"}
    data.update(overrides)
    return MCPServer(**data)


def make_tool(name: str, server_id: str = "notion-mcp", required=None, properties=None) -> ToolDefinition:
    return ToolDefinition(
        name=name,
        description=f"{name} tool",
        input_schema={"type": "object", "properties": properties or {}, "required": required or []},
        server_id=server_id,
    )


@pytest.fixture
def fake_generator():
    return FakeTextGenerator


@pytest.fixture
def fake_mcp_client():
    return FakeMCPClient


@pytest.fixture
def fake_mcp_server():
    return FakeMCPServer


@pytest.fixture
def server_factory():
    return make_server


@pytest.fixture
def tool_factory():
    return make_tool


@pytest.fixture
def dark_theme() -> Dict[str, Any]:
    return get_theme_preset("dark")


@pytest.fixture
def template_document(dark_theme) -> Dict[str, Any]:
    """A complete, valid template document with nested blocks."""
    now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc).isoformat()
    return {
        "id": "tpl-1",
        "title": "Weekly Planner",
        "description": "Plan the week with goals, tasks and reflections",
        "blocks": [
            {"id": "b1", "type": "heading", "level": 1, "content": "Weekly Planner"},
            {"id": "b2", "type": "paragraph", "content": "Plan the week"},
            {
                "id": "b3",
                "type": "database",
                "content": "Tasks",
                "properties": {"Status": "select", "Due": {"type": "date", "required": True}},
                "children": [{"id": "b3-1", "type": "paragraph", "content": "Nested note"}],
            },
            {"id": "b4", "type": "divider", "content": ""},
        ],
        "theme": dark_theme,
        "created_at": now,
        "updated_at": now,
        "is_public": False,
    }


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        storage_dir=str(tmp_path / "storage"),
        mcp_config_path=str(tmp_path / "mcp-servers.json"),
        log_level="WARNING",
    )


@pytest.fixture
def app(settings):
    from main import create_app

    application = create_app(settings)
    return application


@pytest.fixture
def use_generator(app):
    """Swap the app's text generator for canned responses."""

    def _install(responses: List[Any]) -> FakeTextGenerator:
        generator = FakeTextGenerator(responses)
        app.state.text_generator = generator
        app.state.template_generator = TemplateGenerator(generator, app.state.registry, max_iterations=3)
        return generator

    return _install


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
