from typing import Any, Dict, List
import logging

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_config_store, get_mcp_client, get_tool_registry
from api.schemas.mcp import MCPConfigAction, MCPServer, MCPToolCallRequest
from core.errors import NotFoundError, ValidationError
from engine.mcp.client import MCPClient
from engine.mcp.config_store import MCPConfigStore
from engine.mcp.registry import ToolRegistry

# Configure logger
logger = logging.getLogger(__name__)

# Initialize router
router = APIRouter()


def _dump_servers(servers: List[MCPServer]) -> List[Dict[str, Any]]:
    return [server.model_dump(mode="json", exclude_none=True) for server in servers]


def _require(value: Any, field: str, action: str) -> Any:
    if value is None:
        raise ValidationError([f"{field}: Field required for action '{action}'"])
    return value


async def _reload_client(store: MCPConfigStore, client: MCPClient) -> None:
    client.load_servers(await store.load())


@router.get("/config")
async def get_config_route(
    store: MCPConfigStore = Depends(get_config_store),
):
    """Current MCP server configuration (defaults are written on first access)."""
    await store.initialize()
    servers = await store.load()
    return {"success": True, "data": _dump_servers(servers)}


@router.post("/config")
async def update_config_route(
    body: MCPConfigAction,
    store: MCPConfigStore = Depends(get_config_store),
    client: MCPClient = Depends(get_mcp_client),
    registry: ToolRegistry = Depends(get_tool_registry),
):
    """Save, test, add, update or delete MCP servers."""
    action = body.action
    logger.info(f"MCP config action: {action}")

    if action == "save":
        servers = await store.save(_require(body.servers, "servers", action))
        registry.clear()
        await _reload_client(store, client)
        return {"success": True, "message": "Configuration saved successfully", "data": _dump_servers(servers)}

    if action == "test":
        server_id = _require(body.server_id, "serverId", action)
        if client.get_server(server_id) is None:
            raise NotFoundError(f"Server {server_id} not found")
        result = await client.test_connection(server_id)
        return {"success": True, "data": result}

    if action == "add":
        server = await store.add(_require(body.server, "server", action))
        await _reload_client(store, client)
        return {"success": True, "message": "Server added successfully", "data": server.model_dump(mode="json", exclude_none=True)}

    if action == "update":
        server_id = _require(body.server_id, "serverId", action)
        server = await store.update(server_id, _require(body.updates, "updates", action))
        registry.unregister_server(server_id)
        await _reload_client(store, client)
        return {"success": True, "message": "Server updated successfully", "data": server.model_dump(mode="json", exclude_none=True)}

    server_id = _require(body.server_id, "serverId", action)
    await store.delete(server_id)
    registry.unregister_server(server_id)
    await _reload_client(store, client)
    return {"success": True, "message": "Server deleted successfully"}


@router.get("/discovery")
async def discovery_route(
    server_id: str = Query(..., alias="serverId", min_length=1),
    registry: ToolRegistry = Depends(get_tool_registry),
):
    """Discover tools, resources and prompts on a server and register its tools."""
    discovery = await registry.discover_server(server_id)
    return {"success": True, "data": discovery.model_dump(mode="json", by_alias=True)}


@router.post("/call")
async def call_tool_route(
    body: MCPToolCallRequest,
    client: MCPClient = Depends(get_mcp_client),
):
    """Call a tool directly on a given server."""
    if client.get_server(body.server_id) is None:
        raise NotFoundError(f"Server {body.server_id} not found")

    response = await client.call_tool(body.server_id, body.tool_call)
    if response.is_error:
        logger.error(f"Tool {body.tool_call.tool_name} on {body.server_id} returned an error: {response.text()}")
    return {"success": not response.is_error, "data": response.model_dump(mode="json", exclude_none=True)}
