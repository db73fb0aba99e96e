"""Persistence of the MCP server list in mcp-servers.json."""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union
import asyncio
import logging
import os

from api.schemas.mcp import CONFIG_VERSION, MCPConfigFile, MCPServer, MCPServerUpdate
from core.errors import ConflictError, NotFoundError, PersistenceFailure, ValidationError
from core.utils.json_files import read_json, write_json_atomic
from engine.validation.validator import validate

# Configure logger
logger = logging.getLogger(__name__)

DEFAULT_NOTION_MCP_URL = "https://mcp.notion.com/mcp"

ServerPayload = Union[MCPServer, Dict[str, Any]]


def notion_mcp_server(url: str = DEFAULT_NOTION_MCP_URL) -> MCPServer:
    return MCPServer(
        id="notion-mcp",
        name="Notion MCP",
        url=url,
        auth_type="oauth_2.1",
        active=True,
        description="Official Notion MCP server for database and page operations",
        version="1.0.0",
        capabilities=["database", "page", "search", "template"],
    )


class MCPConfigStore:
    """Reads and writes the configured MCP servers."""

    def __init__(self, path: str, notion_mcp_url: Optional[str] = None):
        self.path = path
        self.notion_mcp_url = notion_mcp_url
        self._lock = asyncio.Lock()

    def default_servers(self) -> List[MCPServer]:
        return [notion_mcp_server(self.notion_mcp_url or DEFAULT_NOTION_MCP_URL)]

    async def load(self) -> List[MCPServer]:
        """Return the configured servers, or the defaults when no file exists."""
        if not os.path.exists(self.path):
            return self.default_servers()

        try:
            raw = await read_json(self.path)
            config = MCPConfigFile.model_validate(raw)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load MCP config from {self.path}: {str(e)}")
            return self.default_servers()
        return config.servers

    async def initialize(self) -> None:
        """Write the default configuration when the file does not exist yet."""
        if not os.path.exists(self.path):
            logger.info(f"Creating default MCP config at {self.path}")
            await self._write(self.default_servers())

    def _validate_servers(self, servers: List[ServerPayload]) -> List[MCPServer]:
        validated: List[MCPServer] = []
        errors: List[str] = []
        seen = set()

        for index, server in enumerate(servers):
            payload = server.model_dump() if isinstance(server, MCPServer) else server
            result = validate(payload, MCPServer)
            if not result.success:
                errors.extend(f"servers.{index}.{error}" for error in result.errors)
                continue
            if result.data.id in seen:
                errors.append(f"servers.{index}.id: Duplicate server id '{result.data.id}'")
                continue
            seen.add(result.data.id)
            validated.append(result.data)

        if errors:
            raise ValidationError(errors)
        return validated

    async def _write(self, servers: List[MCPServer]) -> None:
        config = MCPConfigFile(servers=servers, updated_at=datetime.now(timezone.utc), version=CONFIG_VERSION)
        try:
            await write_json_atomic(self.path, config.model_dump(mode="json", exclude_none=True))
        except OSError as e:
            logger.error(f"Failed to save MCP config: {str(e)}")
            raise PersistenceFailure(f"Failed to save configuration: {str(e)}") from e

    async def save(self, servers: List[ServerPayload]) -> List[MCPServer]:
        """Validate every server (reporting all errors) and replace the whole list."""
        validated = self._validate_servers(servers)
        async with self._lock:
            await self._write(validated)
        logger.info(f"Saved {len(validated)} MCP server(s)")
        return validated

    async def add(self, server: ServerPayload) -> MCPServer:
        new_server = self._validate_servers([server])[0]
        async with self._lock:
            servers = await self.load()
            if any(existing.id == new_server.id for existing in servers):
                raise ConflictError(f"Server with id '{new_server.id}' already exists")
            await self._write(servers + [new_server])
        return new_server

    async def update(self, server_id: str, updates: Dict[str, Any]) -> MCPServer:
        result = validate(updates, MCPServerUpdate)
        if not result.success:
            raise ValidationError(result.errors)
        changes = result.data.model_dump(exclude_unset=True)

        async with self._lock:
            servers = await self.load()
            for index, existing in enumerate(servers):
                if existing.id == server_id:
                    merged = validate({**existing.model_dump(), **changes}, MCPServer)
                    if not merged.success:
                        raise ValidationError(merged.errors)
                    servers[index] = merged.data
                    await self._write(servers)
                    return merged.data
        raise NotFoundError(f"Server {server_id} not found")

    async def delete(self, server_id: str) -> None:
        async with self._lock:
            servers = await self.load()
            remaining = [server for server in servers if server.id != server_id]
            if len(remaining) == len(servers):
                raise NotFoundError(f"Server {server_id} not found")
            await self._write(remaining)
