"""Accessors for the per-application services held on ``app.state``."""
from fastapi import Request

from core.config import Settings
from db.operations import TemplateOperations
from engine.generator.template_generator import TemplateGenerator
from engine.generator.text_generation import TextGenerator
from engine.mcp.client import MCPClient
from engine.mcp.config_store import MCPConfigStore
from engine.mcp.registry import ToolRegistry
from engine.notion.client import NotionClient


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_template_operations(request: Request) -> TemplateOperations:
    return request.app.state.operations


def get_text_generator(request: Request) -> TextGenerator:
    return request.app.state.text_generator


def get_template_generator(request: Request) -> TemplateGenerator:
    return request.app.state.template_generator


def get_mcp_client(request: Request) -> MCPClient:
    return request.app.state.mcp_client


def get_config_store(request: Request) -> MCPConfigStore:
    return request.app.state.config_store


def get_tool_registry(request: Request) -> ToolRegistry:
    return request.app.state.registry


def get_notion_client(request: Request) -> NotionClient:
    return request.app.state.notion_client
