import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables
load_dotenv()


def get_env_var(var_name: str, default: Optional[str] = None) -> Optional[str]:
    """
    Get environment variable value, handling empty strings as None

    Args:
        var_name: Name of the environment variable
        default: Value returned when the variable is missing or empty

    Returns:
        The environment variable value or the default
    """
    value = os.getenv(var_name)
    if value is None or value.strip() == "":
        return default
    return value


class Settings(BaseModel):
    """Runtime configuration for the template generator service."""

    storage_dir: str = "./storage"
    template_store: str = "json"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    mcp_config_path: str = "./mcp-servers.json"
    notion_mcp_url: Optional[str] = None
    mcp_timeout_seconds: float = 30.0

    text_generation_provider: str = "openrouter"
    openrouter_api_key: Optional[str] = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    generation_model: str = "qwen/qwen3-30b-a3b"
    max_tokens: int = 4000
    temperature: float = 0.7
    max_tool_iterations: int = Field(default=3, ge=1)

    notion_token: Optional[str] = None
    notion_api_version: str = "2025-09-03"

    log_level: str = "INFO"
    log_dir: Optional[str] = None
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables (and .env)."""
        cors = get_env_var("CORS_ORIGINS", "*")
        return cls(
            storage_dir=get_env_var("STORAGE_DIR", "./storage"),
            template_store=get_env_var("TEMPLATE_STORE", "json").lower(),
            supabase_url=get_env_var("SUPABASE_URL"),
            supabase_key=get_env_var("SUPABASE_KEY") or get_env_var("SUPABASE_ANON_KEY"),
            mcp_config_path=get_env_var("MCP_CONFIG_PATH", "./mcp-servers.json"),
            notion_mcp_url=get_env_var("NOTION_MCP_URL"),
            mcp_timeout_seconds=float(get_env_var("MCP_TIMEOUT_SECONDS", "30")),
            text_generation_provider=get_env_var("TEXT_GENERATION_PROVIDER", "openrouter").lower(),
            openrouter_api_key=get_env_var("OPENROUTER_API_KEY"),
            openrouter_base_url=get_env_var("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"),
            generation_model=get_env_var("GENERATION_MODEL", "qwen/qwen3-30b-a3b"),
            max_tokens=int(get_env_var("MAX_TOKENS", "4000")),
            temperature=float(get_env_var("TEMPERATURE", "0.7")),
            max_tool_iterations=int(get_env_var("MAX_TOOL_ITERATIONS", "3")),
            notion_token=get_env_var("NOTION_TOKEN"),
            notion_api_version=get_env_var("NOTION_API_VERSION", "2025-09-03"),
            log_level=get_env_var("LOG_LEVEL", "INFO"),
            log_dir=get_env_var("LOG_DIR"),
            cors_origins=[origin.strip() for origin in cors.split(",") if origin.strip()],
        )

    @property
    def templates_file(self) -> str:
        return os.path.join(self.storage_dir, "templates.json")
