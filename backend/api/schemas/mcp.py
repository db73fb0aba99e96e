from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from typing_extensions import Annotated
import re
import uuid

from pydantic import AfterValidator, AliasChoices, BaseModel, ConfigDict, Field
from pydantic_core import PydanticCustomError

from api.schemas.template import AbsoluteUrl

AuthType = Literal["oauth_2.1", "bearer", "none"]

SERVER_ID_PATTERN = re.compile(r"^[a-z0-9_-]+$")
CONFIG_VERSION = "1.0"


def _check_server_id(value: str) -> str:
    if not SERVER_ID_PATTERN.match(value):
        raise PydanticCustomError(
            "server_id",
            "Server id '{value}' may only contain lowercase letters, digits, hyphens and underscores",
            {"value": value},
        )
    return value


def new_tool_use_id() -> str:
    return f"tool_{uuid.uuid4().hex[:16]}"


ServerId = Annotated[str, AfterValidator(_check_server_id)]


class MCPServer(BaseModel):
    """Descriptor of an external tool host."""
    id: ServerId
    name: str = Field(..., min_length=1)
    url: AbsoluteUrl
    auth_type: AuthType = "none"
    key: Optional[str] = None
    active: bool = True
    description: Optional[str] = None
    version: Optional[str] = None
    capabilities: Optional[List[str]] = None


class MCPServerUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1)
    url: Optional[AbsoluteUrl] = None
    auth_type: Optional[AuthType] = None
    key: Optional[str] = None
    active: Optional[bool] = None
    description: Optional[str] = None
    version: Optional[str] = None
    capabilities: Optional[List[str]] = None


class MCPConfigFile(BaseModel):
    """On-disk layout of mcp-servers.json."""
    servers: List[MCPServer] = Field(default_factory=list)
    updated_at: datetime
    version: str = CONFIG_VERSION


class ToolDefinition(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})
    server_id: str = Field(..., min_length=1)


class ToolCall(BaseModel):
    tool_name: str = Field(..., min_length=1)
    tool_use_id: str = Field(default_factory=new_tool_use_id, min_length=1)
    parameters: Dict[str, Any] = Field(default_factory=dict)


class ImageContent(BaseModel):
    data: str = Field(..., description="Base64 payload")
    mime_type: str


class ResourceContent(BaseModel):
    type: str
    resource: Any = None


class ToolContent(BaseModel):
    type: Literal["text", "image", "resource"]
    text: Optional[str] = None
    image: Optional[ImageContent] = None
    resource: Optional[ResourceContent] = None


class ToolResponse(BaseModel):
    content: List[ToolContent] = Field(default_factory=list)
    is_error: bool = False

    @classmethod
    def error(cls, message: str) -> "ToolResponse":
        return cls(content=[ToolContent(type="text", text=f"Error: {message}")], is_error=True)

    def text(self) -> str:
        """Concatenate the text items of the response."""
        return "\n".join(item.text for item in self.content if item.type == "text" and item.text)


class ToolCallError(BaseModel):
    code: str
    message: str


class ToolCallResult(BaseModel):
    """Outcome of one call in a batch; failures are marked, never raised."""
    tool_call: ToolCall
    success: bool
    result: Optional[ToolResponse] = None
    error: Optional[ToolCallError] = None


class MCPResource(BaseModel):
    uri: str
    name: str
    description: Optional[str] = None
    mime_type: Optional[str] = Field(default=None, validation_alias=AliasChoices("mimeType", "mime_type"))


class MCPPromptArgument(BaseModel):
    name: str
    description: str = ""
    required: bool = False


class MCPPrompt(BaseModel):
    name: str
    description: str = ""
    arguments: List[MCPPromptArgument] = Field(default_factory=list)


class MCPDiscoveryResponse(BaseModel):
    tools: List[ToolDefinition] = Field(default_factory=list)
    resources: List[MCPResource] = Field(default_factory=list)
    prompts: List[MCPPrompt] = Field(default_factory=list)


class MCPConfigAction(BaseModel):
    """Body of POST /mcp/config; server payloads are validated by the store."""
    model_config = ConfigDict(populate_by_name=True)

    action: Literal["save", "test", "add", "update", "delete"]
    servers: Optional[List[Dict[str, Any]]] = None
    server: Optional[Dict[str, Any]] = None
    server_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("serverId", "server_id"))
    updates: Optional[Dict[str, Any]] = None


class MCPToolCallRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    server_id: str = Field(..., validation_alias=AliasChoices("serverId", "server_id"), min_length=1)
    tool_call: ToolCall = Field(..., validation_alias=AliasChoices("toolCall", "tool_call"))
