from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from api.schemas.mcp import ToolCall, ToolCallResult
from api.schemas.template import Description, Template, ThemeInput

Complexity = Literal["simple", "intermediate", "advanced"]
FinishReason = Literal["stop", "length", "error"]


class GenerationRequest(BaseModel):
    """Request model for generating a template."""
    model_config = ConfigDict(populate_by_name=True)

    description: Description = Field(..., description="Free-text brief for the workspace")
    theme: ThemeInput = Field(..., description="Full theme or the name of a preset")
    use_mcp: bool = Field(default=False, alias="useMCP", description="Allow the model to call MCP tools")
    selected_servers: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("selectedMCPServers", "selectedServers", "selected_servers"),
        serialization_alias="selectedMCPServers",
        description="MCP server ids the model may use (only with useMCP)",
    )
    include_images: bool = Field(default=False, alias="includeImages")
    target_audience: Optional[str] = Field(default=None, alias="targetAudience", max_length=200)
    complexity: Complexity = Field(..., description="How elaborate the template should be")


class InferenceResult(BaseModel):
    """What the text-generation collaborator returns for one prompt."""
    text: str = ""
    tokens_used: int = 0
    finish_reason: FinishReason = "stop"
    model: Optional[str] = None


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: Optional[Any] = None


class GenerationMetadata(BaseModel):
    model_used: Optional[str] = None
    generation_time: float = Field(0.0, description="Wall-clock seconds spent generating")
    token_count: int = 0
    iterations: int = 0
    loop_status: str = "done"
    degraded: bool = False


class GenerationResponse(BaseModel):
    """Response model for generation requests."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    template: Optional[Template] = None
    tool_calls: List[ToolCall] = Field(default_factory=list, serialization_alias="toolCalls")
    tool_results: List[ToolCallResult] = Field(default_factory=list, serialization_alias="toolResults")
    error: Optional[ErrorDetail] = None
    metadata: Optional[GenerationMetadata] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = self.model_dump(mode="json", by_alias=True)
        return {key: value for key, value in payload.items() if value is not None and value != []}
