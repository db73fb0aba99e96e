from typing import Any, Dict, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic_core import PydanticCustomError

from api.schemas.template import Template


class NotionParent(BaseModel):
    """Where a created page is placed; ``id`` is required except for the workspace."""
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["workspace", "page_id", "database_id"] = Field(
        default="workspace", validation_alias=AliasChoices("type", "parent_type")
    )
    id: Optional[str] = Field(default=None, validation_alias=AliasChoices("id", "parent_id"))

    @model_validator(mode="after")
    def _require_id(self) -> "NotionParent":
        if self.type != "workspace" and not self.id:
            raise PydanticCustomError("parent_id", "A parent id is required for parent type {type}", {"type": self.type})
        return self

    def to_notion(self) -> Dict[str, Any]:
        if self.type == "page_id":
            return {"type": "page_id", "page_id": self.id}
        if self.type == "database_id":
            return {"type": "database_id", "database_id": self.id}
        return {"type": "workspace", "workspace": True}


class NotionCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    template: Template
    parent: Optional[NotionParent] = Field(default=None, validation_alias=AliasChoices("parent", "parentOptions"))


class NotionPageResponse(BaseModel):
    id: str
    url: Optional[str] = None
    title: Optional[str] = None
    created_time: Optional[str] = None
    last_edited_time: Optional[str] = None
    parent: Optional[Dict[str, Any]] = None


class NotionAuthRequest(BaseModel):
    token: Optional[str] = None


class NotionAuthResponse(BaseModel):
    success: bool
    workspace_id: Optional[str] = None
    workspace_name: Optional[str] = None
    user_id: Optional[str] = None
    error: Optional[str] = None


class NotionShareRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    page_id: str = Field(..., min_length=1, validation_alias=AliasChoices("pageId", "page_id"))
