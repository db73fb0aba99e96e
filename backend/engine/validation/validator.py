"""
Schema validation for untyped payloads.

``validate`` never raises: it returns a ``ValidationResult`` that either
carries the parsed model or the complete list of violations, each formatted
as ``"<field.path>: <message>"``.
"""
from typing import Any, Dict, Iterable, List, Mapping, Optional, Type, Union
import logging

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from api.schemas.generation import GenerationRequest
from api.schemas.mcp import MCPServer, MCPServerUpdate, ToolCall
from api.schemas.template import Block, Template, TemplateCreate, TemplateUpdate, Theme
from core.errors import ValidationError

# Configure logger
logger = logging.getLogger(__name__)

SCHEMAS: Dict[str, Type[BaseModel]] = {
    "generation_request": GenerationRequest,
    "template": Template,
    "template_create": TemplateCreate,
    "template_update": TemplateUpdate,
    "theme": Theme,
    "block": Block,
    "mcp_server": MCPServer,
    "mcp_server_update": MCPServerUpdate,
    "tool_call": ToolCall,
}


class ValidationResult(BaseModel):
    success: bool
    data: Optional[Any] = None
    errors: List[str] = []


def format_errors(errors: Iterable[Mapping[str, Any]], root: str = "payload", skip_prefix: str = "") -> List[str]:
    """Turn pydantic error dicts into ``path: message`` strings."""
    formatted = []
    for error in errors:
        loc = list(error.get("loc", ()))
        if skip_prefix and loc and loc[0] == skip_prefix:
            loc = loc[1:]
        path = ".".join(str(part) for part in loc) or root
        formatted.append(f"{path}: {error.get('msg', 'Invalid value')}")
    return formatted


def _resolve_schema(schema: Union[str, Type[BaseModel]]) -> Type[BaseModel]:
    if isinstance(schema, str):
        try:
            return SCHEMAS[schema]
        except KeyError:
            raise KeyError(f"Unknown schema: {schema}") from None
    return schema


def validate(payload: Any, schema: Union[str, Type[BaseModel]]) -> ValidationResult:
    """
    Validate a payload against a named schema or a model class.

    Args:
        payload: Untyped input (usually decoded JSON)
        schema: A key of SCHEMAS or a pydantic model class

    Returns:
        ValidationResult with either ``data`` or every violation in ``errors``
    """
    model = _resolve_schema(schema)
    try:
        data = model.model_validate(payload)
    except PydanticValidationError as e:
        errors = format_errors(e.errors(), root=model.__name__)
        logger.debug(f"{model.__name__} rejected with {len(errors)} error(s)")
        return ValidationResult(success=False, errors=errors)
    return ValidationResult(success=True, data=data)


def validate_or_raise(payload: Any, schema: Union[str, Type[BaseModel]]) -> Any:
    """Like ``validate`` but raises ``core.errors.ValidationError`` on failure."""
    result = validate(payload, schema)
    if not result.success:
        raise ValidationError(result.errors)
    return result.data
