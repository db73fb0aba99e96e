"""
Error taxonomy shared by the engine, the stores and the HTTP layer.

Every error carries a machine-readable ``code`` and an HTTP status so the
API can render it as ``{"success": false, "error": {...}}``.
"""
from typing import Any, Dict, List, Optional


class AppError(Exception):
    """Base class for errors that are reported to API callers."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Any = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        if code:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            error["details"] = self.details
        return error


class ValidationError(AppError):
    """Malformed or out-of-range input. ``errors`` lists every violation."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, errors: List[str], message: Optional[str] = None):
        super().__init__(message or "; ".join(errors), details={"errors": errors})
        self.errors = errors


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(AppError):
    code = "DUPLICATE_ID"
    status_code = 409


class GenerationFailure(AppError):
    """The text-generation collaborator is unavailable or errored."""

    code = "GENERATION_FAILED"
    status_code = 502


class NotImplementedFeature(AppError):
    code = "NOT_IMPLEMENTED"
    status_code = 501


class PersistenceFailure(AppError):
    """Read or write of persisted state failed; nothing was committed."""

    code = "PERSISTENCE_FAILED"
    status_code = 500


class ToolDispatchFailure(AppError):
    """A single tool call could not be dispatched."""

    code = "TOOL_DISPATCH_FAILED"
    status_code = 502


class ToolNotFound(ToolDispatchFailure):
    code = "TOOL_NOT_FOUND"
    status_code = 404

    def __init__(self, tool_name: str):
        super().__init__(f"Tool not found: {tool_name}", details={"tool_name": tool_name})
        self.tool_name = tool_name


class InvalidParameters(ToolDispatchFailure):
    code = "INVALID_PARAMETERS"
    status_code = 400

    def __init__(self, tool_name: str, errors: List[str]):
        super().__init__(
            f"Invalid parameters for tool {tool_name}: {'; '.join(errors)}",
            details={"tool_name": tool_name, "errors": errors},
        )
        self.tool_name = tool_name
        self.errors = errors


class NoServerForTool(ToolDispatchFailure):
    code = "NO_SERVER_FOR_TOOL"
    status_code = 404

    def __init__(self, tool_name: str):
        super().__init__(f"No server found for tool: {tool_name}", details={"tool_name": tool_name})
        self.tool_name = tool_name


class MCPServerError(AppError):
    """An MCP server was unreachable or answered with a protocol error."""

    code = "MCP_SERVER_ERROR"
    status_code = 502


class NotionError(AppError):
    """The Notion API rejected a request or could not be reached."""

    code = "NOTION_ERROR"
    status_code = 502


class UnsupportedBlockType(AppError):
    code = "UNSUPPORTED_BLOCK_TYPE"
    status_code = 422


def error_payload(code: str, message: str, details: Any = None) -> Dict[str, Any]:
    """Build the standard failure envelope."""
    error: Dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return {"success": False, "error": error}
