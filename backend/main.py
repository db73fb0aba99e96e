from contextlib import asynccontextmanager
from typing import Optional
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import routers
from api.generation.router import router as generation_router
from api.mcp.router import router as mcp_router
from api.models.router import router as models_router
from api.notion.router import router as notion_router
from api.templates.router import router as templates_router

from core.config import Settings
from core.errors import AppError, error_payload
from core.utils.logger import setup_logging
from db.operations import TemplateOperations
from db.template_store import build_template_store
from engine.generator.template_generator import TemplateGenerator
from engine.generator.text_generation import build_text_generator
from engine.mcp.client import MCPClient
from engine.mcp.config_store import MCPConfigStore
from engine.mcp.registry import ToolRegistry
from engine.notion.client import NotionClient
from engine.validation.validator import format_errors

# Configure logger
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Load the configured MCP servers into the client
    servers = await app.state.config_store.load()
    app.state.mcp_client.load_servers(servers)
    logger.info(f"Loaded {len(servers)} MCP server(s) from configuration")
    yield


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application and the services it holds on ``app.state``.

    Args:
        settings: Configuration; read from the environment when omitted

    Returns:
        The configured FastAPI app
    """
    settings = settings or Settings.from_env()
    setup_logging(settings.log_level, settings.log_dir)

    # Initialize FastAPI app
    app = FastAPI(
        title="Notion Template Generator API",
        description="Generate Notion templates from natural-language descriptions, optionally using MCP tools",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    mcp_client = MCPClient(timeout=settings.mcp_timeout_seconds)
    registry = ToolRegistry(mcp_client)
    text_generator = build_text_generator(settings)

    app.state.settings = settings
    app.state.operations = TemplateOperations(build_template_store(settings))
    app.state.config_store = MCPConfigStore(settings.mcp_config_path, settings.notion_mcp_url)
    app.state.mcp_client = mcp_client
    app.state.registry = registry
    app.state.text_generator = text_generator
    app.state.template_generator = TemplateGenerator(
        text_generator, registry, max_iterations=settings.max_tool_iterations
    )
    app.state.notion_client = NotionClient(
        token=settings.notion_token,
        api_version=settings.notion_api_version,
        timeout=settings.mcp_timeout_seconds,
    )

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.to_dict()})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = format_errors(exc.errors(), root="body", skip_prefix="body")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_payload("VALIDATION_ERROR", "; ".join(errors), {"errors": errors}),
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {str(exc)}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_payload("INTERNAL_ERROR", "An unexpected error occurred"),
        )

    # Root endpoint
    @app.get("/")
    async def root():
        return {"message": "Welcome to the Notion Template Generator API"}

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "template_store": settings.template_store,
            "text_generation": settings.text_generation_provider,
            "notion_configured": app.state.notion_client.configured,
        }

    # Include routers
    app.include_router(generation_router, tags=["Generation"])
    app.include_router(templates_router, prefix="/templates", tags=["Templates"])
    app.include_router(mcp_router, prefix="/mcp", tags=["MCP"])
    app.include_router(notion_router, prefix="/notion", tags=["Notion"])
    app.include_router(models_router, prefix="/models", tags=["Models"])

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:create_app", factory=True, host="0.0.0.0", port=8000, reload=True)
