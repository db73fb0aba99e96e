from fastapi import APIRouter, Depends

from api.dependencies import get_settings, get_text_generator
from core.config import Settings
from engine.generator.text_generation import TextGenerator

# Initialize router
router = APIRouter()


@router.get("/status")
async def model_status_route(
    settings: Settings = Depends(get_settings),
    generator: TextGenerator = Depends(get_text_generator),
):
    """Which text generation provider and model are configured, and whether they can be used."""
    return {
        "success": True,
        "data": {
            "provider": settings.text_generation_provider,
            "model": generator.model_name,
            "available": bool(getattr(generator, "available", False)),
            "max_tokens": settings.max_tokens,
            "max_tool_iterations": settings.max_tool_iterations,
        },
    }
