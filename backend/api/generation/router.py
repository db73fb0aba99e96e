from fastapi import APIRouter, Depends
import logging

from api.dependencies import get_template_generator
from api.schemas.generation import GenerationRequest, GenerationResponse
from engine.generator.template_generator import TemplateGenerator

# Configure logger
logger = logging.getLogger(__name__)

# Initialize router
router = APIRouter()


@router.post("/generate")
async def generate_template_route(
    request: GenerationRequest,
    generator: TemplateGenerator = Depends(get_template_generator),
):
    """
    Generate a Notion template from a natural-language description.

    A template is always returned once the request is valid; when the text
    generator itself fails the template is the fallback one and ``error``
    says why.
    """
    logger.info(
        f"Generate request: complexity={request.complexity}, theme={request.theme.name}, use_mcp={request.use_mcp}"
    )

    outcome = await generator.generate(request)
    if outcome.error is not None:
        logger.error(f"Generation degraded to fallback template: {outcome.error.message}")

    response = GenerationResponse(
        success=True,
        template=outcome.template,
        tool_calls=outcome.tool_calls,
        tool_results=outcome.tool_results,
        error=outcome.error,
        metadata=outcome.metadata,
    )
    return response.to_payload()
