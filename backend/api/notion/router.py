import logging

from fastapi import APIRouter, Depends

from api.dependencies import get_notion_client, get_template_operations
from api.schemas.notion import NotionAuthRequest, NotionCreateRequest, NotionShareRequest
from core.errors import NotFoundError
from db.operations import TemplateOperations
from engine.notion.client import NotionClient

# Configure logger
logger = logging.getLogger(__name__)

# Initialize router
router = APIRouter()


@router.post("/create")
async def create_page_route(
    body: NotionCreateRequest,
    notion: NotionClient = Depends(get_notion_client),
    operations: TemplateOperations = Depends(get_template_operations),
):
    """
    Create a Notion page from a template.

    When the template is stored, its ``notion_page_id`` and ``shared_url``
    are updated to point at the new page.
    """
    page = await notion.create_page(body.template, body.parent)

    links = {"notion_page_id": page.id}
    if page.url:
        links["shared_url"] = page.url
    try:
        await operations.update(body.template.id, links)
    except NotFoundError:
        logger.info(f"Template {body.template.id} is not stored; page links not persisted")

    return {"success": True, "data": page.model_dump(mode="json", exclude_none=True)}


@router.post("/auth")
async def test_auth_route(
    body: NotionAuthRequest,
    notion: NotionClient = Depends(get_notion_client),
):
    result = await notion.test_auth(body.token)
    if not result.success:
        logger.error(f"Notion authentication failed: {result.error}")
    return result.model_dump(exclude_none=True)


@router.post("/share")
async def share_page_route(
    body: NotionShareRequest,
    notion: NotionClient = Depends(get_notion_client),
):
    result = await notion.share_page(body.page_id)
    return {"success": True, "data": result}
