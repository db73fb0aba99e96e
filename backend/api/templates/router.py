from typing import Any, Dict, Optional
import logging

from fastapi import APIRouter, Body, Depends, Query, Response, status

from api.dependencies import get_template_operations
from db.operations import TemplateOperations

# Configure logger
logger = logging.getLogger(__name__)

# Initialize router
router = APIRouter()


def _dump(template) -> Dict[str, Any]:
    return template.model_dump(mode="json")


@router.get("")
async def list_templates_route(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None),
    is_public: Optional[bool] = Query(None),
    operations: TemplateOperations = Depends(get_template_operations),
):
    """List stored templates, most recently updated first."""
    result = await operations.list_templates(page=page, limit=limit, search=search, is_public=is_public)
    return {"success": True, "data": result.model_dump(mode="json")}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_template_route(
    payload: Dict[str, Any] = Body(...),
    operations: TemplateOperations = Depends(get_template_operations),
):
    template = await operations.create(payload)
    return {"success": True, "data": _dump(template)}


@router.get("/export")
async def export_templates_route(
    format: str = Query("json"),
    operations: TemplateOperations = Depends(get_template_operations),
):
    """Download every template as JSON or CSV."""
    content = await operations.export(format)
    media_type = "text/csv" if format == "csv" else "application/json"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="templates.{format}"'},
    )


@router.post("/import")
async def import_templates_route(
    payload: Any = Body(...),
    operations: TemplateOperations = Depends(get_template_operations),
):
    """Import templates from a list, a single template, or ``{"data": "<json string>"}``."""
    if isinstance(payload, dict) and isinstance(payload.get("data"), str):
        payload = payload["data"]
    result = await operations.import_templates(payload)
    return {"success": result["imported"] > 0 or not result["errors"], "data": result}


@router.get("/stats")
async def template_stats_route(operations: TemplateOperations = Depends(get_template_operations)):
    stats = await operations.stats()
    stats["recently_updated"] = [_dump(template) for template in stats["recently_updated"]]
    return {"success": True, "data": stats}


@router.get("/{template_id}")
async def get_template_route(template_id: str, operations: TemplateOperations = Depends(get_template_operations)):
    template = await operations.get(template_id)
    return {"success": True, "data": _dump(template)}


@router.patch("/{template_id}")
async def update_template_route(
    template_id: str,
    payload: Dict[str, Any] = Body(...),
    operations: TemplateOperations = Depends(get_template_operations),
):
    template = await operations.update(template_id, payload)
    return {"success": True, "data": _dump(template)}


@router.delete("/{template_id}")
async def delete_template_route(template_id: str, operations: TemplateOperations = Depends(get_template_operations)):
    await operations.delete(template_id)
    logger.info(f"Deleted template {template_id}")
    return {"success": True, "message": f"Template {template_id} deleted"}


@router.post("/{template_id}/toggle-public")
async def toggle_public_route(template_id: str, operations: TemplateOperations = Depends(get_template_operations)):
    template = await operations.toggle_public(template_id)
    return {"success": True, "data": _dump(template)}
