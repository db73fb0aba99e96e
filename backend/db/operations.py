from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
import csv
import io
import json
import logging
import uuid

from api.schemas.template import PaginatedTemplates, Template, TemplateCreate, TemplateUpdate
from core.errors import NotFoundError, ValidationError
from db.template_store import TemplateStore
from engine.generator.fallback import title_from_description
from engine.validation.validator import validate, validate_or_raise

# Configure logger
logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("json", "csv")
CSV_HEADERS = ["ID", "Title", "Description", "Created", "Updated", "Public"]
RECENT_LIMIT = 5


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _sort_key(template: Template) -> float:
    return template.updated_at.timestamp()


class TemplateOperations:
    """Template use cases on top of a TemplateStore."""

    def __init__(self, store: TemplateStore):
        self.store = store

    async def list_templates(
        self,
        page: int = 1,
        limit: int = 20,
        search: Optional[str] = None,
        is_public: Optional[bool] = None,
    ) -> PaginatedTemplates:
        """
        List templates, most recently updated first.

        Args:
            page: 1-based page number
            limit: Page size
            search: Case-insensitive match on title or description
            is_public: Only templates with this visibility

        Returns:
            One page of templates plus the total match count
        """
        page = max(page, 1)
        limit = max(limit, 1)
        templates = await self.store.load_all()

        if search:
            needle = search.lower()
            templates = [t for t in templates if needle in t.title.lower() or needle in t.description.lower()]
        if is_public is not None:
            templates = [t for t in templates if t.is_public == is_public]

        templates.sort(key=_sort_key, reverse=True)
        total = len(templates)
        start = (page - 1) * limit
        end = start + limit
        return PaginatedTemplates(
            items=templates[start:end],
            total=total,
            page=page,
            per_page=limit,
            has_more=end < total,
        )

    async def get(self, template_id: str) -> Template:
        template = await self.store.load(template_id)
        if template is None:
            raise NotFoundError(f"Template {template_id} not found")
        return template

    async def create(self, payload: Dict[str, Any]) -> Template:
        """Validate a creation payload, fill in id/title/timestamps and store it."""
        data: TemplateCreate = validate_or_raise(payload, TemplateCreate)
        now = _now()
        template = Template(
            id=data.id or str(uuid.uuid4()),
            title=data.title or title_from_description(data.description),
            description=data.description,
            blocks=data.blocks,
            theme=data.theme,
            created_at=now,
            updated_at=now,
            is_public=data.is_public,
            notion_page_id=data.notion_page_id,
            shared_url=data.shared_url,
        )
        await self.store.save(template)
        logger.info(f"Created template {template.id}")
        return template

    async def save(self, template: Template) -> Template:
        return await self.store.save(template)

    async def update(self, template_id: str, payload: Dict[str, Any]) -> Template:
        """
        Merge a partial update into a stored template.

        ``id`` and ``created_at`` never change; ``updated_at`` is bumped.
        """
        changes: TemplateUpdate = validate_or_raise(payload, TemplateUpdate)
        current = await self.get(template_id)

        merged = current.model_dump()
        merged.update(changes.model_dump(exclude_unset=True))
        merged["id"] = current.id
        merged["created_at"] = current.created_at
        merged["updated_at"] = max(_now(), current.updated_at)

        updated = validate_or_raise(merged, Template)
        await self.store.save(updated)
        logger.info(f"Updated template {template_id}")
        return updated

    async def delete(self, template_id: str) -> None:
        if not await self.store.delete(template_id):
            raise NotFoundError(f"Template {template_id} not found")

    async def set_public(self, template_id: str, is_public: bool) -> Template:
        template = await self.get(template_id)
        updated = template.model_copy(update={"is_public": is_public, "updated_at": max(_now(), template.updated_at)})
        await self.store.save(updated)
        return updated

    async def toggle_public(self, template_id: str) -> Template:
        """Flip visibility; only ``is_public`` and ``updated_at`` change."""
        template = await self.get(template_id)
        return await self.set_public(template_id, not template.is_public)

    async def export(self, export_format: str = "json") -> str:
        if export_format not in EXPORT_FORMATS:
            raise ValidationError([f"format: Unsupported export format '{export_format}' (expected json or csv)"])

        templates = await self.store.load_all()
        if export_format == "csv":
            buffer = io.StringIO()
            writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
            writer.writerow(CSV_HEADERS)
            for t in templates:
                writer.writerow([
                    t.id,
                    t.title,
                    t.description,
                    t.created_at.isoformat(),
                    t.updated_at.isoformat(),
                    "Yes" if t.is_public else "No",
                ])
            return buffer.getvalue()

        return json.dumps([t.model_dump(mode="json") for t in templates], indent=2, ensure_ascii=False)

    async def import_templates(self, data: Any) -> Dict[str, Any]:
        """
        Import templates from a JSON string or already-decoded data.

        A single object or a list is accepted. Ids that already exist are
        replaced with fresh ones; invalid items are reported and skipped.
        """
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except ValueError as e:
                return {"imported": 0, "errors": [f"Invalid JSON data: {str(e)}"], "ids": []}

        items = data if isinstance(data, list) else [data]
        existing = {t.id for t in await self.store.load_all()}
        now = _now()
        accepted: List[Template] = []
        errors: List[str] = []

        for index, item in enumerate(items):
            if not isinstance(item, dict):
                errors.append(f"{index}: Template must be an object")
                continue

            document = dict(item)
            if not document.get("id") or document["id"] in existing:
                document["id"] = str(uuid.uuid4())
            document.setdefault("created_at", now)
            document["updated_at"] = now

            result = validate(document, Template)
            if not result.success:
                label = item.get("title") or item.get("id") or index
                errors.extend(f"{label}: {error}" for error in result.errors)
                continue

            existing.add(result.data.id)
            accepted.append(result.data)

        if accepted:
            await self.store.save_many(accepted)
        logger.info(f"Imported {len(accepted)} template(s) with {len(errors)} error(s)")
        return {"imported": len(accepted), "errors": errors, "ids": [t.id for t in accepted]}

    async def stats(self) -> Dict[str, Any]:
        templates = await self.store.load_all()
        templates.sort(key=_sort_key, reverse=True)
        public = sum(1 for t in templates if t.is_public)
        return {
            "total": len(templates),
            "public": public,
            "private": len(templates) - public,
            "recently_updated": templates[:RECENT_LIMIT],
        }

    async def cleanup_old(self, days: int = 90) -> int:
        """Delete templates not updated within ``days``; returns how many went."""
        cutoff = _now() - timedelta(days=days)
        deleted = 0
        for template in await self.store.load_all():
            if template.updated_at <= cutoff and await self.store.delete(template.id):
                deleted += 1
        if deleted:
            logger.info(f"Cleaned up {deleted} template(s) older than {days} days")
        return deleted
