import asyncio
import logging
from typing import Any, Dict, List, Optional

from supabase import Client, create_client

from api.schemas.template import Template
from core.errors import PersistenceFailure
from db.template_store import TemplateStore

# Configure logger
logger = logging.getLogger(__name__)

TEMPLATES_TABLE = "templates"


class SupabaseTemplateStore(TemplateStore):
    """
    Templates kept in a Supabase table.

    The table mirrors the template document: scalar columns for the top-level
    fields and jsonb columns for ``blocks`` and ``theme``.
    """

    def __init__(self, client: Client, table: str = TEMPLATES_TABLE):
        self.client = client
        self.table = table

    @classmethod
    def from_settings(cls, settings) -> "SupabaseTemplateStore":
        if not settings.supabase_url or not settings.supabase_key:
            raise ValueError("Missing Supabase credentials. Please check your .env file.")
        return cls(create_client(settings.supabase_url, settings.supabase_key))

    async def _execute(self, description: str, query) -> List[Dict[str, Any]]:
        try:
            # supabase-py is synchronous; keep the event loop free
            response = await asyncio.to_thread(query.execute)
        except Exception as e:
            logger.error(f"Supabase {description} failed: {str(e)}")
            raise PersistenceFailure(f"Failed to {description}: {str(e)}") from e
        return response.data or []

    def _to_template(self, row: Dict[str, Any]) -> Template:
        return Template.model_validate({key: value for key, value in row.items() if value is not None})

    async def load_all(self) -> List[Template]:
        rows = await self._execute(
            "load templates", self.client.table(self.table).select("*").order("updated_at", desc=True)
        )
        return [self._to_template(row) for row in rows]

    async def load(self, template_id: str) -> Optional[Template]:
        rows = await self._execute("load template", self.client.table(self.table).select("*").eq("id", template_id))
        return self._to_template(rows[0]) if rows else None

    async def save(self, template: Template) -> Template:
        document = template.model_dump(mode="json")
        await self._execute("save template", self.client.table(self.table).upsert(document))
        logger.info(f"Saved template {template.id} to Supabase")
        return template

    async def delete(self, template_id: str) -> bool:
        rows = await self._execute("delete template", self.client.table(self.table).delete().eq("id", template_id))
        return bool(rows)
