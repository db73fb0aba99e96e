"""
Template persistence.

Stores hold full template documents keyed by id. ``save`` is an upsert and
concurrent writers to the same id race last-write-wins.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple
import asyncio
import logging
import os

from pydantic import ValidationError as PydanticValidationError

from api.schemas.template import Template
from core.errors import PersistenceFailure
from core.utils.json_files import read_json, write_json_atomic

# Configure logger
logger = logging.getLogger(__name__)


class TemplateStore(ABC):
    """Contract every template store implements."""

    @abstractmethod
    async def load_all(self) -> List[Template]:
        ...

    @abstractmethod
    async def load(self, template_id: str) -> Optional[Template]:
        ...

    @abstractmethod
    async def save(self, template: Template) -> Template:
        ...

    @abstractmethod
    async def delete(self, template_id: str) -> bool:
        """Remove a template; False when the id was not stored."""

    async def save_many(self, templates: List[Template]) -> List[Template]:
        for template in templates:
            await self.save(template)
        return templates


class JsonFileTemplateStore(TemplateStore):
    """All templates in a single JSON array, rewritten atomically on every change."""

    def __init__(self, path: str):
        self.path = path
        self._lock = asyncio.Lock()

    async def _read_documents(self) -> Tuple[Dict[str, Template], List[Any]]:
        """
        Load the stored templates.

        Returns:
            The valid templates by id, and the raw entries that failed
            validation. Those are written back unchanged on every rewrite.
        """
        if not os.path.exists(self.path):
            return {}, []
        try:
            raw = await read_json(self.path)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read templates from {self.path}: {str(e)}")
            raise PersistenceFailure(f"Failed to read templates: {str(e)}") from e

        if not isinstance(raw, list):
            raise PersistenceFailure(f"Failed to read templates: {self.path} does not hold a JSON array")

        templates: Dict[str, Template] = {}
        unparsed: List[Any] = []
        for index, item in enumerate(raw):
            try:
                template = Template.model_validate(item)
            except PydanticValidationError as e:
                logger.warning(f"Skipping invalid stored template at position {index}: {str(e)}")
                unparsed.append(item)
                continue
            templates[template.id] = template
        return templates, unparsed

    async def _read(self) -> Dict[str, Template]:
        templates, _ = await self._read_documents()
        return templates

    async def _write(self, templates: Dict[str, Template], unparsed: List[Any]) -> None:
        # A valid template replaces an unparsed entry with the same id
        kept = [item for item in unparsed if not (isinstance(item, dict) and item.get("id") in templates)]
        documents = [template.model_dump(mode="json") for template in templates.values()] + kept
        try:
            await write_json_atomic(self.path, documents)
        except OSError as e:
            logger.error(f"Failed to write templates to {self.path}: {str(e)}")
            raise PersistenceFailure(f"Failed to save templates: {str(e)}") from e

    async def load_all(self) -> List[Template]:
        return list((await self._read()).values())

    async def load(self, template_id: str) -> Optional[Template]:
        return (await self._read()).get(template_id)

    async def save(self, template: Template) -> Template:
        async with self._lock:
            templates, unparsed = await self._read_documents()
            templates[template.id] = template
            await self._write(templates, unparsed)
        logger.debug(f"Saved template {template.id}")
        return template

    async def save_many(self, templates: List[Template]) -> List[Template]:
        async with self._lock:
            stored, unparsed = await self._read_documents()
            for template in templates:
                stored[template.id] = template
            await self._write(stored, unparsed)
        return templates

    async def delete(self, template_id: str) -> bool:
        async with self._lock:
            templates, unparsed = await self._read_documents()
            if templates.pop(template_id, None) is None:
                return False
            await self._write(templates, unparsed)
        logger.info(f"Deleted template {template_id}")
        return True


def build_template_store(settings) -> TemplateStore:
    """Pick the store named by ``TEMPLATE_STORE``."""
    if settings.template_store == "supabase":
        from db.supabase_client import SupabaseTemplateStore

        return SupabaseTemplateStore.from_settings(settings)
    return JsonFileTemplateStore(settings.templates_file)
