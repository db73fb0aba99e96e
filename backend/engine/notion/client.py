from typing import Any, Dict, List, Optional
import logging

import httpx

from api.schemas.notion import NotionAuthResponse, NotionPageResponse, NotionParent
from api.schemas.template import Template
from core.errors import NotionError
from engine.notion.converter import blocks_to_notion, notion_to_blocks, page_title, rich_text

# Configure logger
logger = logging.getLogger(__name__)

NOTION_API_URL = "https://api.notion.com/v1"
# Notion accepts at most 100 children per request
CHILDREN_PER_REQUEST = 100


class NotionClient:
    """Thin async client for the Notion REST API."""

    def __init__(
        self,
        token: Optional[str] = None,
        api_version: str = "2025-09-03",
        base_url: str = NOTION_API_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self.api_version = api_version
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.token)

    def _headers(self, token: Optional[str] = None) -> Dict[str, str]:
        auth_token = token or self.token
        if not auth_token:
            raise NotionError("Notion token not configured (set NOTION_TOKEN)", code="NOTION_NOT_CONFIGURED")
        return {
            "Authorization": f"Bearer {auth_token}",
            "Notion-Version": self.api_version,
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        token: Optional[str] = None,
    ) -> Dict[str, Any]:
        headers = self._headers(token)
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.request(method, path, json=json, params=params, headers=headers)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                try:
                    message = e.response.json().get("message", e.response.text)
                except ValueError:
                    message = e.response.text
                logger.error(f"Notion API {method} {path} failed with {e.response.status_code}: {message}")
                raise NotionError(
                    f"Notion API error: {message}", details={"status_code": e.response.status_code}
                ) from e
            except httpx.HTTPError as e:
                logger.error(f"Notion API {method} {path} unreachable: {str(e)}")
                raise NotionError(f"Could not reach Notion: {str(e)}") from e
        return response.json()

    async def test_auth(self, token: Optional[str] = None) -> NotionAuthResponse:
        """Check a token against /users/me; failures come back as ``success: false``."""
        try:
            me = await self._request("GET", "/users/me", token=token)
        except NotionError as e:
            return NotionAuthResponse(success=False, error=e.message)

        bot = me.get("bot") or {}
        owner = bot.get("owner") or {}
        return NotionAuthResponse(
            success=True,
            user_id=me.get("id"),
            workspace_id=bot.get("workspace_id") or owner.get("workspace_id"),
            workspace_name=bot.get("workspace_name"),
        )

    async def create_page(self, template: Template, parent: Optional[NotionParent] = None) -> NotionPageResponse:
        """
        Create a Notion page from a template.

        Args:
            template: Template to convert
            parent: Where to create the page (workspace when omitted)

        Returns:
            NotionPageResponse describing the created page
        """
        parent = parent or NotionParent()
        children = blocks_to_notion(template.blocks)

        payload = {
            "parent": parent.to_notion(),
            "properties": {"title": {"title": rich_text(template.title)}},
            "children": children[:CHILDREN_PER_REQUEST],
        }
        page = await self._request("POST", "/pages", json=payload)

        for start in range(CHILDREN_PER_REQUEST, len(children), CHILDREN_PER_REQUEST):
            await self._request(
                "PATCH",
                f"/blocks/{page['id']}/children",
                json={"children": children[start:start + CHILDREN_PER_REQUEST]},
            )

        logger.info(f"Created Notion page {page['id']} with {len(children)} block(s)")
        return NotionPageResponse(
            id=page["id"],
            url=page.get("url"),
            title=template.title,
            created_time=page.get("created_time"),
            last_edited_time=page.get("last_edited_time"),
            parent=page.get("parent"),
        )

    async def share_page(self, page_id: str) -> Dict[str, Any]:
        # The API cannot publish a page; the page URL is what gets shared
        page = await self._request("GET", f"/pages/{page_id}")
        return {"url": page.get("public_url") or page.get("url")}

    async def list_pages(self, limit: int = 50) -> List[Dict[str, Any]]:
        response = await self._request(
            "POST",
            "/search",
            json={
                "filter": {"property": "object", "value": "page"},
                "sort": {"direction": "descending", "timestamp": "last_edited_time"},
                "page_size": min(limit, 100),
            },
        )
        return response.get("results", [])

    async def _list_children(self, block_id: str) -> List[Dict[str, Any]]:
        results: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        while True:
            params: Dict[str, Any] = {"page_size": CHILDREN_PER_REQUEST}
            if cursor:
                params["start_cursor"] = cursor
            response = await self._request("GET", f"/blocks/{block_id}/children", params=params)
            results.extend(response.get("results", []))
            cursor = response.get("next_cursor")
            if not response.get("has_more") or not cursor:
                return results

    async def extract_template(self, page_id: str) -> Dict[str, Any]:
        """Read a page back into template fields (title, blocks, timestamps)."""
        notion_blocks = await self._list_children(page_id)
        page = await self._request("GET", f"/pages/{page_id}")

        return {
            "title": page_title(page) or "Untitled",
            "blocks": [block.model_dump() for block in notion_to_blocks(notion_blocks)],
            "created_at": page.get("created_time"),
            "updated_at": page.get("last_edited_time"),
            "notion_page_id": page_id,
        }
