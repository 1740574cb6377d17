"""Notion-backed document store.

Documents live in a child database (``Documents`` by default) of a configured
Notion page. Each row's page body is rendered to Markdown for the front end.
"""

from __future__ import annotations

import re
from typing import Any

import httpx
import structlog

from designpublico.core.models import Document
from designpublico.errors import UpstreamUnavailableError

log = structlog.get_logger()

NOTION_API = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"

_PAGE_ID = re.compile(r"([a-f0-9]{32})(?:[?#]|$)", re.IGNORECASE)

_MARKDOWN_PREFIX = {
    "paragraph": "",
    "heading_1": "# ",
    "heading_2": "## ",
    "heading_3": "### ",
    "bulleted_list_item": "- ",
    "numbered_list_item": "1. ",
}


def extract_page_id(page_url: str) -> str:
    """Pull the 32-hex page id out of a Notion page URL."""
    m = _PAGE_ID.search(page_url)
    if not m:
        raise ValueError(f"Failed to extract page ID from {page_url!r}")
    return m.group(1)


def _plain_text(rich_text: list[dict] | None) -> str:
    return "".join(part.get("plain_text", "") for part in rich_text or [])


def blocks_to_markdown(blocks: list[dict]) -> str:
    """Render the block types documents use; anything else is dropped."""
    out = []
    for block in blocks:
        block_type = block.get("type")
        prefix = _MARKDOWN_PREFIX.get(block_type)
        if prefix is None:
            continue
        text = _plain_text(block.get(block_type, {}).get("rich_text"))
        # List items stay tight; everything else is its own paragraph.
        terminator = "\n" if block_type.endswith("list_item") else "\n\n"
        out.append(prefix + text + terminator)
    return "".join(out)


class NotionDocumentStore:
    """DocumentStore reading from a Notion database."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        secret: str,
        page_url: str,
        database_title: str = "Documents",
    ) -> None:
        self._client = http_client
        self._secret = secret
        self._page_id = extract_page_id(page_url)
        self._database_title = database_title
        self._database_id: str | None = None

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._secret}",
            "Notion-Version": NOTION_VERSION,
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict:
        try:
            response = await self._client.request(
                method, f"{NOTION_API}{path}", headers=self._headers, **kwargs,
            )
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise UpstreamUnavailableError(f"Notion request {method} {path} failed: {exc}") from exc

    async def _list_children(self, block_id: str) -> list[dict]:
        results: list[dict] = []
        cursor: str | None = None
        while True:
            params = {"start_cursor": cursor} if cursor else None
            payload = await self._request("GET", f"/blocks/{block_id}/children", params=params)
            results.extend(payload.get("results", []))
            if not payload.get("has_more"):
                return results
            cursor = payload.get("next_cursor")

    async def _find_database(self) -> str | None:
        if self._database_id is not None:
            return self._database_id
        wanted = self._database_title.lower()
        for block in await self._list_children(self._page_id):
            if block.get("type") != "child_database":
                continue
            title = block.get("child_database", {}).get("title", "")
            if title.lower() == wanted:
                self._database_id = block["id"]
                return self._database_id
        return None

    async def get_document(self, title: str) -> Document | None:
        database_id = await self._find_database()
        if database_id is None:
            log.warning("notion_database_missing", title=self._database_title)
            return None

        payload = await self._request(
            "POST",
            f"/databases/{database_id}/query",
            json={"filter": {"property": "Title", "title": {"equals": title}}},
        )
        pages = payload.get("results", [])
        if not pages:
            return None

        page = pages[0]
        properties = page.get("properties", {})
        status = (properties.get("Status", {}).get("select") or {}).get("name") or "published"
        stored_title = _plain_text(properties.get("Title", {}).get("title")) or title
        blocks = await self._list_children(page["id"])

        return Document(
            id=page["id"],
            title=stored_title,
            content=blocks_to_markdown(blocks),
            status=status.lower(),
        )
