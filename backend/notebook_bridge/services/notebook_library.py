"""
Notebook library.

Keeps the NotebookLM notebooks an agent may query, which one is active,
and how often each has been used.
"""
from __future__ import annotations

import logging
from datetime import datetime, UTC
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from notebook_bridge.core.errors import NotebookNotFoundError
from notebook_bridge.models.notebook import Notebook

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "url", "description", "topics")


def normalize_notebook_url(url: str) -> str:
    """Validate a notebook URL and strip surrounding whitespace."""
    value = (url or "").strip()
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Invalid notebook URL: {url!r}")
    return value


class NotebookLibraryService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_notebooks(self) -> List[Notebook]:
        result = await self.db.execute(select(Notebook).order_by(Notebook.name))
        return list(result.scalars().all())

    async def get_notebook(self, notebook_id: str) -> Notebook:
        notebook = await self.db.get(Notebook, notebook_id)
        if notebook is None:
            raise NotebookNotFoundError(f"Notebook '{notebook_id}' not found")
        return notebook

    async def get_active(self) -> Optional[Notebook]:
        result = await self.db.execute(select(Notebook).where(Notebook.is_active.is_(True)))
        return result.scalars().first()

    async def add_notebook(
        self,
        *,
        name: str,
        url: str,
        description: Optional[str] = None,
        topics: Optional[List[str]] = None,
        activate: bool = False,
    ) -> Notebook:
        normalized = normalize_notebook_url(url)
        await self._ensure_url_free(normalized)

        notebook = Notebook(
            name=name.strip(),
            url=normalized,
            description=description,
            topics=list(topics or []),
        )
        self.db.add(notebook)
        await self.db.flush()

        # The first notebook becomes active so ask_question has a default target.
        if activate or await self.get_active() is None:
            await self._activate(notebook)

        await self.db.commit()
        logger.info("Added notebook %s (%s)", notebook.id, notebook.name)
        return notebook

    async def update_notebook(self, notebook_id: str, changes: Dict[str, Any]) -> Notebook:
        notebook = await self.get_notebook(notebook_id)
        for field in UPDATABLE_FIELDS:
            if field not in changes or changes[field] is None:
                continue
            value = changes[field]
            if field == "url":
                value = normalize_notebook_url(value)
                await self._ensure_url_free(value, exclude_id=notebook.id)
            elif field == "topics":
                value = list(value)
            setattr(notebook, field, value)
        notebook.updated_at = datetime.now(UTC)
        await self.db.commit()
        return notebook

    async def select_notebook(self, notebook_id: str) -> Notebook:
        notebook = await self.get_notebook(notebook_id)
        await self._activate(notebook)
        await self.db.commit()
        logger.info("Selected notebook %s as active", notebook.id)
        return notebook

    async def remove_notebook(self, notebook_id: str) -> bool:
        notebook = await self.db.get(Notebook, notebook_id)
        if notebook is None:
            return False
        await self.db.delete(notebook)
        await self.db.commit()
        logger.info("Removed notebook %s", notebook_id)
        return True

    async def record_use(self, notebook_id: str) -> None:
        notebook = await self.db.get(Notebook, notebook_id)
        if notebook is None:
            return
        notebook.use_count = (notebook.use_count or 0) + 1
        notebook.last_used_at = notebook.updated_at = datetime.now(UTC)
        await self.db.commit()

    async def resolve_target(
        self,
        *,
        notebook_id: Optional[str] = None,
        notebook_url: Optional[str] = None,
        default_url: Optional[str] = None,
    ) -> tuple[str, Optional[Notebook]]:
        """
        Decide which notebook URL a question targets.

        Order: explicit URL, library id, active notebook, configured default.
        Returns the URL and the library entry when one was used.
        """
        if notebook_url:
            return normalize_notebook_url(notebook_url), None
        if notebook_id:
            notebook = await self.get_notebook(notebook_id)
            return notebook.url, notebook
        active = await self.get_active()
        if active is not None:
            return active.url, active
        if default_url:
            return normalize_notebook_url(default_url), None
        raise NotebookNotFoundError("No notebook selected and no default notebook URL configured")

    async def _activate(self, notebook: Notebook) -> None:
        await self.db.execute(
            update(Notebook).where(Notebook.id != notebook.id).values(is_active=False)
        )
        notebook.is_active = True
        notebook.updated_at = datetime.now(UTC)

    async def _ensure_url_free(self, url: str, exclude_id: Optional[str] = None) -> None:
        query = select(Notebook.id).where(Notebook.url == url)
        if exclude_id:
            query = query.where(Notebook.id != exclude_id)
        result = await self.db.execute(query)
        if result.scalar_one_or_none() is not None:
            raise ValueError(f"Notebook URL already in library: {url}")
