from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from notebook_bridge.core.database import get_db
from notebook_bridge.core.service_auth import ServiceContext, require_service
from notebook_bridge.schemas.tools import AddNotebookArgs
from notebook_bridge.services.notebook_library import NotebookLibraryService

router = APIRouter()


@router.get("/notebooks")
async def list_notebooks(
    db: AsyncSession = Depends(get_db),
    service: ServiceContext = Depends(require_service),
) -> Dict[str, Any]:
    notebooks = await NotebookLibraryService(db).list_notebooks()
    return {"success": True, "data": {"notebooks": [n.to_dict() for n in notebooks], "count": len(notebooks)}}


@router.post("/notebooks", status_code=201)
async def add_notebook(
    payload: AddNotebookArgs,
    db: AsyncSession = Depends(get_db),
    service: ServiceContext = Depends(require_service),
) -> Dict[str, Any]:
    try:
        notebook = await NotebookLibraryService(db).add_notebook(
            name=payload.name,
            url=payload.url,
            description=payload.description,
            topics=payload.topics,
            activate=payload.activate,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return {"success": True, "data": {"notebook": notebook.to_dict()}}


@router.delete("/notebooks/{notebook_id}")
async def remove_notebook(
    notebook_id: str,
    db: AsyncSession = Depends(get_db),
    service: ServiceContext = Depends(require_service),
) -> Dict[str, Any]:
    removed = await NotebookLibraryService(db).remove_notebook(notebook_id)
    return {"success": True, "data": {"notebook_id": notebook_id, "removed": removed}}
