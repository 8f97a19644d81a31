"""
Tool surface for AI agents.

GET /tools lists OpenAI-style function schemas; POST /tool:{name} takes the
arguments object as its JSON body and runs the tool.
"""
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Type

import structlog
from fastapi import APIRouter, Body, Depends, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from notebook_bridge.core.bridge_provider import get_bridge
from notebook_bridge.core.database import get_db
from notebook_bridge.core.service_auth import ServiceContext, require_service
from notebook_bridge.schemas.tools import (
    AddNotebookArgs,
    AskQuestionArgs,
    NoArgs,
    NotebookIdArgs,
    SessionIdArgs,
    ToolArgs,
    UpdateNotebookArgs,
    WaitForBrowserCloseArgs,
)
from notebook_bridge.services.bridge import Bridge
from notebook_bridge.services.dispatcher import ANSWERED
from notebook_bridge.services.notebook_library import NotebookLibraryService

logger = structlog.get_logger()

router = APIRouter(tags=["tools"])

ToolHandler = Callable[[Any, Bridge, AsyncSession], Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    args_model: Type[ToolArgs]
    handler: ToolHandler

    def schema(self) -> Dict[str, Any]:
        parameters = self.args_model.model_json_schema()
        parameters.pop("title", None)
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": parameters,
            },
        }


TOOLS: Dict[str, ToolSpec] = {}


def tool(name: str, args_model: Type[ToolArgs], description: str):
    def decorator(handler: ToolHandler) -> ToolHandler:
        TOOLS[name] = ToolSpec(name=name, description=description, args_model=args_model, handler=handler)
        return handler
    return decorator


def _error(status_code: int, code: str, message: str, details: Any = None) -> JSONResponse:
    error: Dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


@tool(
    "ask_question",
    AskQuestionArgs,
    "Ask a question of a NotebookLM notebook and wait for its source-grounded answer. "
    "Pass session_id to continue a conversation. Returns answer, blocked (the user must "
    "act first, e.g. close Chrome) or timed_out.",
)
async def ask_question(args: AskQuestionArgs, bridge: Bridge, db: AsyncSession) -> Dict[str, Any]:
    library = NotebookLibraryService(db)
    existing = bridge.registry.get(args.session_id) if args.session_id else None
    notebook = None
    target = None
    if args.notebook_url or args.notebook_id or existing is None:
        target, notebook = await library.resolve_target(
            notebook_id=args.notebook_id,
            notebook_url=args.notebook_url,
            default_url=bridge.settings.NOTEBOOK_URL,
        )

    result = await bridge.dispatcher.ask(
        args.question,
        session_id=args.session_id,
        target_resource_id=target,
        timeout=args.timeout,
        poll_interval=args.poll_interval,
        required_stable_polls=args.required_stable_polls,
    )
    if result.status == ANSWERED and notebook is not None:
        await library.record_use(notebook.id)
    return result.to_dict()


@tool("reset_session", SessionIdArgs, "Start the conversation of a session over with a fresh tab.")
async def reset_session(args: SessionIdArgs, bridge: Bridge, db: AsyncSession) -> Dict[str, Any]:
    session = await bridge.registry.reset(args.session_id)
    return {"session": session.to_dict(bridge.registry.now())}


@tool("list_sessions", NoArgs, "List open sessions with their notebook, state and timestamps.")
async def list_sessions(args: NoArgs, bridge: Bridge, db: AsyncSession) -> Dict[str, Any]:
    now = bridge.registry.now()
    sessions = [session.to_dict(now) for session in bridge.registry.list()]
    return {"sessions": sessions, "count": len(sessions), "capacity": bridge.registry.capacity}


@tool("close_session", SessionIdArgs, "Close a session and its browser tab. Unknown ids are ignored.")
async def close_session(args: SessionIdArgs, bridge: Bridge, db: AsyncSession) -> Dict[str, Any]:
    closed = await bridge.registry.close(args.session_id)
    return {"session_id": args.session_id, "closed": closed}


@tool("get_health", NoArgs, "Report authentication readiness and session usage.")
async def get_health(args: NoArgs, bridge: Bridge, db: AsyncSession) -> Dict[str, Any]:
    check = await bridge.readiness.check()
    return {
        "status": "ready" if check.is_ready else "needs_auth",
        "readiness": check.to_dict(),
        "sessions": len(bridge.registry),
        "capacity": bridge.registry.capacity,
    }


@tool(
    "wait_for_browser_close",
    WaitForBrowserCloseArgs,
    "After asking the user to close Chrome, wait until it has exited. Returns closed=false on timeout.",
)
async def wait_for_browser_close(args: WaitForBrowserCloseArgs, bridge: Bridge, db: AsyncSession) -> Dict[str, Any]:
    closed = await bridge.readiness.await_host_process_exit(
        args.timeout or bridge.settings.HOST_PROCESS_WAIT_TIMEOUT,
        args.poll_interval or bridge.settings.HOST_PROCESS_POLL_INTERVAL,
    )
    return {"closed": closed}


@tool("add_notebook", AddNotebookArgs, "Add a NotebookLM notebook to the library.")
async def add_notebook(args: AddNotebookArgs, bridge: Bridge, db: AsyncSession) -> Dict[str, Any]:
    notebook = await NotebookLibraryService(db).add_notebook(
        name=args.name,
        url=args.url,
        description=args.description,
        topics=args.topics,
        activate=args.activate,
    )
    return {"notebook": notebook.to_dict()}


@tool("list_notebooks", NoArgs, "List notebooks in the library.")
async def list_notebooks(args: NoArgs, bridge: Bridge, db: AsyncSession) -> Dict[str, Any]:
    notebooks = await NotebookLibraryService(db).list_notebooks()
    return {"notebooks": [notebook.to_dict() for notebook in notebooks], "count": len(notebooks)}


@tool("get_notebook", NotebookIdArgs, "Get one library notebook.")
async def get_notebook(args: NotebookIdArgs, bridge: Bridge, db: AsyncSession) -> Dict[str, Any]:
    notebook = await NotebookLibraryService(db).get_notebook(args.notebook_id)
    return {"notebook": notebook.to_dict()}


@tool("select_notebook", NotebookIdArgs, "Make a library notebook the default target for questions.")
async def select_notebook(args: NotebookIdArgs, bridge: Bridge, db: AsyncSession) -> Dict[str, Any]:
    notebook = await NotebookLibraryService(db).select_notebook(args.notebook_id)
    return {"notebook": notebook.to_dict()}


@tool("update_notebook", UpdateNotebookArgs, "Update a library notebook's name, URL, description or topics.")
async def update_notebook(args: UpdateNotebookArgs, bridge: Bridge, db: AsyncSession) -> Dict[str, Any]:
    changes = args.model_dump(exclude={"notebook_id"}, exclude_none=True)
    notebook = await NotebookLibraryService(db).update_notebook(args.notebook_id, changes)
    return {"notebook": notebook.to_dict()}


@tool("remove_notebook", NotebookIdArgs, "Remove a notebook from the library.")
async def remove_notebook(args: NotebookIdArgs, bridge: Bridge, db: AsyncSession) -> Dict[str, Any]:
    removed = await NotebookLibraryService(db).remove_notebook(args.notebook_id)
    return {"notebook_id": args.notebook_id, "removed": removed}


@router.get("/tools")
async def list_tools(service: ServiceContext = Depends(require_service)) -> Dict[str, Any]:
    return {"success": True, "data": {"tools": [spec.schema() for spec in TOOLS.values()]}}


@router.post("/tool:{name}")
async def call_tool(
    name: str,
    arguments: Optional[Dict[str, Any]] = Body(default=None),
    bridge: Bridge = Depends(get_bridge),
    db: AsyncSession = Depends(get_db),
    service: ServiceContext = Depends(require_service),
):
    spec = TOOLS.get(name)
    if spec is None:
        return _error(status.HTTP_404_NOT_FOUND, "tool_not_found", f"Unknown tool '{name}'")

    try:
        args = spec.args_model.model_validate(arguments or {})
    except ValidationError as exc:
        details = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
            for err in exc.errors()
        ]
        return _error(
            422,
            "invalid_arguments",
            "Tool arguments failed schema validation.",
            details,
        )

    logger.info("Tool call", tool=name, caller=service.service_name)
    try:
        data = await spec.handler(args, bridge, db)
    except ValueError as exc:
        return _error(status.HTTP_400_BAD_REQUEST, "invalid_arguments", str(exc))
    return {"success": True, "data": data}
