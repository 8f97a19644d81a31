import logging
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from notebook_bridge.api.v1.api import api_router
from notebook_bridge.api.v1.endpoints import tools
from notebook_bridge.core.bridge_provider import initialize_bridge, shutdown_bridge
from notebook_bridge.core.config import settings
from notebook_bridge.core.database import db_factory
from notebook_bridge.core.errors import (
    AuthenticationError,
    BridgeError,
    CapacityExceededError,
    NotebookNotFoundError,
    PageInteractionError,
    RateLimitError,
    SessionDisconnectedError,
    SessionNotFoundError,
    SessionTargetMismatchError,
)
from notebook_bridge.core.logging_setup import configure_logging
from notebook_bridge.middleware.request_id import RequestIdMiddleware, get_request_id

configure_logging()
logger = structlog.get_logger()

ERROR_STATUS = {
    AuthenticationError: 401,
    CapacityExceededError: 503,
    RateLimitError: 429,
    SessionDisconnectedError: 502,
    PageInteractionError: 502,
    SessionNotFoundError: 404,
    NotebookNotFoundError: 404,
    SessionTargetMismatchError: 409,
}


def status_for(exc: BridgeError) -> int:
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status_code
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for the FastAPI application."""
    try:
        await db_factory.create_all()
        logger.info("Notebook library ready")

        await initialize_bridge()
        logger.info("Bridge started", notebook_url=settings.NOTEBOOK_URL, max_sessions=settings.MAX_SESSIONS)

        yield
    except Exception as e:
        logger.error("Error during startup", error=str(e))
        raise
    finally:
        await shutdown_bridge()
        await db_factory.dispose()
        logger.info("Bridge stopped")


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    lifespan=lifespan,
    docs_url=f"{settings.API_V1_PREFIX}/docs",
)


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        logger.info("Request received", method=request.method, path=request.url.path)
        response = await call_next(request)
        logger.info("Response sent", path=request.url.path, status_code=response.status_code)
        return response


app.add_middleware(LoggingMiddleware)
# Added last so it runs first and the request id is bound for the request log lines.
app.add_middleware(RequestIdMiddleware)

app.include_router(tools.router)
app.include_router(api_router)


@app.exception_handler(BridgeError)
async def bridge_exception_handler(request: Request, exc: BridgeError):
    status_code = status_for(exc)
    error = {"code": exc.code, "message": str(exc)}
    if isinstance(exc, AuthenticationError) and exc.suggest_cleanup:
        error["suggest_cleanup"] = True
    logger.warning(
        "Request failed",
        path=request.url.path,
        code=exc.code,
        status_code=status_code,
        request_id=get_request_id(request),
    )
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Validation error", path=request.url.path, errors=exc.errors())
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": {
                "code": "request_invalid",
                "message": "Request failed validation.",
                "details": [
                    {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
                    for err in exc.errors()
                ],
            },
        },
    )


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


def run() -> None:
    uvicorn.run(
        "notebook_bridge.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    logging.getLogger("uvicorn").info("Starting %s on %s:%s", settings.APP_NAME, settings.HOST, settings.PORT)
    run()
