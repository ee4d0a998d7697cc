import logging

from fastapi import FastAPI

from pipeline_board.api.router import api_router
from pipeline_board.core.config import settings
from pipeline_board.middleware.logging import RequestLoggingMiddleware
from pipeline_board.services.backend_client import PipelineBackendClient
from pipeline_board.services.board import BoardRegistry

logging.basicConfig(level=settings.log_level)
logging.getLogger("httpx").setLevel(logging.WARNING)

app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(RequestLoggingMiddleware)


@app.get("/health")
async def health_check():
    return {"status": "ok", "environment": settings.environment}


app.include_router(api_router)


@app.on_event("startup")
async def _startup_backend() -> None:
    backend = PipelineBackendClient.from_settings(settings)
    app.state.backend = backend
    app.state.boards = BoardRegistry(backend, search_min_length=settings.search_min_length)


@app.on_event("shutdown")
async def _shutdown_backend() -> None:
    backend = getattr(app.state, "backend", None)
    if backend:
        await backend.aclose()
