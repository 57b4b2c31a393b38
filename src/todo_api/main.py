from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .errors import register_exception_handlers
from .repositories import Repository, open_repository
from .routers import categories as categories_router
from .routers import todos as todos_router
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {"name": "categories", "description": "Create, rename and delete todo categories."},
    {
        "name": "todos",
        "description": "CRUD operations for Todo items with filtering, sorting and grouping by category.",
    },
]


# PUBLIC_INTERFACE
def create_app(settings: Optional[Settings] = None, repository: Optional[Repository] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use; loaded from the environment when omitted.
        repository: Storage handle to serve from. When omitted one is opened from
            settings and closed again when the application shuts down.

    Returns:
        The configured FastAPI app, with the repository on ``app.state.repository``.
    """
    settings = settings or get_settings()
    owns_repository = repository is None
    repo = repository if repository is not None else open_repository(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Todo API started (backend=%s)", settings.persistence_backend)
        yield
        if owns_repository:
            repo.close()

    app = FastAPI(
        title="Todo API",
        description="Backend API service for managing todos and their categories.",
        version="0.1.0",
        openapi_tags=openapi_tags,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.repository = repo

    # Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS), with '*' fallback
    allow_all = (settings.cors_allow_origins == ["*"]) or (len(settings.cors_allow_origins) == 0)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "%s %s %s %.1fms", request.method, request.url.path, response.status_code, elapsed_ms
        )
        return response

    register_exception_handlers(app)

    @app.get("/api/health", summary="Health Check", tags=["health"])
    def health_check():
        """
        Health check endpoint.

        Returns:
            A JSON object indicating service health.
        """
        return {"status": "ok", "backend": settings.persistence_backend}

    app.include_router(categories_router.router)
    app.include_router(todos_router.router)
    return app
