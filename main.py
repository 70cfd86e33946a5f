"""
VideoTube API - Main Application Entry Point.

This module initializes and configures the FastAPI application: logging, the
database handle, token management, middleware and routes.

Key Responsibilities:
- Configure and launch the FastAPI application.
- Set up middleware for CORS, correlation IDs, error handling and timing.
- Open the shared database handle at startup and close it at shutdown.
- Mount the `/api/v1` routers.
"""

import os
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.comments import router as comments_router
from api.dashboard import router as dashboard_router
from api.health_router import health_router
from api.likes import router as likes_router
from api.playlists import router as playlists_router
from api.posts import router as posts_router
from api.subscriptions import router as subscriptions_router
from api.users import router as users_router
from api.videos import router as videos_router
from core.auth import init_token_manager
from core.database import close_database, init_database
from core.logging_config import get_logger, setup_logging
from core.middleware import (
    CorrelationMiddleware,
    ErrorHandlingMiddleware,
    PerformanceMiddleware,
    register_exception_handlers,
)

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    logger = get_logger("api.startup")

    database = await init_database()
    logger.info(f"Database initialized ({database.backend})")

    init_token_manager()
    logger.info("Token manager initialized")

    yield

    # Cleanup on shutdown
    logger.info("Shutting down VideoTube API")
    await close_database()
    logger.info("Cleanup completed")


def create_app() -> FastAPI:
    app = FastAPI(
        title="VideoTube API",
        description="Video sharing backend: channels, videos, comments, likes and playlists",
        version="1.0.0",
        lifespan=lifespan,
    )

    origins = [o.strip() for o in os.getenv("CORS_ORIGIN", "http://localhost:3000").split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Added last runs first: correlation id, then timing, then error translation
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(PerformanceMiddleware)
    app.add_middleware(CorrelationMiddleware)
    register_exception_handlers(app)

    api = APIRouter(prefix=API_PREFIX)
    api.include_router(health_router)
    api.include_router(users_router)
    api.include_router(videos_router)
    api.include_router(comments_router)
    api.include_router(likes_router)
    api.include_router(subscriptions_router)
    api.include_router(posts_router)
    api.include_router(playlists_router)
    api.include_router(dashboard_router)
    app.include_router(api)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("ENVIRONMENT", "development") == "development",
        log_level="info",
    )
