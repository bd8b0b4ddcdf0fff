"""
FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from assetdesk.api.errors import register_exception_handlers
from assetdesk.api.middleware import LoggingMiddleware, RequestIdMiddleware
from assetdesk.api.routes import router as api_router
from assetdesk.core.config import settings
from assetdesk.core.logging import configure_logging
from assetdesk.models.database import async_session_factory, close_db
from assetdesk.rbac.seeds import seed_defaults
from assetdesk.rbac.service import RBACService
from assetdesk.rbac.stores.sqlalchemy import SQLAlchemyRBACStore

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events."""
    if settings.rbac.seed_on_startup:
        async with async_session_factory() as session:
            rbac = RBACService(SQLAlchemyRBACStore(session), top_role_name=settings.rbac.top_role_name)
            await seed_defaults(rbac)
            await session.commit()

    logger.info("Application started", environment=settings.environment)
    yield

    await close_db()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # Middleware (last added is outermost)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api")
    register_exception_handlers(app)

    @app.get("/health")
    async def health_check():
        """Quick health check endpoint (for load balancers)."""
        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "assetdesk.main:app",
        host=settings.host,
        port=settings.port,
    )
