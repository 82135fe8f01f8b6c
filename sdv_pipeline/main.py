import traceback
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import Settings, get_settings
from .core.exceptions import AppException, app_exception_handler
from .core.logging import get_logger, setup_logging
from .infrastructure.db.connection import database_manager
from .infrastructure.messaging import cleanup_job_event_publisher, get_job_event_publisher
from .infrastructure.storage import get_storage
from .interfaces.http.middleware import LoggingMiddleware
from .interfaces.http.routes import api_router
from .tasks.runners import build_dispatcher

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings: Settings = app.state.settings
    setup_logging(settings)
    logger.info(f"Starting {settings.project_name} {settings.version} ({settings.environment})")

    database_manager.create_tables()
    publisher = get_job_event_publisher()
    await publisher.connect()
    app.state.dispatcher = build_dispatcher(
        db_manager=database_manager,
        storage=get_storage(),
        publisher=publisher,
        settings=settings,
    )

    try:
        yield
    finally:
        logger.info("Shutting down...")
        shutdown = getattr(app.state.dispatcher, "shutdown", None)
        if shutdown is not None:
            await shutdown()
        await cleanup_job_event_publisher()
        database_manager.dispose()


def create_application(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.project_name,
        description="Source data verification tracker: CSV ingestion, merge and rollups",
        version=settings.version,
        debug=settings.debug,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.dispatcher = None

    app.add_middleware(LoggingMiddleware)
    if settings.cors_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allowed_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(AppException, app_exception_handler)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
        content = {
            "success": False,
            "message": "Internal server error occurred",
            "error_code": "INTERNAL_SERVER_ERROR",
        }
        if settings.debug:
            content["details"] = {"error": str(exc), "traceback": traceback.format_exc()}
        return JSONResponse(status_code=500, content=content)

    @app.get("/health")
    async def health_check() -> dict:
        database_ok = database_manager.health_check()
        return {
            "status": "healthy" if database_ok else "unhealthy",
            "version": settings.version,
            "environment": settings.environment,
            "checks": {"database": "healthy" if database_ok else "unhealthy"},
        }

    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_application()


def main():
    settings = get_settings()
    uvicorn.run(
        "sdv_pipeline.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
        server_header=False,
    )


if __name__ == "__main__":
    main()
