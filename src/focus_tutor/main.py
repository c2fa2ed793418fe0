"""FastAPI application entry point."""

import logging
import os

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from focus_tutor.api.routes import router
from focus_tutor.config import Settings, get_settings
from focus_tutor.generation.client import ContentGenerator
from focus_tutor.session.driver import SessionDriver
from focus_tutor.storage.local_storage import JsonFileStorage, StorageError
from focus_tutor.storage.record_store import RecordStore

# Configure structlog based on environment
is_production = os.getenv("ENV", "development").lower() == "production"

if is_production:
    # Production: JSON format for machine parsing
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
else:
    # Development: console format for human readability
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

logger = structlog.get_logger()


def create_app(settings: Settings, driver: SessionDriver | None = None) -> FastAPI:
    """Build the app around one session driver (constructed once per process)."""
    if driver is None:
        store = RecordStore(JsonFileStorage(settings.storage_path))
        generator = ContentGenerator(
            api_key=settings.openai_api_key,
            model=settings.generation_model,
            safety_model=settings.safety_model,
            timeout=settings.request_timeout_seconds,
        )
        driver = SessionDriver(store, generator)

    app = FastAPI(title="Focus Tutor", version="0.1.0")
    app.state.driver = driver
    _allowed_origins_env = os.getenv(
        "ALLOWED_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in _allowed_origins_env.split(",")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        logger.error("storage_unavailable", path=request.url.path, error=str(exc))
        return JSONResponse({"error": "Local storage is unavailable"}, status_code=503)

    return app


def main() -> None:
    """Run the application."""
    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
