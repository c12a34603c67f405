"""FastAPI application entrypoint."""

from fastapi import FastAPI

from watermark_cleaner.api.router import api_router
from watermark_cleaner.core.config import settings
from watermark_cleaner.core.logging import configure_logging
from watermark_cleaner.events import register_shutdown_event, register_startup_event


def create_application() -> FastAPI:
    """Instantiate and configure the FastAPI application."""

    configure_logging()

    base_path = f"{settings.API_PREFIX}{settings.API_V1_PREFIX}"
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description=settings.DESCRIPTION,
        docs_url=f"{base_path}/docs",
        redoc_url=f"{base_path}/redoc",
        openapi_url=f"{base_path}/openapi.json",
    )

    app.include_router(api_router, prefix=base_path)

    register_startup_event(app)
    register_shutdown_event(app)

    return app


app = create_application()
