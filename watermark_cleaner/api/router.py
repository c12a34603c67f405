"""Central FastAPI router wiring all API endpoints."""

from fastapi import APIRouter

from watermark_cleaner.api.routes import cleanup, health, jobs


api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(jobs.router)
api_router.include_router(cleanup.router)
