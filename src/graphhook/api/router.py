"""Master API router mounted at /api."""

from fastapi import APIRouter

from graphhook.api.routes import health, notifications

api_router = APIRouter(prefix="/api")
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(notifications.router)
