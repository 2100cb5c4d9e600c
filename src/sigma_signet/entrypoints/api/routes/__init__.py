"""API route modules."""

from fastapi import APIRouter

from sigma_signet.entrypoints.api.routes.session import router as session_router
from sigma_signet.entrypoints.api.routes.settings import router as settings_router

# Create main API router
api_router = APIRouter()

api_router.include_router(settings_router)
api_router.include_router(session_router)

__all__ = ["api_router"]
