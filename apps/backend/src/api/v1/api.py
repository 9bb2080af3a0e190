from fastapi import APIRouter

from .chat import router as chat_router
from .health import router as health_router


# Public API router
api_router = APIRouter()

api_router.include_router(health_router, tags=["health"])

# The chat router authenticates per endpoint so the identity is available
# to the handler rather than only checked at router level.
api_router.include_router(chat_router)
