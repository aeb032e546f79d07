"""API package."""

from .intent import router as intent_router

__all__ = [
    "intent_router",
]
