"""
Dependency injection setup for the application.
"""

import asyncio
import logging
from functools import lru_cache
from typing import Optional

from app.agent.state import ConversationStateManager, run_periodic_cleanup
from app.core.config import settings
from app.middleware.intent import IntentAnalysisMiddleware
from app.schemas.middleware import MiddlewareConfig

logger = logging.getLogger(__name__)

_cleanup_task: Optional[asyncio.Task] = None


@lru_cache()
def get_completion_service():
    """Get the LangChain completion service (providers are initialized once)."""
    from app.services.ai_service import AIService
    return AIService()


@lru_cache()
def get_state_manager() -> ConversationStateManager:
    """Get the process-wide conversation state manager."""
    return ConversationStateManager()


@lru_cache()
def get_intent_middleware() -> IntentAnalysisMiddleware:
    """Get the intent analysis middleware wired to the shared state manager."""
    return IntentAnalysisMiddleware(
        config=MiddlewareConfig(),
        completion=get_completion_service(),
        state_manager=get_state_manager(),
    )


def start_session_cleanup() -> asyncio.Task:
    """Start the periodic expired-session sweep."""
    global _cleanup_task
    if _cleanup_task is None or _cleanup_task.done():
        _cleanup_task = asyncio.create_task(
            run_periodic_cleanup(get_state_manager(), settings.SESSION_CLEANUP_INTERVAL_SECONDS)
        )
        logger.info(f"Session cleanup scheduled every {settings.SESSION_CLEANUP_INTERVAL_SECONDS}s")
    return _cleanup_task


# Cleanup function for application shutdown
async def cleanup_dependencies():
    """Stop background tasks on application shutdown."""
    global _cleanup_task
    if _cleanup_task is not None:
        _cleanup_task.cancel()
        try:
            await _cleanup_task
        except asyncio.CancelledError:
            pass
        _cleanup_task = None
