"""
Intent analysis API endpoints.
Thin HTTP adapter over the intent analysis middleware and the conversation state manager.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ..agent.state import ConversationStateManager
from ..dependencies import get_intent_middleware, get_state_manager
from ..middleware.formatter import ResponseFormatter
from ..middleware.intent import IntentAnalysisMiddleware, IntentAnalysisMiddlewareError
from ..schemas.base import BaseResponse
from ..schemas.middleware import RequestContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/intent", tags=["Intent"])


@router.post("/analyze")
async def analyze_turn(
    context: RequestContext,
    middleware: IntentAnalysisMiddleware = Depends(get_intent_middleware),
):
    """Classify the latest user message and return the routing decision."""
    try:
        response = await middleware.process_request(context)
    except IntentAnalysisMiddlewareError as e:
        logger.error(f"Intent analysis failed: [{e.code}] {e.message}")
        return ResponseFormatter.format_error_response(e)
    logger.info(
        f"Request {response.metadata.request_id}: {response.type.value} "
        f"({response.intent.value}, {response.confidence:.2f}) in {response.metadata.processing_time}ms"
    )
    return ResponseFormatter.format_response(response)


@router.get("/sessions")
async def session_stats(manager: ConversationStateManager = Depends(get_state_manager)):
    """Aggregate statistics about live conversation sessions."""
    return BaseResponse.success(manager.get_session_stats().to_wire())


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, manager: ConversationStateManager = Depends(get_state_manager)):
    """Current conversation state for a session."""
    state = manager.get_state(session_id)
    if state is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found or expired")
    return BaseResponse.success(state.to_wire())


@router.delete("/sessions/{session_id}")
async def end_session(session_id: str, manager: ConversationStateManager = Depends(get_state_manager)):
    """Mark a conversation as completed."""
    if not manager.end_session(session_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found or expired")
    return BaseResponse.success({"sessionId": session_id}, message="Session completed")
