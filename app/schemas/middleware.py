"""
Request/response schemas of the intent analysis middleware.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field

from ..core.config import settings
from .base import CamelModel
from .canvas import JiraTicket, QACanvasDocument
from .intent import (
    CanvasSection,
    ClarificationResult,
    ContextualResponse,
    DependencyAnalysisResult,
    IntentType,
)


class MiddlewareMessage(CamelModel):
    role: str = "user"
    content: str = ""


class RequestContext(CamelModel):
    messages: List[MiddlewareMessage] = Field(default_factory=list)
    current_document: Optional[QACanvasDocument] = None
    original_ticket_data: Optional[JiraTicket] = None
    session_id: Optional[str] = None
    user_preferences: Dict[str, Any] = Field(default_factory=dict)


class MiddlewareConfig(CamelModel):
    enable_intent_analysis: bool = Field(default_factory=lambda: settings.INTENT_ANALYSIS_ENABLED)
    enable_dependency_analysis: bool = Field(default_factory=lambda: settings.DEPENDENCY_ANALYSIS_ENABLED)
    enable_conversation_state: bool = Field(default_factory=lambda: settings.CONVERSATION_STATE_ENABLED)
    fallback_to_original: bool = Field(default_factory=lambda: settings.FALLBACK_TO_ORIGINAL)
    timeout_seconds: float = Field(default_factory=lambda: settings.INTENT_ANALYSIS_TIMEOUT_SECONDS, gt=0)


class ResponseType(str, Enum):
    CLARIFICATION = "clarification"
    INFORMATION = "information"
    REJECTION = "rejection"
    MODIFICATION = "modification"
    FALLBACK = "fallback"


class ResponseData(CamelModel):
    clarification_result: Optional[ClarificationResult] = None
    contextual_response: Optional[ContextualResponse] = None
    dependency_analysis: Optional[DependencyAnalysisResult] = None
    rejection_message: Optional[str] = None
    redirection_suggestions: List[str] = Field(default_factory=list)
    fallback_reason: Optional[str] = None


class ResponseMetadata(CamelModel):
    processing_time: int = 0
    request_id: str
    timestamp: datetime


class MiddlewareResponse(CamelModel):
    type: ResponseType
    intent: IntentType
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    target_sections: List[CanvasSection] = Field(default_factory=list)
    session_id: Optional[str] = None
    data: ResponseData = Field(default_factory=ResponseData)
    metadata: ResponseMetadata
