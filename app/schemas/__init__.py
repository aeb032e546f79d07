"""Schemas package."""

from .base import BaseResponse, CamelModel
from .canvas import (
    AcceptanceCriterion,
    ConfigurationWarning,
    DocumentMetadata,
    JiraTicket,
    QACanvasDocument,
    TestCase,
    TicketSummary,
)
from .intent import (
    AnalysisContext,
    CanvasSection,
    ChangeNotification,
    ClarificationQuestion,
    ClarificationResult,
    Conflict,
    ContentCitation,
    ContextSnapshot,
    ContextualResponse,
    ConversationPhase,
    ConversationState,
    DependencyAnalysisResult,
    IntentAnalysisResult,
    IntentType,
    OffTopicCategory,
    OffTopicResult,
    PoliteRejection,
    ResolutionAction,
    ResolutionSuggestion,
    SectionDependency,
    SectionTargetResult,
    ValidationResult,
)
from .middleware import (
    MiddlewareConfig,
    MiddlewareMessage,
    MiddlewareResponse,
    RequestContext,
    ResponseType,
)

__all__ = [
    # Base
    "BaseResponse",
    "CamelModel",
    # Canvas
    "AcceptanceCriterion",
    "ConfigurationWarning",
    "DocumentMetadata",
    "JiraTicket",
    "QACanvasDocument",
    "TestCase",
    "TicketSummary",
    # Intent analysis
    "AnalysisContext",
    "CanvasSection",
    "ChangeNotification",
    "ClarificationQuestion",
    "ClarificationResult",
    "Conflict",
    "ContentCitation",
    "ContextSnapshot",
    "ContextualResponse",
    "ConversationPhase",
    "ConversationState",
    "DependencyAnalysisResult",
    "IntentAnalysisResult",
    "IntentType",
    "OffTopicCategory",
    "OffTopicResult",
    "PoliteRejection",
    "ResolutionAction",
    "ResolutionSuggestion",
    "SectionDependency",
    "SectionTargetResult",
    "ValidationResult",
    # Middleware
    "MiddlewareConfig",
    "MiddlewareMessage",
    "MiddlewareResponse",
    "RequestContext",
    "ResponseType",
]
