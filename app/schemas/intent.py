"""
Intent analysis schemas: sections, intents, dependency and clarification results,
conversation state.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import Field

from .base import CamelModel
from .canvas import QACanvasDocument


class CanvasSection(str, Enum):
    """Named regions of the QA canvas."""
    TICKET_SUMMARY = "ticketSummary"
    ACCEPTANCE_CRITERIA = "acceptanceCriteria"
    TEST_CASES = "testCases"
    CONFIGURATION_WARNINGS = "configurationWarnings"
    METADATA = "metadata"


class IntentType(str, Enum):
    MODIFY_CANVAS = "modify_canvas"
    ASK_CLARIFICATION = "ask_clarification"
    PROVIDE_INFORMATION = "provide_information"
    REQUEST_EXPLANATION = "request_explanation"
    OFF_TOPIC = "off_topic"


class ConversationPhase(str, Enum):
    INITIAL = "initial"
    AWAITING_CLARIFICATION = "awaiting_clarification"
    PROCESSING_MODIFICATION = "processing_modification"
    PROVIDING_INFORMATION = "providing_information"
    COMPLETED = "completed"


class AnalysisContext(CamelModel):
    has_canvas: bool = False
    canvas_complexity: str = "empty"
    conversation_length: int = 0
    available_sections: List[CanvasSection] = Field(default_factory=list)
    last_user_intent: Optional[IntentType] = None


class IntentAnalysisResult(CamelModel):
    intent: IntentType
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    target_sections: List[CanvasSection] = Field(default_factory=list)
    context: AnalysisContext = Field(default_factory=AnalysisContext)
    reasoning: str = Field(..., min_length=1)
    keywords: List[str] = Field(default_factory=list)
    should_modify_canvas: bool = False
    requires_clarification: bool = False


class SectionTargetResult(CamelModel):
    primary_targets: List[CanvasSection] = Field(default_factory=list, max_length=3)
    secondary_targets: List[CanvasSection] = Field(default_factory=list, max_length=2)
    keywords: List[str] = Field(default_factory=list)
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    detection_method: str = "keyword"


class SectionDependency(CamelModel):
    from_section: CanvasSection = Field(..., alias="from")
    to: CanvasSection
    relationship: str
    strength: str
    description: str = ""


class Conflict(CamelModel):
    type: str
    severity: str
    affected_sections: List[CanvasSection] = Field(default_factory=list)
    description: str
    current_state: str = ""
    expected_state: str = ""
    suggested_resolution: str = ""
    auto_resolvable: bool = False


class ResolutionAction(CamelModel):
    type: str
    section: CanvasSection
    description: str


class ResolutionSuggestion(CamelModel):
    conflict_id: str
    title: str
    description: str
    actions: List[ResolutionAction] = Field(default_factory=list)
    estimated_effort: str = "medium"
    priority: str = "medium"
    affected_sections: List[CanvasSection] = Field(default_factory=list)


class ValidationResult(CamelModel):
    is_valid: bool
    conflicts: List[Conflict] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    suggestions: List[ResolutionSuggestion] = Field(default_factory=list)
    validation_score: int = Field(100, ge=0, le=100)


class DependencyAnalysisResult(CamelModel):
    affected_sections: List[CanvasSection] = Field(default_factory=list)
    dependencies: List[SectionDependency] = Field(default_factory=list)
    cascade_required: bool = False
    impact_assessment: str = ""
    conflict_risk: str = "low"
    validation_result: Optional[ValidationResult] = None


class ChangeNotification(CamelModel):
    type: str
    title: str
    message: str
    affected_sections: List[CanvasSection] = Field(default_factory=list)
    actions: List[str] = Field(default_factory=list)
    dismissible: bool = True
    timestamp: datetime


class ClarificationQuestion(CamelModel):
    question: str
    category: str = "specification"
    target_section: CanvasSection
    examples: List[str] = Field(default_factory=list)
    priority: str = "medium"


class ClarificationResult(CamelModel):
    questions: List[ClarificationQuestion] = Field(default_factory=list, max_length=4)
    context: str = ""
    suggested_actions: List[str] = Field(default_factory=list)
    estimated_clarification_time: int = 0


class QuestionValidation(CamelModel):
    is_valid: bool
    issues: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)


class ContentCitation(CamelModel):
    section: CanvasSection
    content: str
    relevance: str = ""


class ContextualResponse(CamelModel):
    response: str
    relevant_sections: List[CanvasSection] = Field(default_factory=list)
    citations: List[ContentCitation] = Field(default_factory=list)
    suggested_follow_ups: List[str] = Field(default_factory=list)
    confidence: float = Field(0.0, ge=0.0, le=1.0)


class TopicAnalysis(CamelModel):
    sections: List[CanvasSection] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    question_type: str = "general"


class OffTopicCategory(str, Enum):
    ENTERTAINMENT = "entertainment"
    PERSONAL = "personal"
    GENERAL_TECH = "general_tech"
    UNRELATED_WORK = "unrelated_work"
    SMALL_TALK = "small_talk"
    OTHER = "other"


class OffTopicResult(CamelModel):
    is_off_topic: bool
    category: Optional[OffTopicCategory] = None
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    detection_method: str = "keyword"
    keywords: List[str] = Field(default_factory=list)
    reasoning: str = ""


class PoliteRejection(CamelModel):
    message: str
    redirection_suggestions: List[str] = Field(default_factory=list, min_length=3, max_length=3)
    language: str = "es"
    category: OffTopicCategory = OffTopicCategory.OTHER
    tone: str = "formal"


class ContextSnapshot(CamelModel):
    timestamp: datetime
    canvas_state: Optional[QACanvasDocument] = None
    user_message: str
    system_response: str = ""
    intent: IntentType
    confidence: float = Field(0.0, ge=0.0, le=1.0)


class ConversationState(CamelModel):
    session_id: str
    current_phase: ConversationPhase = ConversationPhase.INITIAL
    pending_clarifications: List[ClarificationQuestion] = Field(default_factory=list)
    last_intent: IntentAnalysisResult
    context_history: List[ContextSnapshot] = Field(default_factory=list)
    awaiting_response: bool = False
    created_at: datetime
    last_activity: datetime


class SessionStats(CamelModel):
    total_sessions: int = 0
    active_sessions: int = 0
    awaiting_response_sessions: int = 0
    average_conversation_length: float = 0.0
