from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional

from pydantic import BaseModel, Field

from app.agent.lexicon import (
    EXPLANATION_PHRASES,
    INFORMATION_PHRASES,
    MODIFICATION_VERBS,
    VAGUE_COMPLAINTS,
    contains_phrase,
    match_keywords,
)
from app.agent.off_topic import OffTopicDetector
from app.agent.sections import SectionTargetDetector
from app.schemas.canvas import QACanvasDocument
from app.schemas.intent import (
    AnalysisContext,
    CanvasSection,
    IntentAnalysisResult,
    IntentType,
    SectionTargetResult,
)
from app.services.completion import CompletionPort, classify_with

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 4


class IntentClassification(BaseModel):
    """Structured output requested from the model for intent classification."""
    intent: IntentType
    confidence: float
    target_sections: List[CanvasSection] = Field(default_factory=list)
    reasoning: str = ""
    keywords: List[str] = Field(default_factory=list)


SYSTEM_PROMPT = (
    "You are an intent classifier for a QA assistant that edits a canvas document "
    "(ticket summary, acceptance criteria, test cases, configuration warnings).\n"
    "Allowed intents:\n"
    "- modify_canvas: the user gives a clear, actionable instruction to change content.\n"
    "- ask_clarification: the user complains or asks for change without saying what exactly "
    "(e.g. 'the criteria are wrong').\n"
    "- provide_information: the user asks about what the canvas contains.\n"
    "- request_explanation: the user wants reasoning, methodology or how sections relate.\n"
    "- off_topic: anything unrelated to QA work on the current ticket.\n"
    "Messages can be in Spanish or English. target_sections uses ticketSummary, "
    "acceptanceCriteria, testCases, configurationWarnings."
)


def _role_and_content(msg: Any) -> tuple:
    if isinstance(msg, dict):
        return str(msg.get("role") or "user"), str(msg.get("content") or "")
    return str(getattr(msg, "role", "user") or "user"), str(getattr(msg, "content", "") or "")


def assess_canvas_complexity(document: Optional[QACanvasDocument]) -> str:
    if document is None:
        return "empty"
    items = document.item_count
    if items == 0:
        return "empty"
    if items <= 5:
        return "simple"
    if items <= 15:
        return "medium"
    return "complex"


class IntentAnalyzer:
    """Classifies a chat message into one of the five canvas conversation intents."""

    def __init__(
        self,
        completion: Optional[CompletionPort] = None,
        section_detector: Optional[SectionTargetDetector] = None,
        off_topic_detector: Optional[OffTopicDetector] = None,
    ):
        self.completion = completion
        # Keyword-only helpers; the model is consulted once, here.
        self.section_detector = section_detector or SectionTargetDetector()
        self.off_topic_detector = off_topic_detector or OffTopicDetector(enable_hybrid_detection=False)

    def build_context(
        self,
        document: Optional[QACanvasDocument],
        history: Iterable[Any],
        last_intent: Optional[IntentType] = None,
    ) -> AnalysisContext:
        available: List[CanvasSection] = []
        if document is not None:
            available = [
                s for s in CanvasSection
                if s != CanvasSection.METADATA and document.has_section_content(s.value)
            ]
        return AnalysisContext(
            has_canvas=document is not None,
            canvas_complexity=assess_canvas_complexity(document),
            conversation_length=len(list(history or [])),
            available_sections=available,
            last_user_intent=last_intent,
        )

    async def analyze_intent(
        self,
        message: str,
        history: Optional[List[Any]] = None,
        current_document: Optional[QACanvasDocument] = None,
        last_intent: Optional[IntentType] = None,
    ) -> IntentAnalysisResult:
        history = list(history or [])
        context = self.build_context(current_document, history, last_intent)
        keyword_sections = self.section_detector.detect_by_keywords(message)

        try:
            ai = await classify_with(
                self.completion,
                self._build_prompt(message, history, context),
                IntentClassification,
                system=SYSTEM_PROMPT,
            )
        except Exception as e:
            logger.warning(f"Intent classification failed, using keyword fallback: {e}")
            return self.fallback_analysis(message, context, keyword_sections, current_document, str(e))

        targets = self._editable(ai.target_sections, current_document)
        if not targets and ai.intent != IntentType.OFF_TOPIC:
            targets = self._editable(keyword_sections.primary_targets, current_document)
        return IntentAnalysisResult(
            intent=ai.intent,
            confidence=max(0.0, min(1.0, ai.confidence)),
            target_sections=targets,
            context=context,
            reasoning=ai.reasoning.strip() or f"Classified as {ai.intent.value}",
            keywords=list(dict.fromkeys(ai.keywords + keyword_sections.keywords)),
            should_modify_canvas=ai.intent == IntentType.MODIFY_CANVAS,
            requires_clarification=ai.intent == IntentType.ASK_CLARIFICATION,
        )

    def _editable(self, sections: List[CanvasSection], document: Optional[QACanvasDocument]) -> List[CanvasSection]:
        validated = self.section_detector.validate_sections(
            SectionTargetResult(primary_targets=list(dict.fromkeys(sections))[:3]),
            document,
        )
        return validated.primary_targets

    def _build_prompt(self, message: str, history: List[Any], context: AnalysisContext) -> str:
        parts = []
        recent = []
        for msg in history[-HISTORY_WINDOW:]:
            role, content = _role_and_content(msg)
            if content.strip():
                recent.append(f"- {role}: {content.strip()}")
        if recent:
            parts.append("Recent conversation:\n" + "\n".join(recent))
        parts.append(
            f"Canvas: {'present' if context.has_canvas else 'absent'}, "
            f"complexity {context.canvas_complexity}, "
            f"sections with content: {', '.join(s.value for s in context.available_sections) or 'none'}"
        )
        if context.last_user_intent:
            parts.append(f"Previous intent: {context.last_user_intent.value}")
        parts.append(f"User: {message}")
        return "\n\n".join(parts)

    def fallback_analysis(
        self,
        message: str,
        context: AnalysisContext,
        keyword_sections: SectionTargetResult,
        current_document: Optional[QACanvasDocument] = None,
        error: str = "",
    ) -> IntentAnalysisResult:
        """Deterministic keyword classification used whenever the model is unavailable."""
        suffix = f" (AI analysis unavailable: {error})" if error else ""
        targets = self._editable(keyword_sections.primary_targets, current_document)

        if not keyword_sections.keywords:
            off_topic = self.off_topic_detector.detect_by_keywords(message)
            if off_topic.is_off_topic:
                return IntentAnalysisResult(
                    intent=IntentType.OFF_TOPIC,
                    confidence=off_topic.confidence,
                    target_sections=[],
                    context=context,
                    reasoning=f"Keyword fallback: off-topic {off_topic.category.value} terms{suffix}",
                    keywords=off_topic.keywords,
                )

        verbs = match_keywords(message, MODIFICATION_VERBS)
        if verbs:
            return IntentAnalysisResult(
                intent=IntentType.MODIFY_CANVAS,
                confidence=0.5,
                target_sections=targets,
                context=context,
                reasoning=f"Keyword fallback: modification verb detected{suffix}",
                keywords=verbs + keyword_sections.keywords,
                should_modify_canvas=True,
            )

        complaints = contains_phrase(message, VAGUE_COMPLAINTS)
        if complaints:
            return IntentAnalysisResult(
                intent=IntentType.ASK_CLARIFICATION,
                confidence=0.5,
                target_sections=targets,
                context=context,
                reasoning=f"Keyword fallback: vague complaint detected{suffix}",
                keywords=complaints + keyword_sections.keywords,
                requires_clarification=True,
            )

        explanation = contains_phrase(message, EXPLANATION_PHRASES)
        if explanation:
            return IntentAnalysisResult(
                intent=IntentType.REQUEST_EXPLANATION,
                confidence=0.5,
                target_sections=targets,
                context=context,
                reasoning=f"Keyword fallback: explanation request detected{suffix}",
                keywords=explanation + keyword_sections.keywords,
            )

        info = contains_phrase(message, INFORMATION_PHRASES)
        if info or keyword_sections.keywords:
            return IntentAnalysisResult(
                intent=IntentType.PROVIDE_INFORMATION,
                confidence=0.5,
                target_sections=targets,
                context=context,
                reasoning=f"Keyword fallback: information request about the canvas{suffix}",
                keywords=info + keyword_sections.keywords,
            )

        return IntentAnalysisResult(
            intent=IntentType.PROVIDE_INFORMATION,
            confidence=0.3,
            target_sections=targets,
            context=context,
            reasoning=f"Keyword fallback: no recognizable keywords, defaulting to information{suffix}",
            keywords=[],
        )
