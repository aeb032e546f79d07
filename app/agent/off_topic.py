from __future__ import annotations

import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from app.agent.lexicon import (
    CATEGORY_TONES,
    HIGH_CONFIDENCE,
    OFF_TOPIC_KEYWORDS,
    QA_KEYWORDS,
    REDIRECTION_SUGGESTIONS,
    REJECTION_TEMPLATES,
    match_keywords,
)
from app.schemas.canvas import JiraTicket, QACanvasDocument
from app.schemas.intent import OffTopicCategory, OffTopicResult, PoliteRejection
from app.services.completion import CompletionPort, classify_with

logger = logging.getLogger(__name__)


class OffTopicClassification(BaseModel):
    is_off_topic: bool = Field(..., description="Whether the message is unrelated to QA work on the current ticket")
    category: Optional[OffTopicCategory] = Field(None, description="Off-topic category, null when on-topic")
    confidence: float
    reasoning: str = ""
    keywords: List[str] = Field(default_factory=list)


class OffTopicDetector:
    """Keyword-first off-topic detection with optional model confirmation."""

    def __init__(
        self,
        completion: Optional[CompletionPort] = None,
        keyword_threshold: float = 0.3,
        ai_confidence_threshold: float = 0.7,
        enable_hybrid_detection: bool = True,
    ):
        self.completion = completion
        self.keyword_threshold = keyword_threshold
        self.ai_confidence_threshold = ai_confidence_threshold
        self.enable_hybrid_detection = enable_hybrid_detection

    def detect_by_keywords(self, message: str) -> OffTopicResult:
        qa_hits = match_keywords(message, QA_KEYWORDS)
        category_hits: Dict[OffTopicCategory, List[str]] = {}
        for category, words in OFF_TOPIC_KEYWORDS.items():
            hits = match_keywords(message, words)
            if hits:
                category_hits[category] = hits

        if not category_hits:
            return OffTopicResult(
                is_off_topic=False,
                confidence=0.8 if qa_hits else 0.6,
                keywords=qa_hits,
                reasoning="No off-topic keywords detected",
            )

        # max() keeps lexicon order on ties
        category = max(category_hits, key=lambda c: len(category_hits[c]))
        hits = category_hits[category]

        # Mixed content favours the QA reading
        if qa_hits and len(qa_hits) >= len(hits):
            return OffTopicResult(
                is_off_topic=False,
                confidence=0.8,
                keywords=qa_hits,
                reasoning="QA-related content outweighs off-topic keywords",
            )

        score = min(1.0, 0.4 * len(hits))
        if score < self.keyword_threshold:
            return OffTopicResult(is_off_topic=False, confidence=0.5, keywords=hits, reasoning="Weak off-topic signal")

        return OffTopicResult(
            is_off_topic=True,
            category=category,
            confidence=min(1.0, score * 1.5),
            keywords=hits,
            reasoning=f"Keyword match for {category.value} category",
        )

    async def detect_off_topic(
        self,
        message: str,
        current_document: Optional[QACanvasDocument] = None,
        original_ticket: Optional[JiraTicket] = None,
    ) -> OffTopicResult:
        keyword_result = self.detect_by_keywords(message)
        if keyword_result.confidence >= HIGH_CONFIDENCE:
            return keyword_result

        if self.enable_hybrid_detection and self.completion is not None:
            try:
                ai = await classify_with(
                    self.completion,
                    self._build_prompt(message, current_document, original_ticket),
                    OffTopicClassification,
                    system=(
                        "You decide whether a chat message belongs to a QA assistant conversation "
                        "about a Jira ticket, its acceptance criteria and its test cases."
                    ),
                )
                ai_confidence = max(0.0, min(1.0, ai.confidence))
                if ai_confidence >= self.ai_confidence_threshold:
                    category = ai.category if ai.is_off_topic else None
                    if ai.is_off_topic and category is None:
                        category = keyword_result.category or OffTopicCategory.OTHER
                    return OffTopicResult(
                        is_off_topic=ai.is_off_topic,
                        category=category,
                        confidence=(keyword_result.confidence + ai_confidence) / 2,
                        detection_method="hybrid",
                        keywords=list(dict.fromkeys(keyword_result.keywords + ai.keywords)),
                        reasoning=f"Hybrid analysis: {ai.reasoning or 'model verdict'}",
                    )
            except Exception as e:
                logger.warning(f"Off-topic model check failed, using keywords: {e}")
                return keyword_result.model_copy(update={
                    "detection_method": "keyword",
                    "reasoning": "AI analysis failed, used keyword detection",
                })

        return keyword_result

    def _build_prompt(
        self,
        message: str,
        document: Optional[QACanvasDocument],
        ticket: Optional[JiraTicket],
    ) -> str:
        parts = [f"Message: {message}"]
        if ticket is not None:
            parts.append(f"Ticket: {ticket.issue_key} - {ticket.summary}")
        if document is not None and document.ticket_summary.problem:
            parts.append(f"Ticket problem: {document.ticket_summary.problem}")
        return "\n".join(parts)

    def generate_polite_rejection(
        self,
        category: OffTopicCategory,
        language: str = "es",
        tone: Optional[str] = None,
    ) -> PoliteRejection:
        language = language if language in REJECTION_TEMPLATES else "es"
        category = OffTopicCategory(category)
        tone = tone or self.get_category_tone(category)
        templates = REJECTION_TEMPLATES[language]
        suggestions = REDIRECTION_SUGGESTIONS[language].get(category) or REDIRECTION_SUGGESTIONS[language][OffTopicCategory.OTHER]
        return PoliteRejection(
            message=templates.get(tone, templates["helpful"]),
            redirection_suggestions=list(suggestions[:3]),
            language=language,
            category=category,
            tone=tone,
        )

    @staticmethod
    def get_category_tone(category: OffTopicCategory) -> str:
        return CATEGORY_TONES.get(OffTopicCategory(category), "helpful")

    @staticmethod
    def should_use_consistent_rejection(category: OffTopicCategory) -> bool:
        """Small talk and general tech questions get a softer, category-specific answer."""
        return OffTopicCategory(category) not in (OffTopicCategory.SMALL_TALK, OffTopicCategory.GENERAL_TECH)
