from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from app.agent.lexicon import SECTION_DISPLAY_NAMES, SECTION_KEYWORDS, contains_keyword
from app.schemas.canvas import QACanvasDocument
from app.schemas.intent import CanvasSection, SectionTargetResult
from app.services.completion import CompletionPort, classify_with

logger = logging.getLogger(__name__)

MAX_PRIMARY = 3
MAX_SECONDARY = 2
PRIMARY_SCORE_RATIO = 0.6
LONG_MESSAGE_WORDS = 30


class SectionTargetClassification(BaseModel):
    """Structured output requested from the model when refining section targets."""
    primary_targets: List[CanvasSection] = Field(..., description="Sections the user directly wants to act on")
    secondary_targets: List[CanvasSection] = Field(default_factory=list, description="Sections indirectly affected")
    confidence: float
    keywords: List[str] = Field(default_factory=list, description="Words that point at the sections")
    reasoning: str = ""


def score_sections(message: str) -> Tuple[Dict[CanvasSection, int], List[str]]:
    """Weighted keyword hits per section; a phrase weighs as many points as it has words."""
    scores: Dict[CanvasSection, int] = {}
    keywords: List[str] = []
    for section, words in SECTION_KEYWORDS.items():
        for kw in dict.fromkeys(words):
            if contains_keyword(message, kw):
                scores[section] = scores.get(section, 0) + len(kw.split())
                if kw not in keywords:
                    keywords.append(kw)
    return scores, keywords


def _dedupe(sections: List[CanvasSection]) -> List[CanvasSection]:
    return list(dict.fromkeys(sections))


class SectionTargetDetector:
    """Maps a chat message to the canvas sections it refers to."""

    def __init__(self, completion: Optional[CompletionPort] = None):
        self.completion = completion

    def detect_by_keywords(self, message: str) -> SectionTargetResult:
        scores, keywords = score_sections(message)
        if not scores:
            return SectionTargetResult(keywords=[], confidence=0.0, detection_method="keyword")

        order = list(SECTION_KEYWORDS.keys())
        ranked = sorted(scores, key=lambda s: (-scores[s], order.index(s)))
        best = scores[ranked[0]]
        primary = [s for s in ranked if scores[s] >= best * PRIMARY_SCORE_RATIO][:MAX_PRIMARY]
        secondary = [s for s in ranked if s not in primary][:MAX_SECONDARY]
        confidence = min(0.95, 0.4 + 0.1 * best)
        return SectionTargetResult(
            primary_targets=primary,
            secondary_targets=secondary,
            keywords=keywords,
            confidence=confidence,
            detection_method="keyword",
        )

    def _needs_refinement(self, message: str, keyword_result: SectionTargetResult) -> bool:
        touched = len(keyword_result.primary_targets) + len(keyword_result.secondary_targets)
        return (
            not keyword_result.primary_targets
            or touched >= 3
            or len((message or "").split()) > LONG_MESSAGE_WORDS
        )

    async def detect_target_sections(
        self,
        message: str,
        current_document: Optional[QACanvasDocument] = None,
    ) -> SectionTargetResult:
        keyword_result = self.detect_by_keywords(message)
        if self.completion is None or not self._needs_refinement(message, keyword_result):
            return keyword_result

        try:
            ai = await classify_with(
                self.completion,
                self._build_prompt(message, current_document, keyword_result),
                SectionTargetClassification,
                system=(
                    "You identify which sections of a QA canvas a user message refers to. "
                    "Sections: ticketSummary, acceptanceCriteria, testCases, configurationWarnings, metadata. "
                    "Primary targets are acted on directly, secondary targets are affected indirectly."
                ),
            )
        except Exception as e:
            logger.warning(f"Section target refinement failed, keeping keyword result: {e}")
            return keyword_result

        primary = _dedupe(ai.primary_targets)[:MAX_PRIMARY]
        secondary = [s for s in _dedupe(ai.secondary_targets) if s not in primary][:MAX_SECONDARY]
        keywords = list(dict.fromkeys(keyword_result.keywords + [k for k in ai.keywords if k]))
        return SectionTargetResult(
            primary_targets=primary,
            secondary_targets=secondary,
            keywords=keywords,
            confidence=max(0.0, min(1.0, ai.confidence)),
            detection_method="hybrid" if keyword_result.keywords else "ai_analysis",
        )

    def _build_prompt(
        self,
        message: str,
        document: Optional[QACanvasDocument],
        keyword_result: SectionTargetResult,
    ) -> str:
        parts = [f"User message: {message}"]
        if document is not None:
            parts.append(
                "Canvas: "
                f"{len(document.acceptance_criteria)} acceptance criteria, "
                f"{len(document.test_cases)} test cases, "
                f"{len(document.configuration_warnings)} configuration warnings"
            )
        if keyword_result.keywords:
            parts.append("Keyword hints: " + ", ".join(keyword_result.keywords))
        return "\n".join(parts)

    def validate_sections(
        self,
        result: SectionTargetResult,
        current_document: Optional[QACanvasDocument] = None,
    ) -> SectionTargetResult:
        """Drop sections that cannot be edited on this canvas."""

        def editable(section: CanvasSection) -> bool:
            if section == CanvasSection.METADATA:
                return False
            if section == CanvasSection.CONFIGURATION_WARNINGS:
                return current_document is not None and len(current_document.configuration_warnings) > 0
            return True

        return result.model_copy(update={
            "primary_targets": [s for s in result.primary_targets if editable(s)],
            "secondary_targets": [s for s in result.secondary_targets if editable(s)],
        })

    @staticmethod
    def get_section_display_names(sections: List[CanvasSection], language: str = "es") -> List[str]:
        names = SECTION_DISPLAY_NAMES.get(language, SECTION_DISPLAY_NAMES["es"])
        return [names[CanvasSection(s)] for s in sections]
