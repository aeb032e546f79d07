from __future__ import annotations

import logging
from collections import Counter
from typing import List, Optional

from pydantic import BaseModel, Field

from app.agent.lexicon import contains_phrase, detect_language
from app.agent.sections import score_sections
from app.schemas.canvas import JiraTicket, QACanvasDocument
from app.schemas.intent import (
    CanvasSection,
    ContentCitation,
    ContextualResponse,
    TopicAnalysis,
)
from app.services.completion import CompletionPort, classify_with

logger = logging.getLogger(__name__)

MAX_FOLLOW_UPS = 5
FALLBACK_CONFIDENCE = 0.6

EXPLANATION_MARKERS = ["explica", "qué significa", "cómo funciona", "explain", "what does", "how does", "what is"]
METHODOLOGY_MARKERS = ["por qué", "metodología", "formato", "why", "methodology", "format", "approach"]

# Words in a response that reveal which section it talks about.
RESPONSE_SECTION_MARKERS = {
    CanvasSection.ACCEPTANCE_CRITERIA: ["criterios", "criteria"],
    CanvasSection.TEST_CASES: ["test", "prueba"],
    CanvasSection.TICKET_SUMMARY: ["resumen", "summary", "problema", "problem"],
    CanvasSection.CONFIGURATION_WARNINGS: ["advertencia", "configuración", "warning", "configuration"],
}


class GeneratedCitation(BaseModel):
    section: CanvasSection
    content: str = Field(..., description="Text quoted verbatim from the canvas")
    relevance: str = "medium"


class ContextualAnswer(BaseModel):
    """Structured output requested from the model for informational answers."""
    response: str
    relevant_sections: List[CanvasSection] = Field(default_factory=list)
    citations: List[GeneratedCitation] = Field(default_factory=list)
    suggested_follow_ups: List[str] = Field(default_factory=list)
    confidence: float


def _distribution(values: List[str]) -> str:
    return ", ".join(f"{count} {value}" for value, count in Counter(values).items())


class ContextualResponseGenerator:
    """Answers questions about the canvas, grounded on its actual content."""

    def __init__(self, completion: Optional[CompletionPort] = None):
        self.completion = completion

    def extract_topics(self, message: str) -> TopicAnalysis:
        scores, keywords = score_sections(message)
        sections = [s for s in scores if s != CanvasSection.METADATA]
        if contains_phrase(message, EXPLANATION_MARKERS):
            question_type = "explanation"
        elif contains_phrase(message, METHODOLOGY_MARKERS):
            question_type = "methodology"
        else:
            question_type = "general"
        return TopicAnalysis(sections=sections, keywords=keywords, question_type=question_type)

    async def generate_contextual_response(
        self,
        message: str,
        current_document: Optional[QACanvasDocument] = None,
        original_ticket: Optional[JiraTicket] = None,
    ) -> ContextualResponse:
        topics = self.extract_topics(message)
        if current_document is None:
            return self._no_canvas_response(message)

        try:
            ai = await classify_with(
                self.completion,
                self._build_prompt(message, current_document, original_ticket, topics),
                ContextualAnswer,
                system=(
                    "You are a QA analyst answering questions about a QA canvas. Answer only from the canvas "
                    "content given, quote it verbatim in citations, and reply in the user's language."
                ),
            )
        except Exception as e:
            logger.warning(f"Contextual response generation failed, using canvas insights: {e}")
            return self.generate_fallback_response(message, current_document, topics)

        return self.enhance_response(
            ContextualResponse(
                response=ai.response,
                relevant_sections=ai.relevant_sections,
                citations=[ContentCitation(**c.model_dump()) for c in ai.citations],
                suggested_follow_ups=ai.suggested_follow_ups,
                confidence=max(0.0, min(1.0, ai.confidence)),
            ),
            current_document,
            detect_language(message),
        )

    def _build_prompt(
        self,
        message: str,
        document: QACanvasDocument,
        ticket: Optional[JiraTicket],
        topics: TopicAnalysis,
    ) -> str:
        lines = [f"Question ({topics.question_type}): {message}"]
        if ticket is not None:
            lines.append(f"Ticket {ticket.issue_key}: {ticket.summary}")
        s = document.ticket_summary
        lines.append(f"Problem: {s.problem}\nSolution: {s.solution}\nContext: {s.context}")
        if document.acceptance_criteria:
            lines.append("Acceptance criteria:")
            lines.extend(f"- [{a.priority}] {a.title}: {a.description}" for a in document.acceptance_criteria)
        if document.test_cases:
            lines.append("Test cases:")
            lines.extend(f"- ({t.format}, {t.category}) {t.label}" for t in document.test_cases)
        if document.configuration_warnings:
            lines.append("Configuration warnings:")
            lines.extend(f"- [{w.severity}] {w.title}: {w.message}" for w in document.configuration_warnings)
        if topics.sections:
            lines.append("Focus sections: " + ", ".join(s.value for s in topics.sections))
        return "\n".join(lines)

    def enhance_response(
        self,
        response: ContextualResponse,
        document: QACanvasDocument,
        language: str = "es",
    ) -> ContextualResponse:
        return response.model_copy(update={
            "citations": self.validate_citations(response.citations, document),
            "relevant_sections": self.identify_relevant_sections(response.response, response.relevant_sections),
            "suggested_follow_ups": self.enhance_follow_up_suggestions(response.suggested_follow_ups, document, language),
        })

    @staticmethod
    def validate_citations(citations: List[ContentCitation], document: QACanvasDocument) -> List[ContentCitation]:
        """Keep only citations whose text literally appears in the cited section."""
        valid = []
        for citation in citations:
            quoted = (citation.content or "").strip()
            if not quoted:
                continue
            if any(quoted in text for text in document.section_texts(citation.section.value)):
                valid.append(citation)
        return valid

    @staticmethod
    def identify_relevant_sections(text: str, existing: List[CanvasSection]) -> List[CanvasSection]:
        sections = list(dict.fromkeys(existing))
        lowered = (text or "").lower()
        for section, markers in RESPONSE_SECTION_MARKERS.items():
            if section not in sections and any(m in lowered for m in markers):
                sections.append(section)
        return sections

    @staticmethod
    def enhance_follow_up_suggestions(
        existing: List[str],
        document: QACanvasDocument,
        language: str = "es",
    ) -> List[str]:
        es = language != "en"
        suggestions = [s for s in existing if s and s.strip()]
        joined = " ".join(suggestions).lower()
        if document.acceptance_criteria and "criteri" not in joined:
            suggestions.append(
                "¿Quieres que analice la calidad de los criterios de aceptación?" if es
                else "Should I assess the quality of the acceptance criteria?"
            )
        if document.test_cases and "test" not in joined and "prueba" not in joined:
            suggestions.append(
                "¿Te gustaría saber si los casos de prueba cubren todos los criterios?" if es
                else "Would you like to know whether the test cases cover every criterion?"
            )
        if document.configuration_warnings:
            suggestions.append(
                "¿Quieres que explique las advertencias de configuración?" if es
                else "Should I explain the configuration warnings?"
            )
        if document.test_cases:
            fmt = document.test_cases[0].format
            suggestions.append(
                f"¿Te interesa saber por qué se usa el formato {fmt} para los casos de prueba?" if es
                else f"Do you want to know why the {fmt} format is used for the test cases?"
            )
        return list(dict.fromkeys(suggestions))[:MAX_FOLLOW_UPS]

    def generate_section_insights(self, section: CanvasSection, document: QACanvasDocument, language: str = "es") -> str:
        es = language != "en"
        section = CanvasSection(section)
        if section == CanvasSection.ACCEPTANCE_CRITERIA:
            criteria = document.acceptance_criteria
            if not criteria:
                return "No hay criterios de aceptación definidos." if es else "No acceptance criteria are defined."
            dist = _distribution([c.priority for c in criteria])
            if es:
                return f"Hay {len(criteria)} criterios de aceptación. Distribución por prioridad: {dist}."
            return f"There are {len(criteria)} acceptance criteria. Priority distribution: {dist}."
        if section == CanvasSection.TEST_CASES:
            tests = document.test_cases
            if not tests:
                return "No hay casos de prueba definidos." if es else "No test cases are defined."
            formats = ", ".join(dict.fromkeys(t.format for t in tests))
            categories = ", ".join(dict.fromkeys(t.category for t in tests))
            if es:
                return f"Hay {len(tests)} casos de prueba en formato {formats}. Categorías: {categories}."
            return f"There are {len(tests)} test cases in {formats} format. Categories: {categories}."
        if section == CanvasSection.TICKET_SUMMARY:
            s = document.ticket_summary
            labels = (
                ("problema definido", "solución especificada", "contexto proporcionado") if es
                else ("problem defined", "solution specified", "context provided")
            )
            parts = [label for value, label in zip((s.problem, s.solution, s.context), labels) if value]
            if not parts:
                return "El resumen del ticket está vacío." if es else "The ticket summary is empty."
            return ("El resumen del ticket tiene: " if es else "The ticket summary has: ") + ", ".join(parts) + "."
        if section == CanvasSection.CONFIGURATION_WARNINGS:
            warnings = document.configuration_warnings
            if not warnings:
                return "No hay advertencias de configuración." if es else "There are no configuration warnings."
            dist = _distribution([w.severity for w in warnings])
            if es:
                return f"Hay {len(warnings)} advertencias de configuración. Por severidad: {dist}."
            return f"There are {len(warnings)} configuration warnings. By severity: {dist}."
        return "Sección no reconocida." if es else "Unrecognized section."

    def generate_fallback_response(
        self,
        message: str,
        document: QACanvasDocument,
        topics: Optional[TopicAnalysis] = None,
    ) -> ContextualResponse:
        language = detect_language(message)
        topics = topics or self.extract_topics(message)
        sections = topics.sections or [CanvasSection.ACCEPTANCE_CRITERIA, CanvasSection.TEST_CASES]

        response = " ".join(self.generate_section_insights(s, document, language) for s in sections)
        citations: List[ContentCitation] = []
        if CanvasSection.ACCEPTANCE_CRITERIA in sections and document.acceptance_criteria:
            first = document.acceptance_criteria[0]
            if first.title:
                citations.append(ContentCitation(section=CanvasSection.ACCEPTANCE_CRITERIA, content=first.title, relevance="high"))
        if CanvasSection.TEST_CASES in sections and document.test_cases:
            label = document.test_cases[0].label
            citations.append(ContentCitation(section=CanvasSection.TEST_CASES, content=label, relevance="high"))
        if CanvasSection.TICKET_SUMMARY in sections and document.ticket_summary.problem:
            citations.append(ContentCitation(
                section=CanvasSection.TICKET_SUMMARY,
                content=document.ticket_summary.problem,
                relevance="high",
            ))

        return ContextualResponse(
            response=response,
            relevant_sections=sections,
            citations=self.validate_citations(citations, document),
            suggested_follow_ups=self.enhance_follow_up_suggestions([], document, language),
            confidence=FALLBACK_CONFIDENCE,
        )

    def _no_canvas_response(self, message: str) -> ContextualResponse:
        es = detect_language(message) != "en"
        return ContextualResponse(
            response=(
                "Todavía no hay un lienzo QA cargado. Genera el análisis del ticket para poder consultarlo."
                if es else
                "There is no QA canvas loaded yet. Generate the ticket analysis to ask questions about it."
            ),
            relevant_sections=[],
            citations=[],
            suggested_follow_ups=[
                "¿Quieres generar el lienzo QA para este ticket?" if es
                else "Do you want to generate the QA canvas for this ticket?"
            ],
            confidence=FALLBACK_CONFIDENCE,
        )
