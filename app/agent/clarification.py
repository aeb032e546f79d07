from __future__ import annotations

import logging
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from app.agent.lexicon import (
    CLARIFICATION_CONTEXT,
    DEPENDENCY_QUESTION,
    SCOPE_QUESTION,
    SECTION_DISPLAY_NAMES,
    SECTION_QUESTION_TEMPLATES,
    detect_language,
)
from app.schemas.canvas import QACanvasDocument
from app.schemas.intent import (
    CanvasSection,
    ClarificationQuestion,
    ClarificationResult,
    QuestionValidation,
)
from app.services.completion import CompletionPort, classify_with

logger = logging.getLogger(__name__)

MAX_QUESTIONS = 4
MAX_SECTIONS_ASKED = 2
MIN_QUESTION_LENGTH = 10
PRIORITY_RANK = {"high": 0, "medium": 1, "low": 2}
CATEGORY_RANK = {"specification": 0, "dependency": 1, "scope": 2, "priority": 3, "format": 4}
COMPLAINT_MARKERS = ("mal", "wrong", "incorrecto", "incorrect")


class GeneratedQuestion(BaseModel):
    question: str
    category: Literal["specification", "scope", "priority", "format", "dependency"]
    target_section: CanvasSection
    examples: List[str] = Field(default_factory=list)
    priority: Literal["high", "medium", "low"] = "medium"


class ClarificationGeneration(BaseModel):
    """Structured output requested from the model for clarification questions."""
    questions: List[GeneratedQuestion] = Field(..., description="At most 4 specific, actionable questions")
    context: str = Field("", description="Why clarification is needed")
    suggested_actions: List[str] = Field(default_factory=list)
    estimated_clarification_time: int = Field(2, ge=0, description="Minutes")


def prioritize_questions(questions: List[ClarificationQuestion]) -> List[ClarificationQuestion]:
    return sorted(
        questions,
        key=lambda q: (PRIORITY_RANK.get(q.priority, 3), CATEGORY_RANK.get(q.category, 5)),
    )


class ClarificationGenerator:
    """Builds targeted follow-up questions for vague change requests."""

    def __init__(self, completion: Optional[CompletionPort] = None):
        self.completion = completion

    async def generate_clarification_questions(
        self,
        message: str,
        target_sections: List[CanvasSection],
        current_document: Optional[QACanvasDocument] = None,
    ) -> ClarificationResult:
        document = current_document or QACanvasDocument()
        try:
            ai = await classify_with(
                self.completion,
                self._build_prompt(message, target_sections, document),
                ClarificationGeneration,
                system=(
                    "You are a QA requirements analyst. Ask specific, actionable clarification questions "
                    "about a vague request to change a QA canvas. Use the canvas content, at most 4 questions, "
                    "in the user's language."
                ),
            )
            questions = [ClarificationQuestion(**q.model_dump()) for q in ai.questions if q.question.strip()]
            if not questions:
                raise ValueError("model returned no questions")
        except Exception as e:
            logger.info(f"Clarification generation falling back to templates: {e}")
            return self.generate_template_questions(message, target_sections, document)

        questions = prioritize_questions(questions)[:MAX_QUESTIONS]
        return ClarificationResult(
            questions=questions,
            context=ai.context,
            suggested_actions=ai.suggested_actions[:MAX_QUESTIONS],
            estimated_clarification_time=ai.estimated_clarification_time,
        )

    def _build_prompt(self, message: str, target_sections: List[CanvasSection], document: QACanvasDocument) -> str:
        populated = [s.value for s in CanvasSection if s != CanvasSection.METADATA and document.has_section_content(s.value)]
        return "\n".join([
            f"User message: {message}",
            f"Target sections: {', '.join(s.value for s in target_sections) or 'not specific'}",
            f"Sections with content: {', '.join(populated) or 'none'}",
            f"Acceptance criteria: {len(document.acceptance_criteria)}, test cases: {len(document.test_cases)}",
        ])

    def generate_template_questions(
        self,
        message: str,
        target_sections: List[CanvasSection],
        document: QACanvasDocument,
    ) -> ClarificationResult:
        language = detect_language(message)
        lowered = (message or "").lower()
        if any(marker in lowered for marker in COMPLAINT_MARKERS):
            kind = "vague_complaint"
        elif len(target_sections) > 1:
            kind = "scope_clarification"
        else:
            kind = "missing_context"

        questions: List[ClarificationQuestion] = []
        for section in target_sections[:MAX_SECTIONS_ASKED]:
            question = self._section_question(CanvasSection(section), kind, document, language)
            if question is not None:
                questions.append(question)

        if not questions:
            scope = SCOPE_QUESTION[language]
            questions.append(ClarificationQuestion(
                question=scope["question"],
                category="scope",
                target_section=CanvasSection.ACCEPTANCE_CRITERIA,
                examples=list(scope["examples"]),
                priority="high",
            ))

        if len(target_sections) > 1 or (
            CanvasSection.ACCEPTANCE_CRITERIA in target_sections and document.test_cases
        ):
            dep = DEPENDENCY_QUESTION[language]
            questions.append(ClarificationQuestion(
                question=dep["question"],
                category="dependency",
                target_section=CanvasSection.TEST_CASES,
                examples=list(dep["examples"]),
                priority="medium",
            ))

        questions = prioritize_questions(questions)[:MAX_QUESTIONS]
        return ClarificationResult(
            questions=questions,
            context=self._context_text(message, target_sections, kind, language),
            suggested_actions=self._suggested_actions(target_sections, document, language),
            estimated_clarification_time=min(5, len(questions) * 2),
        )

    def _section_question(
        self,
        section: CanvasSection,
        kind: str,
        document: QACanvasDocument,
        language: str,
    ) -> Optional[ClarificationQuestion]:
        templates = SECTION_QUESTION_TEMPLATES[language].get(section)
        if not templates:
            return None
        template = templates.get("vague") if kind == "vague_complaint" else None
        template = template or templates["default"]
        count = len(document.acceptance_criteria) if section == CanvasSection.ACCEPTANCE_CRITERIA else len(document.test_cases)
        return ClarificationQuestion(
            question=template["question"].format(count=count),
            category="specification",
            target_section=section,
            examples=list(template["examples"]),
            priority=template["priority"],
        )

    def _context_text(self, message: str, target_sections: List[CanvasSection], kind: str, language: str) -> str:
        texts = CLARIFICATION_CONTEXT[language]
        context = f"{texts['prefix']} \"{message}\" {texts[kind]}"
        if target_sections:
            names = [SECTION_DISPLAY_NAMES[language][CanvasSection(s)] for s in target_sections]
            context += f" {texts['sections']}: {', '.join(names)}."
        return context

    def _suggested_actions(
        self,
        target_sections: List[CanvasSection],
        document: QACanvasDocument,
        language: str,
    ) -> List[str]:
        es = language == "es"
        actions: List[str] = []
        if CanvasSection.ACCEPTANCE_CRITERIA in target_sections:
            actions.append("Revisar cada criterio de aceptación individualmente" if es else "Review each acceptance criterion individually")
            if document.test_cases:
                actions.append(
                    "Considerar el impacto en los casos de prueba existentes" if es
                    else "Consider the impact on the existing test cases"
                )
        if CanvasSection.TEST_CASES in target_sections:
            actions.append("Especificar qué casos de prueba necesitan cambios" if es else "Specify which test cases need changes")
            actions.append(
                "Indicar si prefieres un formato específico (Gherkin, pasos, tabla)" if es
                else "Say whether you prefer a specific format (Gherkin, steps, table)"
            )
        if CanvasSection.TICKET_SUMMARY in target_sections:
            actions.append(
                "Identificar qué información falta o es incorrecta en el resumen" if es
                else "Identify what is missing or wrong in the summary"
            )
        actions.append("Proporcionar ejemplos de lo que esperas ver" if es else "Give examples of what you expect to see")
        actions.append("Indicar la prioridad de cada cambio" if es else "Indicate the priority of each change")
        return actions[:MAX_QUESTIONS]

    @staticmethod
    def validate_questions(questions: List[ClarificationQuestion]) -> QuestionValidation:
        issues: List[str] = []
        suggestions: List[str] = []
        if len(questions) > 5:
            issues.append(f"Too many questions ({len(questions)}); users may feel overwhelmed")
            suggestions.append("Limit clarification to at most 4 questions")
        vague = [q for q in questions if len(q.question.strip()) < MIN_QUESTION_LENGTH]
        if vague:
            issues.append(f"{len(vague)} question(s) are too short to be specific")
            suggestions.append("Make each question reference concrete canvas content")
        if not questions:
            issues.append("No clarification questions were generated")
            suggestions.append("Ask at least one question about the scope of the change")
        return QuestionValidation(is_valid=not issues, issues=issues, suggestions=suggestions)
