"""
QA canvas document and Jira ticket schemas.

The canvas is produced and validated elsewhere; these models only describe
the shape the intent pipeline reads.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import Field

from .base import CamelModel


class TicketSummary(CamelModel):
    problem: str = ""
    solution: str = ""
    context: str = ""


class ConfigurationWarning(CamelModel):
    type: str = "recommendation"
    title: str = ""
    message: str = ""
    recommendation: str = ""
    severity: str = "medium"


class AcceptanceCriterion(CamelModel):
    id: str
    title: str = ""
    description: str = ""
    priority: str = "should"
    category: str = "functional"
    testable: bool = True


class TestCase(CamelModel):
    """A generated test case in gherkin, steps or table format."""

    __test__ = False

    format: str = "gherkin"
    id: str
    category: str = "functional"
    priority: str = "medium"
    estimated_time: Optional[str] = None
    test_case: Dict[str, Any] = Field(default_factory=dict)

    @property
    def label(self) -> str:
        body = self.test_case or {}
        return str(body.get("scenario") or body.get("title") or f"Test case {self.id}")

    def texts(self) -> List[str]:
        """Flatten the format-specific body into plain strings."""
        out: List[str] = []

        def walk(value: Any) -> None:
            if isinstance(value, str):
                if value.strip():
                    out.append(value)
            elif isinstance(value, dict):
                for v in value.values():
                    walk(v)
            elif isinstance(value, list):
                for v in value:
                    walk(v)

        walk(self.test_case)
        return out


class DocumentMetadata(CamelModel):
    generated_at: Optional[str] = None
    qa_profile: Dict[str, Any] = Field(default_factory=dict)
    ticket_id: str = ""
    document_version: str = "1.0"
    ai_model: Optional[str] = None
    generation_time: Optional[float] = None
    word_count: Optional[int] = None


class QACanvasDocument(CamelModel):
    ticket_summary: TicketSummary = Field(default_factory=TicketSummary)
    configuration_warnings: List[ConfigurationWarning] = Field(default_factory=list)
    acceptance_criteria: List[AcceptanceCriterion] = Field(default_factory=list)
    test_cases: List[TestCase] = Field(default_factory=list)
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)

    @property
    def item_count(self) -> int:
        """Acceptance criteria plus test cases."""
        return len(self.acceptance_criteria) + len(self.test_cases)

    def section_texts(self, section: str) -> List[str]:
        """Literal text content of a section, used for citation checks."""
        if section == "ticketSummary":
            s = self.ticket_summary
            return [t for t in (s.problem, s.solution, s.context) if t]
        if section == "acceptanceCriteria":
            out: List[str] = []
            for ac in self.acceptance_criteria:
                out.extend(t for t in (ac.title, ac.description) if t)
            return out
        if section == "testCases":
            out = []
            for tc in self.test_cases:
                out.extend(tc.texts())
            return out
        if section == "configurationWarnings":
            out = []
            for w in self.configuration_warnings:
                out.extend(t for t in (w.title, w.message, w.recommendation) if t)
            return out
        if section == "metadata":
            m = self.metadata
            return [t for t in (m.ticket_id, m.document_version, m.ai_model or "") if t]
        return []

    def has_section_content(self, section: str) -> bool:
        if section == "acceptanceCriteria":
            return bool(self.acceptance_criteria)
        if section == "testCases":
            return bool(self.test_cases)
        if section == "configurationWarnings":
            return bool(self.configuration_warnings)
        if section == "ticketSummary":
            return bool(self.ticket_summary.problem or self.ticket_summary.solution or self.ticket_summary.context)
        if section == "metadata":
            return True
        return False


class JiraTicket(CamelModel):
    issue_key: str
    summary: str = ""
    description: str = ""
    status: str = ""
    issue_type: str = ""
    priority: Optional[str] = None
    components: List[str] = Field(default_factory=list)
    acceptance_criteria: Optional[str] = None
