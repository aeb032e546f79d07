"""
Cross-section dependency analysis and structural validation of the QA canvas.

Static rules always run; the model only refines or extends them. Validation scores
blend the static score with the model's score when the latter is available.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field

from app.agent.lexicon import SECTION_DEPENDENCIES
from app.schemas.canvas import QACanvasDocument
from app.schemas.intent import (
    CanvasSection,
    ChangeNotification,
    Conflict,
    DependencyAnalysisResult,
    ResolutionAction,
    ResolutionSuggestion,
    SectionDependency,
    ValidationResult,
)
from app.services.completion import CompletionPort, classify_with

logger = logging.getLogger(__name__)

HIGH_COMPLEXITY_ITEMS = 15
TEST_TO_CRITERIA_MAX_RATIO = 5
TEST_TO_CRITERIA_MIN_RATIO = 0.5
MAX_CONFIGURATION_WARNINGS = 3
SEVERITY_PENALTIES = {"critical": 30, "major": 20, "minor": 10}
RISK_ORDER = {"low": 0, "medium": 1, "high": 2}
SEVERITY_ORDER = {"minor": 0, "major": 1, "critical": 2}
PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}

Relationship = Literal["derives_from", "validates", "implements", "references"]
Strength = Literal["strong", "medium", "weak"]
Risk = Literal["low", "medium", "high"]


class DependencyEdge(BaseModel):
    from_section: CanvasSection
    to: CanvasSection
    relationship: Relationship
    strength: Strength
    description: str = ""


class DependencyRefinement(BaseModel):
    """Structured output requested from the model when refining dependencies."""
    affected_sections: List[CanvasSection] = Field(default_factory=list)
    dependencies: List[DependencyEdge] = Field(default_factory=list)
    cascade_required: bool = False
    impact_assessment: str = ""
    conflict_risk: Risk = "medium"


class DetectedConflict(BaseModel):
    type: Literal["missing_dependency", "orphaned_content", "inconsistent_content", "version_mismatch"]
    severity: Literal["minor", "major", "critical"]
    affected_sections: List[CanvasSection] = Field(default_factory=list)
    description: str
    current_state: str = ""
    expected_state: str = ""
    suggested_resolution: str = ""
    auto_resolvable: bool = False


class ConflictDetection(BaseModel):
    """Structured output requested from the model for semantic conflict checks."""
    conflicts: List[DetectedConflict] = Field(default_factory=list)
    validation_score: int = Field(..., ge=0, le=100)
    warnings: List[str] = Field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _max_risk(a: str, b: str) -> str:
    return a if RISK_ORDER.get(a, 0) >= RISK_ORDER.get(b, 0) else b


class DependencyAnalyzer:
    def __init__(self, completion: Optional[CompletionPort] = None):
        self.completion = completion

    # ------------------------------------------------------------------
    # Dependency analysis
    # ------------------------------------------------------------------

    def analyze_static(
        self,
        target_sections: List[CanvasSection],
        document: QACanvasDocument,
    ) -> DependencyAnalysisResult:
        affected: List[CanvasSection] = list(dict.fromkeys(target_sections))
        dependencies: List[SectionDependency] = []
        cascade = False
        for section in affected[:]:
            for dep in SECTION_DEPENDENCIES.get(section, []):
                dependencies.append(dep)
                if dep.to not in affected:
                    affected.append(dep.to)
                if dep.strength == "strong":
                    cascade = True
        risk = self.assess_conflict_risk(target_sections, document)
        return DependencyAnalysisResult(
            affected_sections=affected,
            dependencies=dependencies,
            cascade_required=cascade,
            impact_assessment=self.generate_impact_assessment(affected, dependencies, cascade),
            conflict_risk=self._escalate(risk, document, dependencies, cascade),
        )

    async def analyze_dependencies(
        self,
        target_sections: List[CanvasSection],
        document: QACanvasDocument,
        proposed_change: str = "",
    ) -> DependencyAnalysisResult:
        static = self.analyze_static(target_sections, document)
        result = static
        if self.completion is not None:
            try:
                ai = await classify_with(
                    self.completion,
                    self._build_prompt(target_sections, document, proposed_change, static),
                    DependencyRefinement,
                    system=(
                        "You analyze how a change to one section of a QA canvas affects the others. "
                        "Test cases derive from acceptance criteria; the ticket summary drives both."
                    ),
                )
                result = self._combine(target_sections, document, static, ai)
            except Exception as e:
                logger.warning(f"AI dependency analysis failed, using static analysis: {e}")

        validation = await self.validate_dependencies(document, proposed_change, target_sections)
        return result.model_copy(update={"validation_result": validation})

    def _combine(
        self,
        target_sections: List[CanvasSection],
        document: QACanvasDocument,
        static: DependencyAnalysisResult,
        ai: DependencyRefinement,
    ) -> DependencyAnalysisResult:
        keyed: Dict[Tuple[str, str, str], SectionDependency] = {}
        for dep in static.dependencies:
            keyed[(dep.from_section.value, dep.to.value, dep.relationship)] = dep
        for edge in ai.dependencies:
            dep = SectionDependency(
                from_section=edge.from_section,
                to=edge.to,
                relationship=edge.relationship,
                strength=edge.strength,
                description=edge.description,
            )
            keyed[(dep.from_section.value, dep.to.value, dep.relationship)] = dep
        dependencies = list(keyed.values())

        affected = list(dict.fromkeys(list(static.affected_sections) + list(ai.affected_sections)))
        for dep in dependencies:
            if dep.to not in affected:
                affected.append(dep.to)

        cascade = static.cascade_required or ai.cascade_required
        risk = _max_risk(ai.conflict_risk, self.assess_conflict_risk(target_sections, document))
        return DependencyAnalysisResult(
            affected_sections=affected,
            dependencies=dependencies,
            cascade_required=cascade,
            impact_assessment=ai.impact_assessment.strip()
            or self.generate_impact_assessment(affected, dependencies, cascade),
            conflict_risk=self._escalate(risk, document, dependencies, cascade),
        )

    def _escalate(
        self,
        risk: str,
        document: QACanvasDocument,
        dependencies: List[SectionDependency],
        cascade: bool,
    ) -> str:
        if document.item_count >= HIGH_COMPLEXITY_ITEMS:
            return "high"
        if cascade and any(d.strength == "strong" for d in dependencies):
            return "high"
        return risk

    def assess_conflict_risk(self, target_sections: List[CanvasSection], document: QACanvasDocument) -> str:
        score = 0
        if len(target_sections) > 2:
            score += 2
        elif len(target_sections) > 1:
            score += 1

        items = document.item_count
        if items > 15:
            score += 2
        elif items > 5:
            score += 1

        if CanvasSection.ACCEPTANCE_CRITERIA in target_sections and document.test_cases:
            score += 2
        if CanvasSection.TICKET_SUMMARY in target_sections and items > 0:
            score += 1

        if score >= 4:
            return "high"
        if score >= 2:
            return "medium"
        return "low"

    @staticmethod
    def generate_impact_assessment(
        affected: List[CanvasSection],
        dependencies: List[SectionDependency],
        cascade: bool,
    ) -> str:
        count = len(affected)
        strong = sum(1 for d in dependencies if d.strength == "strong")
        text = f"The change affects {count} section{'s' if count != 1 else ''}."
        if strong:
            text += f" {strong} strong dependenc{'ies' if strong > 1 else 'y'} detected."
        if cascade:
            text += " Cascade updates are required to keep the canvas consistent."
        if CanvasSection.TEST_CASES in affected and CanvasSection.ACCEPTANCE_CRITERIA in affected:
            text += " Test cases must be reviewed so they keep validating the updated criteria."
        return text

    def _build_prompt(
        self,
        target_sections: List[CanvasSection],
        document: QACanvasDocument,
        proposed_change: str,
        static: DependencyAnalysisResult,
    ) -> str:
        return "\n".join([
            f"Target sections: {', '.join(s.value for s in target_sections) or 'none'}",
            f"Proposed change: {proposed_change or 'not specified'}",
            f"Acceptance criteria: {len(document.acceptance_criteria)}",
            f"Test cases: {len(document.test_cases)}",
            f"Configuration warnings: {len(document.configuration_warnings)}",
            f"Ticket problem: {document.ticket_summary.problem or '(empty)'}",
            f"Static affected sections: {', '.join(s.value for s in static.affected_sections)}",
            f"Static cascade required: {static.cascade_required}",
        ])

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def static_validation(self, document: QACanvasDocument) -> Tuple[List[Conflict], List[str]]:
        conflicts: List[Conflict] = []
        warnings: List[str] = []
        ac = len(document.acceptance_criteria)
        tc = len(document.test_cases)

        if ac > 0 and tc == 0:
            conflicts.append(Conflict(
                type="missing_dependency",
                severity="major",
                affected_sections=[CanvasSection.ACCEPTANCE_CRITERIA, CanvasSection.TEST_CASES],
                description="Acceptance criteria exist but there are no test cases validating them",
                current_state=f"{ac} acceptance criteria, 0 test cases",
                expected_state="At least one test case per acceptance criterion",
                suggested_resolution="Generate test cases from the existing acceptance criteria",
                auto_resolvable=True,
            ))
        if tc > 0 and ac == 0:
            conflicts.append(Conflict(
                type="orphaned_content",
                severity="minor",
                affected_sections=[CanvasSection.TEST_CASES, CanvasSection.ACCEPTANCE_CRITERIA],
                description="Test cases exist without acceptance criteria to derive from",
                current_state=f"0 acceptance criteria, {tc} test cases",
                expected_state="Test cases traceable to acceptance criteria",
                suggested_resolution="Define acceptance criteria or link the test cases to requirements",
                auto_resolvable=False,
            ))
        if not document.ticket_summary.problem.strip() and (ac or tc or document.configuration_warnings):
            conflicts.append(Conflict(
                type="missing_dependency",
                severity="minor",
                affected_sections=[CanvasSection.TICKET_SUMMARY],
                description="The ticket summary has no problem statement while other sections have content",
                current_state="Empty problem statement",
                expected_state="A problem statement the criteria and tests refer to",
                suggested_resolution="Describe the problem the ticket solves",
                auto_resolvable=False,
            ))

        if ac > 0 and tc > 0:
            ratio = tc / ac
            if ratio > TEST_TO_CRITERIA_MAX_RATIO:
                warnings.append(f"High test case to criteria ratio ({ratio:.1f}:1); some test cases may be redundant")
            elif ratio < TEST_TO_CRITERIA_MIN_RATIO:
                warnings.append(f"Low test case to criteria ratio ({ratio:.1f}:1); some criteria may be untested")
        if len(document.configuration_warnings) > MAX_CONFIGURATION_WARNINGS:
            warnings.append(
                f"{len(document.configuration_warnings)} configuration warnings; review the QA profile settings"
            )
        return conflicts, warnings

    @staticmethod
    def static_score(conflicts: List[Conflict]) -> int:
        penalty = sum(SEVERITY_PENALTIES.get(c.severity, 0) for c in conflicts)
        return max(0, 100 - penalty)

    async def validate_dependencies(
        self,
        document: QACanvasDocument,
        proposed_change: Optional[str] = None,
        target_sections: Optional[List[CanvasSection]] = None,
    ) -> ValidationResult:
        conflicts, warnings = self.static_validation(document)
        score = self.static_score(conflicts)

        if proposed_change and target_sections and self.completion is not None:
            try:
                ai = await classify_with(
                    self.completion,
                    self._build_conflict_prompt(document, proposed_change, target_sections),
                    ConflictDetection,
                    system=(
                        "You detect semantic conflicts between QA canvas sections: mismatched content, "
                        "inconsistent terminology, test cases that no longer validate the criteria."
                    ),
                )
                conflicts = self.merge_conflicts(conflicts, [Conflict(**c.model_dump()) for c in ai.conflicts])
                warnings = warnings + [w for w in ai.warnings if w and w not in warnings]
                score = int((score + ai.validation_score) / 2 + 0.5)
            except Exception as e:
                logger.warning(f"AI conflict detection failed, using static validation: {e}")

        return ValidationResult(
            is_valid=not any(c.severity in ("major", "critical") for c in conflicts),
            conflicts=conflicts,
            warnings=warnings,
            suggestions=self.generate_resolution_suggestions(conflicts),
            validation_score=max(0, min(100, score)),
        )

    @staticmethod
    def merge_conflicts(existing: List[Conflict], incoming: List[Conflict]) -> List[Conflict]:
        """De-duplicate on type and affected sections; a critical duplicate wins."""
        merged: Dict[Tuple[str, Tuple[str, ...]], Conflict] = {}
        for conflict in existing + incoming:
            key = (conflict.type, tuple(sorted(s.value for s in conflict.affected_sections)))
            current = merged.get(key)
            if current is None or (conflict.severity == "critical" and current.severity != "critical"):
                merged[key] = conflict
        return list(merged.values())

    def _build_conflict_prompt(
        self,
        document: QACanvasDocument,
        proposed_change: str,
        target_sections: List[CanvasSection],
    ) -> str:
        criteria = "\n".join(f"- {a.id}: {a.title}" for a in document.acceptance_criteria[:10]) or "(none)"
        tests = "\n".join(f"- {t.id}: {t.label}" for t in document.test_cases[:10]) or "(none)"
        return (
            f"Proposed change: {proposed_change}\n"
            f"Target sections: {', '.join(s.value for s in target_sections)}\n"
            f"Problem: {document.ticket_summary.problem or '(empty)'}\n"
            f"Acceptance criteria:\n{criteria}\n"
            f"Test cases:\n{tests}"
        )

    async def would_create_conflicts(
        self,
        document: QACanvasDocument,
        proposed_change: str,
        target_sections: List[CanvasSection],
    ) -> bool:
        validation = await self.validate_dependencies(document, proposed_change, target_sections)
        return len(validation.conflicts) > 0

    # ------------------------------------------------------------------
    # Graph helpers
    # ------------------------------------------------------------------

    @staticmethod
    def has_circular_dependencies(dependencies: Optional[List[SectionDependency]] = None) -> bool:
        if dependencies is None:
            dependencies = [d for deps in SECTION_DEPENDENCIES.values() for d in deps]
        graph: Dict[CanvasSection, List[CanvasSection]] = {}
        for dep in dependencies:
            graph.setdefault(dep.from_section, []).append(dep.to)

        visiting, done = set(), set()

        def visit(node: CanvasSection) -> bool:
            if node in visiting:
                return True
            if node in done:
                return False
            visiting.add(node)
            if any(visit(n) for n in graph.get(node, [])):
                return True
            visiting.discard(node)
            done.add(node)
            return False

        return any(visit(n) for n in list(graph))

    @staticmethod
    def get_dependent_sections(section: CanvasSection) -> List[CanvasSection]:
        return [d.to for d in SECTION_DEPENDENCIES.get(CanvasSection(section), [])]

    @staticmethod
    def get_dependency_sources(section: CanvasSection) -> List[CanvasSection]:
        section = CanvasSection(section)
        return [
            d.from_section
            for deps in SECTION_DEPENDENCIES.values()
            for d in deps
            if d.to == section
        ]

    @staticmethod
    def get_auto_resolvable_conflicts(validation: ValidationResult) -> List[Conflict]:
        return [c for c in validation.conflicts if c.auto_resolvable]

    @staticmethod
    def get_manual_resolution_conflicts(validation: ValidationResult) -> List[Conflict]:
        return [c for c in validation.conflicts if not c.auto_resolvable]

    # ------------------------------------------------------------------
    # User-facing output
    # ------------------------------------------------------------------

    def generate_resolution_suggestions(self, conflicts: List[Conflict]) -> List[ResolutionSuggestion]:
        titles = {
            "missing_dependency": "Add missing content",
            "orphaned_content": "Link orphaned content",
            "inconsistent_content": "Align inconsistent content",
            "version_mismatch": "Synchronize section versions",
        }
        suggestions = []
        for index, conflict in enumerate(conflicts):
            if conflict.auto_resolvable:
                effort = "low"
            else:
                effort = {"critical": "high", "major": "medium"}.get(conflict.severity, "low")
            suggestions.append(ResolutionSuggestion(
                conflict_id=f"conflict_{index}",
                title=titles.get(conflict.type, "Resolve conflict"),
                description=conflict.suggested_resolution or conflict.description,
                actions=self._resolution_actions(conflict),
                estimated_effort=effort,
                priority="high" if conflict.severity in ("critical", "major") else "medium",
                affected_sections=conflict.affected_sections,
            ))
        suggestions.sort(key=lambda s: PRIORITY_ORDER.get(s.priority, 2))
        return suggestions

    @staticmethod
    def _resolution_actions(conflict: Conflict) -> List[ResolutionAction]:
        sections = conflict.affected_sections or [CanvasSection.ACCEPTANCE_CRITERIA]
        if conflict.type == "missing_dependency":
            target = sections[-1]
            return [ResolutionAction(type="add_content", section=target, description=f"Add content to {target.value}")]
        if conflict.type == "orphaned_content":
            return [
                ResolutionAction(type="add_content", section=s, description=f"Add the missing {s.value}")
                for s in sections[1:]
            ] or [ResolutionAction(type="remove_content", section=sections[0], description="Remove orphaned items")]
        if conflict.type == "inconsistent_content":
            return [
                ResolutionAction(type="modify_section", section=s, description=f"Align {s.value} with related sections")
                for s in sections
            ]
        return [
            ResolutionAction(type="merge_sections", section=sections[0], description="Synchronize the section versions"),
        ]

    def generate_change_notifications(
        self,
        validation: ValidationResult,
        now: Optional[datetime] = None,
    ) -> List[ChangeNotification]:
        now = now or _utcnow()
        notifications: List[ChangeNotification] = []
        critical = [c for c in validation.conflicts if c.severity == "critical"]
        major = [c for c in validation.conflicts if c.severity == "major"]

        def sections_of(conflicts: List[Conflict]) -> List[CanvasSection]:
            return list(dict.fromkeys(s for c in conflicts for s in c.affected_sections))

        if critical:
            notifications.append(ChangeNotification(
                type="error",
                title="Critical conflicts detected",
                message=f"{len(critical)} critical conflict(s) must be resolved before applying changes",
                affected_sections=sections_of(critical),
                actions=["Review conflicts", "Resolve manually"],
                dismissible=False,
                timestamp=now,
            ))
        if major:
            notifications.append(ChangeNotification(
                type="warning",
                title="Important conflicts detected",
                message=f"{len(major)} major conflict(s) found between canvas sections",
                affected_sections=sections_of(major),
                actions=["Review conflicts", "Apply suggested resolution"],
                timestamp=now,
            ))
        if validation.warnings:
            notifications.append(ChangeNotification(
                type="info",
                title="Canvas recommendations",
                message="; ".join(validation.warnings),
                timestamp=now,
            ))
        if validation.is_valid and not validation.conflicts:
            notifications.append(ChangeNotification(
                type="success",
                title="Canvas is consistent",
                message=f"No conflicts found (score {validation.validation_score}/100)",
                timestamp=now,
            ))
        return notifications
