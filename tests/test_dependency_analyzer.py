from datetime import datetime, timezone

import pytest

from app.agent.dependency_analyzer import DependencyAnalyzer
from app.schemas.intent import CanvasSection, Conflict, ResolutionSuggestion, SectionDependency, ValidationResult


AC = CanvasSection.ACCEPTANCE_CRITERIA
TC = CanvasSection.TEST_CASES
TS = CanvasSection.TICKET_SUMMARY


@pytest.mark.asyncio
async def test_criteria_change_cascades_to_test_cases(make_canvas):
    result = await DependencyAnalyzer().analyze_dependencies([AC], make_canvas(ac=1, tc=1))

    assert result.affected_sections == [AC, TC]
    assert len(result.dependencies) == 1
    dep = result.dependencies[0]
    assert (dep.from_section, dep.to, dep.relationship, dep.strength) == (AC, TC, "derives_from", "strong")
    assert result.cascade_required is True
    assert result.conflict_risk == "high"
    assert result.validation_result is not None
    assert result.validation_result.is_valid is True
    assert result.validation_result.validation_score == 100


def test_summary_change_on_small_canvas_is_low_risk(make_canvas):
    result = DependencyAnalyzer().analyze_static([TS], make_canvas(ac=1, tc=1))
    assert result.cascade_required is False
    assert result.conflict_risk == "low"
    assert set(result.affected_sections) == {TS, AC, TC}


def test_large_canvas_is_high_risk(make_canvas):
    result = DependencyAnalyzer().analyze_static([TC], make_canvas(ac=8, tc=12))
    assert result.conflict_risk == "high"


@pytest.mark.asyncio
async def test_model_refinement_is_merged(fake_completion, make_canvas):
    fake = fake_completion(responses={
        "DependencyRefinement": {
            "affected_sections": ["ticketSummary"],
            "dependencies": [{
                "from_section": "ticketSummary",
                "to": "acceptanceCriteria",
                "relationship": "references",
                "strength": "weak",
            }],
            "cascade_required": False,
            "impact_assessment": "Only wording changes",
            "conflict_risk": "low",
        }
    })
    result = await DependencyAnalyzer(fake).analyze_dependencies([TS], make_canvas(), "Reword the problem")

    assert len(result.dependencies) == 3
    assert result.impact_assessment == "Only wording changes"
    assert result.conflict_risk == "low"
    # ConflictDetection has no canned answer, so validation stays static
    assert result.validation_result.validation_score == 100


@pytest.mark.asyncio
async def test_criteria_without_tests_is_invalid(make_canvas):
    validation = await DependencyAnalyzer().validate_dependencies(make_canvas(ac=2, tc=0))
    assert validation.is_valid is False
    assert validation.validation_score == 80
    conflict = validation.conflicts[0]
    assert conflict.type == "missing_dependency"
    assert conflict.severity == "major"
    assert conflict.auto_resolvable is True

    [suggestion] = validation.suggestions
    assert isinstance(suggestion, ResolutionSuggestion)
    assert suggestion.title == "Add missing content"
    assert suggestion.description == "Generate test cases from the existing acceptance criteria"
    assert suggestion.priority == "high"
    assert suggestion.estimated_effort == "low"
    assert [(a.type, a.section) for a in suggestion.actions] == [("add_content", TC)]
    assert validation.to_wire()["suggestions"][0]["conflictId"] == "conflict_0"


@pytest.mark.asyncio
async def test_tests_without_criteria_is_minor(make_canvas):
    validation = await DependencyAnalyzer().validate_dependencies(make_canvas(ac=0, tc=3))
    assert validation.is_valid is True
    assert validation.validation_score == 90
    assert validation.conflicts[0].type == "orphaned_content"


@pytest.mark.asyncio
async def test_empty_problem_statement_is_flagged(make_canvas):
    validation = await DependencyAnalyzer().validate_dependencies(make_canvas(problem=""))
    assert validation.is_valid is True
    assert [c.affected_sections for c in validation.conflicts] == [[TS]]


def test_ratio_and_configuration_warnings(make_canvas):
    _, warnings = DependencyAnalyzer().static_validation(make_canvas(ac=1, tc=6, warnings=4))
    assert any("High test case to criteria ratio" in w for w in warnings)
    assert any("configuration warnings" in w for w in warnings)


@pytest.mark.asyncio
async def test_model_conflicts_are_merged_and_scores_averaged(fake_completion, make_canvas):
    fake = fake_completion(responses={
        "ConflictDetection": {
            "conflicts": [
                {
                    "type": "missing_dependency",
                    "severity": "critical",
                    "affected_sections": ["testCases", "acceptanceCriteria"],
                    "description": "No test validates the lockout rule",
                },
                {
                    "type": "inconsistent_content",
                    "severity": "minor",
                    "affected_sections": ["testCases"],
                    "description": "Mixed terminology",
                },
            ],
            "validation_score": 61,
            "warnings": ["Terminology differs between sections"],
        }
    })
    validation = await DependencyAnalyzer(fake).validate_dependencies(
        make_canvas(ac=2, tc=0), "Add a lockout rule", [AC]
    )

    assert validation.validation_score == 71
    assert len(validation.conflicts) == 2
    assert validation.conflicts[0].severity == "critical"
    assert validation.is_valid is False
    assert "Terminology differs between sections" in validation.warnings


@pytest.mark.asyncio
async def test_model_is_not_consulted_without_a_change(fake_completion, make_canvas):
    fake = fake_completion()
    await DependencyAnalyzer(fake).validate_dependencies(make_canvas(), None, [AC])
    assert fake.calls == []


@pytest.mark.asyncio
async def test_model_failure_keeps_static_validation(failing_completion, make_canvas):
    validation = await DependencyAnalyzer(failing_completion).validate_dependencies(
        make_canvas(ac=0, tc=2), "Add more tests", [TC]
    )
    assert validation.validation_score == 90


@pytest.mark.asyncio
async def test_would_create_conflicts(make_canvas):
    analyzer = DependencyAnalyzer()
    assert await analyzer.would_create_conflicts(make_canvas(ac=1, tc=1), "change", [AC]) is False
    assert await analyzer.would_create_conflicts(make_canvas(ac=1, tc=0), "change", [AC]) is True


def test_circular_dependency_detection():
    assert DependencyAnalyzer.has_circular_dependencies() is False
    loop = [
        SectionDependency(from_section=AC, to=TC, relationship="derives_from", strength="strong"),
        SectionDependency(from_section=TC, to=AC, relationship="references", strength="weak"),
    ]
    assert DependencyAnalyzer.has_circular_dependencies(loop) is True


def test_graph_lookups():
    assert DependencyAnalyzer.get_dependent_sections(AC) == [TC]
    assert DependencyAnalyzer.get_dependent_sections(TC) == []
    assert DependencyAnalyzer.get_dependency_sources(TC) == [AC, TS]


def _validation(*conflicts, warnings=()):
    return ValidationResult(
        is_valid=not any(c.severity in ("major", "critical") for c in conflicts),
        conflicts=list(conflicts),
        warnings=list(warnings),
        validation_score=DependencyAnalyzer.static_score(list(conflicts)),
    )


def test_resolution_suggestions_sorted_by_priority():
    validation = _validation(
        Conflict(type="orphaned_content", severity="minor", affected_sections=[TC, AC], description="orphans"),
        Conflict(type="inconsistent_content", severity="critical", affected_sections=[AC, TC], description="mismatch"),
    )
    suggestions = DependencyAnalyzer().generate_resolution_suggestions(validation.conflicts)

    assert [s.priority for s in suggestions] == ["high", "medium"]
    assert suggestions[0].estimated_effort == "high"
    assert [a.type for a in suggestions[0].actions] == ["modify_section", "modify_section"]
    assert suggestions[1].actions[0].section == AC


def test_auto_and_manual_conflict_split():
    auto = Conflict(type="missing_dependency", severity="major", description="a", auto_resolvable=True)
    manual = Conflict(type="orphaned_content", severity="minor", description="b")
    validation = _validation(auto, manual)
    assert DependencyAnalyzer.get_auto_resolvable_conflicts(validation) == [auto]
    assert DependencyAnalyzer.get_manual_resolution_conflicts(validation) == [manual]


def test_critical_notification_is_not_dismissible():
    now = datetime(2024, 5, 1, tzinfo=timezone.utc)
    validation = _validation(
        Conflict(type="inconsistent_content", severity="critical", affected_sections=[AC], description="x"),
        warnings=["Low coverage"],
    )
    notifications = DependencyAnalyzer().generate_change_notifications(validation, now=now)

    assert [n.type for n in notifications] == ["error", "info"]
    assert notifications[0].dismissible is False
    assert notifications[0].affected_sections == [AC]
    assert all(n.timestamp == now for n in notifications)


def test_clean_canvas_gets_success_notification():
    notifications = DependencyAnalyzer().generate_change_notifications(_validation())
    assert [n.type for n in notifications] == ["success"]
