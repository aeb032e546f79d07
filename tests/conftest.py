import asyncio

import pytest

from app.schemas.canvas import (
    AcceptanceCriterion,
    ConfigurationWarning,
    QACanvasDocument,
    TestCase,
    TicketSummary,
)
from app.services.completion import CompletionError


class FakeCompletion:
    """Completion port double: canned payloads keyed by schema class name."""

    def __init__(self, responses=None, error=None, delay=0.0, text="ok"):
        self.responses = responses or {}
        self.error = error
        self.delay = delay
        self.text = text
        self.calls = []

    async def classify(self, prompt, schema, system=None):
        self.calls.append(schema.__name__)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if schema.__name__ not in self.responses:
            raise CompletionError(f"no canned response for {schema.__name__}")
        return self.responses[schema.__name__]

    async def generate(self, prompt, system=None):
        if self.error is not None:
            raise self.error
        return self.text


@pytest.fixture
def fake_completion():
    return FakeCompletion


@pytest.fixture
def failing_completion():
    return FakeCompletion(error=RuntimeError("provider down"))


@pytest.fixture
def make_canvas():
    def _make(ac=1, tc=1, warnings=0, problem="Users cannot reset their password from the login page"):
        return QACanvasDocument(
            ticket_summary=TicketSummary(
                problem=problem,
                solution="Add a reset link that emails a one-time token",
                context="Authentication service",
            ),
            acceptance_criteria=[
                AcceptanceCriterion(
                    id=f"AC-{i + 1}",
                    title=f"Reset email is sent {i + 1}",
                    description=f"Given a registered user, the reset email arrives within a minute ({i + 1})",
                    priority="must" if i == 0 else "should",
                )
                for i in range(ac)
            ],
            test_cases=[
                TestCase(
                    format="gherkin",
                    id=f"TC-{i + 1}",
                    category="functional",
                    priority="high",
                    test_case={
                        "scenario": f"Registered user requests a reset {i + 1}",
                        "given": ["a registered user"],
                        "when": ["they request a password reset"],
                        "then": ["a reset email is sent"],
                        "tags": ["@auth"],
                    },
                )
                for i in range(tc)
            ],
            configuration_warnings=[
                ConfigurationWarning(
                    type="recommendation",
                    title=f"Enable negative tests {i + 1}",
                    message="The QA profile excludes negative scenarios",
                    recommendation="Enable negative test generation",
                    severity="medium",
                )
                for i in range(warnings)
            ],
        )

    return _make
