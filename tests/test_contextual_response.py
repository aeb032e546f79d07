import pytest

from app.agent.contextual import ContextualResponseGenerator
from app.schemas.intent import CanvasSection, ContentCitation


AC = CanvasSection.ACCEPTANCE_CRITERIA
TC = CanvasSection.TEST_CASES
TS = CanvasSection.TICKET_SUMMARY


@pytest.mark.asyncio
async def test_fallback_answers_from_canvas_content(failing_completion, make_canvas):
    result = await ContextualResponseGenerator(failing_completion).generate_contextual_response(
        "¿Cuántos criterios de aceptación hay?", make_canvas(ac=2, tc=1)
    )

    assert result.confidence == pytest.approx(0.6)
    assert result.relevant_sections == [AC]
    assert "2 criterios de aceptación" in result.response
    assert [c.content for c in result.citations] == ["Reset email is sent 1"]
    assert 0 < len(result.suggested_follow_ups) <= 5


@pytest.mark.asyncio
async def test_no_canvas_loaded():
    result = await ContextualResponseGenerator().generate_contextual_response("What do the test cases cover?")
    assert result.citations == []
    assert result.confidence == pytest.approx(0.6)
    assert "no QA canvas" in result.response


@pytest.mark.asyncio
async def test_model_answer_drops_invented_citations(fake_completion, make_canvas):
    fake = fake_completion(responses={
        "ContextualAnswer": {
            "response": "The test cases cover the reset email flow.",
            "relevant_sections": ["acceptanceCriteria"],
            "citations": [
                {"section": "acceptanceCriteria", "content": "Reset email is sent 1"},
                {"section": "acceptanceCriteria", "content": "Users can log in with SSO"},
            ],
            "suggested_follow_ups": [f"Follow-up {i}" for i in range(6)],
            "confidence": 0.85,
        }
    })
    result = await ContextualResponseGenerator(fake).generate_contextual_response(
        "What do the test cases cover?", make_canvas()
    )

    assert [c.content for c in result.citations] == ["Reset email is sent 1"]
    assert result.relevant_sections == [AC, TC]
    assert len(result.suggested_follow_ups) == 5
    assert result.confidence == pytest.approx(0.85)


def test_citation_must_come_from_the_cited_section(make_canvas):
    document = make_canvas()
    citations = [
        ContentCitation(section=TC, content="Reset email is sent 1"),
        ContentCitation(section=TC, content="a reset email is sent"),
        ContentCitation(section=TS, content="   "),
    ]
    valid = ContextualResponseGenerator.validate_citations(citations, document)
    assert [c.content for c in valid] == ["a reset email is sent"]


@pytest.mark.parametrize("message, question_type, sections", [
    ("Explain the test cases", "explanation", [TC]),
    ("Why this format?", "methodology", []),
    ("Hola", "general", []),
])
def test_extract_topics(message, question_type, sections):
    topics = ContextualResponseGenerator().extract_topics(message)
    assert topics.question_type == question_type
    assert topics.sections == sections


def test_section_insights(make_canvas):
    generator = ContextualResponseGenerator()
    document = make_canvas(ac=0, tc=2, problem="")

    assert generator.generate_section_insights(TC, document, "en") == (
        "There are 2 test cases in gherkin format. Categories: functional."
    )
    assert generator.generate_section_insights(AC, document, "es") == "No hay criterios de aceptación definidos."
    assert "solution specified" in generator.generate_section_insights(TS, document, "en")
    assert "problem defined" not in generator.generate_section_insights(TS, document, "en")


def test_follow_ups_mention_existing_sections(make_canvas):
    follow_ups = ContextualResponseGenerator.enhance_follow_up_suggestions([], make_canvas(warnings=1), "en")
    assert len(follow_ups) == 4
    assert any("configuration warnings" in f for f in follow_ups)
    assert any("gherkin" in f for f in follow_ups)
