import pytest

from app.agent.intent import IntentAnalyzer, assess_canvas_complexity
from app.schemas.intent import CanvasSection, IntentType


@pytest.mark.asyncio
async def test_analyze_intent_uses_model_classification(fake_completion, make_canvas):
    fake = fake_completion(responses={
        "IntentClassification": {
            "intent": "modify_canvas",
            "confidence": 0.92,
            "target_sections": ["acceptanceCriteria", "metadata"],
            "reasoning": "Explicit request to add a criterion",
            "keywords": ["agrega"],
        }
    })
    analyzer = IntentAnalyzer(fake)

    result = await analyzer.analyze_intent(
        "Agrega un criterio para el bloqueo de cuenta",
        history=[{"role": "assistant", "content": "Canvas generado"}],
        current_document=make_canvas(ac=2, tc=2),
    )

    assert result.intent == IntentType.MODIFY_CANVAS
    assert result.confidence == pytest.approx(0.92)
    assert result.target_sections == [CanvasSection.ACCEPTANCE_CRITERIA]
    assert result.reasoning == "Explicit request to add a criterion"
    assert result.should_modify_canvas is True
    assert result.requires_clarification is False
    assert result.context.conversation_length == 1
    assert fake.calls == ["IntentClassification"]


@pytest.mark.asyncio
async def test_blank_model_reasoning_gets_default(fake_completion):
    fake = fake_completion(responses={
        "IntentClassification": {"intent": "provide_information", "confidence": 0.7, "reasoning": "  "}
    })
    result = await IntentAnalyzer(fake).analyze_intent("¿Cuántos casos de prueba hay?")
    assert result.reasoning


@pytest.mark.asyncio
@pytest.mark.parametrize("raw, expected", [(1.3, 1.0), (-0.2, 0.0)])
async def test_out_of_range_model_confidence_is_clamped(fake_completion, raw, expected):
    fake = fake_completion(responses={
        "IntentClassification": {"intent": "provide_information", "confidence": raw, "reasoning": "model says info"}
    })
    result = await IntentAnalyzer(fake).analyze_intent("¿Cuántos casos de prueba hay?")

    assert result.intent == IntentType.PROVIDE_INFORMATION
    assert result.confidence == expected
    assert result.reasoning == "model says info"


@pytest.mark.asyncio
async def test_vague_complaint_falls_back_to_clarification(failing_completion, make_canvas):
    result = await IntentAnalyzer(failing_completion).analyze_intent(
        "Los criterios de aceptación están mal definidos",
        history=[],
        current_document=make_canvas(),
    )
    assert result.intent == IntentType.ASK_CLARIFICATION
    assert CanvasSection.ACCEPTANCE_CRITERIA in result.target_sections
    assert result.requires_clarification is True
    assert result.confidence == pytest.approx(0.5)
    assert "fallback" in result.reasoning.lower()


@pytest.mark.asyncio
async def test_modification_verb_falls_back_to_modify(failing_completion, make_canvas):
    result = await IntentAnalyzer(failing_completion).analyze_intent(
        "Cambiar los criterios de aceptación", current_document=make_canvas()
    )
    assert result.intent == IntentType.MODIFY_CANVAS
    assert result.should_modify_canvas is True
    assert result.target_sections == [CanvasSection.ACCEPTANCE_CRITERIA]


@pytest.mark.asyncio
async def test_off_topic_message_without_sections(failing_completion):
    result = await IntentAnalyzer(failing_completion).analyze_intent("¿Quién ganó el partido de fútbol ayer?")
    assert result.intent == IntentType.OFF_TOPIC
    assert result.target_sections == []


@pytest.mark.asyncio
async def test_no_keywords_is_low_confidence_information():
    result = await IntentAnalyzer(None).analyze_intent("asdf qwerty zxcv")
    assert result.intent == IntentType.PROVIDE_INFORMATION
    assert result.confidence < 0.5


@pytest.mark.asyncio
async def test_explanation_request_fallback(failing_completion, make_canvas):
    result = await IntentAnalyzer(failing_completion).analyze_intent(
        "Explícame cómo se relacionan los casos de prueba con los criterios", current_document=make_canvas()
    )
    assert result.intent == IntentType.REQUEST_EXPLANATION


@pytest.mark.asyncio
@pytest.mark.parametrize("message", [
    "",
    "hola",
    "Fix the test cases please",
    "The acceptance criteria are wrong",
    "What does the ticket summary say?",
    "metadata",
    "Revisa las advertencias de configuración",
])
async def test_fallback_always_returns_bounded_confidence_and_reasoning(message, failing_completion):
    result = await IntentAnalyzer(failing_completion).analyze_intent(message)
    assert 0.0 <= result.confidence <= 1.0
    assert result.reasoning.strip()
    assert CanvasSection.METADATA not in result.target_sections


@pytest.mark.asyncio
async def test_malformed_model_output_falls_back(fake_completion):
    fake = fake_completion(responses={"IntentClassification": {"intent": "rewrite_everything", "confidence": 0.9}})
    result = await IntentAnalyzer(fake).analyze_intent("Update the test cases")
    assert result.intent == IntentType.MODIFY_CANVAS
    assert result.confidence == pytest.approx(0.5)


def test_canvas_complexity_buckets(make_canvas):
    assert assess_canvas_complexity(None) == "empty"
    assert assess_canvas_complexity(make_canvas(ac=0, tc=0)) == "empty"
    assert assess_canvas_complexity(make_canvas(ac=2, tc=3)) == "simple"
    assert assess_canvas_complexity(make_canvas(ac=5, tc=8)) == "medium"
    assert assess_canvas_complexity(make_canvas(ac=8, tc=10)) == "complex"


def test_build_context_lists_populated_sections(make_canvas):
    ctx = IntentAnalyzer().build_context(make_canvas(ac=1, tc=0), history=[1, 2, 3])
    assert ctx.has_canvas is True
    assert ctx.conversation_length == 3
    assert CanvasSection.ACCEPTANCE_CRITERIA in ctx.available_sections
    assert CanvasSection.TEST_CASES not in ctx.available_sections
    assert CanvasSection.METADATA not in ctx.available_sections
