import json
from datetime import datetime, timezone

import pytest

from app.middleware.formatter import ResponseFormatter
from app.middleware.intent import IntentAnalysisMiddlewareError
from app.schemas.intent import (
    CanvasSection,
    ClarificationQuestion,
    ClarificationResult,
    ContentCitation,
    ContextualResponse,
)
from app.schemas.middleware import MiddlewareResponse, ResponseData, ResponseMetadata, ResponseType


def _metadata():
    return ResponseMetadata(
        processing_time=12,
        request_id="req-1",
        timestamp=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
    )


def _response(response_type, intent, data, sections=()):
    return MiddlewareResponse(
        type=response_type,
        intent=intent,
        confidence=0.8,
        target_sections=list(sections),
        session_id="s1",
        data=data,
        metadata=_metadata(),
    )


def test_clarification_shape():
    result = ClarificationResult(
        questions=[ClarificationQuestion(
            question="¿Qué criterio está incompleto?",
            target_section=CanvasSection.ACCEPTANCE_CRITERIA,
            priority="high",
        )],
        context="Tu mensaje necesita detalles",
        estimated_clarification_time=2,
    )
    body, status_code = ResponseFormatter.format_payload(_response(
        ResponseType.CLARIFICATION, "ask_clarification",
        ResponseData(clarification_result=result), [CanvasSection.ACCEPTANCE_CRITERIA],
    ))

    assert status_code == 200
    assert body["type"] == "clarification"
    assert body["intent"] == "ask_clarification"
    assert body["targetSections"] == ["acceptanceCriteria"]
    assert body["questions"][0]["targetSection"] == "acceptanceCriteria"
    assert body["estimatedClarificationTime"] == 2
    assert body["metadata"]["requestId"] == "req-1"


def test_information_shape():
    answer = ContextualResponse(
        response="Hay 2 casos de prueba.",
        relevant_sections=[CanvasSection.TEST_CASES],
        citations=[ContentCitation(section=CanvasSection.TEST_CASES, content="a reset email is sent")],
        suggested_follow_ups=["¿Algo más?"],
        confidence=0.6,
    )
    body, _ = ResponseFormatter.format_payload(_response(
        ResponseType.INFORMATION, "provide_information", ResponseData(contextual_response=answer)
    ))
    assert body["response"] == "Hay 2 casos de prueba."
    assert body["relevantSections"] == ["testCases"]
    assert body["citations"] == [{"section": "testCases", "content": "a reset email is sent", "relevance": ""}]
    assert body["suggestedFollowUps"] == ["¿Algo más?"]


def test_rejection_shape():
    body, status_code = ResponseFormatter.format_payload(_response(
        ResponseType.REJECTION, "off_topic",
        ResponseData(rejection_message="Solo QA", redirection_suggestions=["a", "b", "c"]),
    ))
    assert status_code == 200
    assert body["message"] == "Solo QA"
    assert body["redirectionSuggestions"] == ["a", "b", "c"]


def test_modification_and_fallback_shapes():
    body, _ = ResponseFormatter.format_payload(_response(ResponseType.MODIFICATION, "modify_canvas", ResponseData()))
    assert body["proceedWithModification"] is True
    assert body["dependencyAnalysis"] is None

    body, _ = ResponseFormatter.format_payload(_response(
        ResponseType.FALLBACK, "provide_information", ResponseData(fallback_reason="No user message found in request")
    ))
    assert body["proceedWithOriginalLogic"] is True
    assert body["reason"] == "No user message found in request"


def test_unknown_type_is_a_server_error():
    response = MiddlewareResponse.model_construct(
        type="summary", intent="provide_information", confidence=0.5,
        target_sections=[], session_id=None, data=ResponseData(), metadata=_metadata(),
    )
    body, status_code = ResponseFormatter.format_payload(response)
    assert status_code == 500
    assert body["type"] == "error"
    assert "summary" in body["details"]

    assert ResponseFormatter.format_response(response).status_code == 500


def test_known_types_without_result_have_empty_payloads():
    body, status_code = ResponseFormatter.format_payload(
        _response(ResponseType.CLARIFICATION, "ask_clarification", ResponseData())
    )
    assert status_code == 200
    assert body["type"] == "clarification"
    assert body["questions"] == []
    assert body["estimatedClarificationTime"] == 0

    body, status_code = ResponseFormatter.format_payload(
        _response(ResponseType.INFORMATION, "provide_information", ResponseData())
    )
    assert status_code == 200
    assert body["type"] == "information"
    assert body["response"] == ""
    assert body["citations"] == []


@pytest.mark.parametrize("code, expected", [("INVALID_REQUEST", 400), ("MIDDLEWARE_ERROR", 500)])
def test_error_response(code, expected):
    error = IntentAnalysisMiddlewareError("bad input", code=code, request_id="req-9")
    response = ResponseFormatter.format_error_response(error)
    body = json.loads(response.body)
    assert response.status_code == expected
    assert body["code"] == code
    assert body["requestId"] == "req-9"
    assert body["fallbackAction"] == "use_original_logic"
