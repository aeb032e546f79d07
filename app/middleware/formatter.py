"""
Maps middleware decisions to the JSON shapes the canvas frontend expects.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from fastapi import status
from fastapi.responses import JSONResponse

from app.schemas.middleware import MiddlewareResponse

logger = logging.getLogger(__name__)


class ResponseFormatter:

    @staticmethod
    def _base(response: MiddlewareResponse) -> Dict[str, Any]:
        return {
            "type": response.type.value,
            "intent": getattr(response.intent, "value", response.intent),
            "confidence": response.confidence,
            "targetSections": [getattr(s, "value", s) for s in response.target_sections],
            "sessionId": response.session_id,
            "metadata": response.metadata.to_wire(),
        }

    @classmethod
    def format_payload(cls, response: MiddlewareResponse) -> Tuple[Dict[str, Any], int]:
        response_type = getattr(response.type, "value", response.type)
        data = response.data

        if response_type == "clarification":
            result = data.clarification_result
            body = cls._base(response)
            if result is None:
                body.update({
                    "questions": [],
                    "context": "",
                    "suggestedActions": [],
                    "estimatedClarificationTime": 0,
                    "changesSummary": "",
                })
                return body, status.HTTP_200_OK
            body.update({
                "questions": [q.to_wire() for q in result.questions],
                "context": result.context,
                "suggestedActions": result.suggested_actions,
                "estimatedClarificationTime": result.estimated_clarification_time,
                "changesSummary": result.context,
            })
            return body, status.HTTP_200_OK

        if response_type == "information":
            answer = data.contextual_response
            body = cls._base(response)
            if answer is None:
                body.update({
                    "response": "",
                    "relevantSections": [],
                    "citations": [],
                    "suggestedFollowUps": [],
                    "changesSummary": "",
                })
                return body, status.HTTP_200_OK
            body.update({
                "response": answer.response,
                "relevantSections": [s.value for s in answer.relevant_sections],
                "citations": [c.to_wire() for c in answer.citations],
                "suggestedFollowUps": answer.suggested_follow_ups,
                "changesSummary": answer.response,
            })
            return body, status.HTTP_200_OK

        if response_type == "rejection":
            body = cls._base(response)
            body.update({
                "message": data.rejection_message,
                "redirectionSuggestions": data.redirection_suggestions,
                "changesSummary": data.rejection_message,
            })
            return body, status.HTTP_200_OK

        if response_type == "modification":
            body = cls._base(response)
            body.update({
                "dependencyAnalysis": data.dependency_analysis.to_wire() if data.dependency_analysis else None,
                "proceedWithModification": True,
            })
            return body, status.HTTP_200_OK

        if response_type == "fallback":
            body = cls._base(response)
            body.update({
                "reason": data.fallback_reason,
                "proceedWithOriginalLogic": True,
            })
            return body, status.HTTP_200_OK

        logger.error(f"Cannot format middleware response of type {response_type!r}")
        return {
            "type": "error",
            "error": "Unknown response type",
            "details": f"Unsupported middleware response type: {response_type}",
        }, status.HTTP_500_INTERNAL_SERVER_ERROR

    @classmethod
    def format_response(cls, response: MiddlewareResponse) -> JSONResponse:
        body, status_code = cls.format_payload(response)
        return JSONResponse(status_code=status_code, content=body)

    @staticmethod
    def format_error_response(error: Exception, request_id: Optional[str] = None) -> JSONResponse:
        code = getattr(error, "code", "MIDDLEWARE_ERROR")
        status_code = status.HTTP_400_BAD_REQUEST if code == "INVALID_REQUEST" else status.HTTP_500_INTERNAL_SERVER_ERROR
        return JSONResponse(
            status_code=status_code,
            content={
                "type": "error",
                "error": str(error) or "Intent analysis failed",
                "code": code,
                "fallbackAction": getattr(error, "fallback_action", "use_original_logic"),
                "requestId": request_id or getattr(error, "request_id", None),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )
