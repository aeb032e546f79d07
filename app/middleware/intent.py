"""
Intent analysis middleware: one entry point that turns a chat turn into a routing decision.
"""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from app.agent.clarification import ClarificationGenerator
from app.agent.contextual import ContextualResponseGenerator
from app.agent.dependency_analyzer import DependencyAnalyzer
from app.agent.intent import IntentAnalyzer
from app.agent.lexicon import detect_language
from app.agent.off_topic import OffTopicDetector
from app.agent.sections import SectionTargetDetector
from app.agent.state import ConversationStateManager, generate_session_id
from app.core.config import settings
from app.schemas.intent import (
    ContextSnapshot,
    ConversationPhase,
    IntentAnalysisResult,
    IntentType,
    OffTopicCategory,
)
from app.schemas.middleware import (
    MiddlewareConfig,
    MiddlewareMessage,
    MiddlewareResponse,
    RequestContext,
    ResponseData,
    ResponseMetadata,
    ResponseType,
)
from app.services.completion import CompletionPort

logger = logging.getLogger(__name__)

TIMEOUT_CONFIDENCE = 0.3


class IntentAnalysisMiddlewareError(Exception):
    """Raised inside the middleware; always converted to a fallback response."""

    def __init__(
        self,
        message: str,
        code: str = "MIDDLEWARE_ERROR",
        fallback_action: str = "use_original_logic",
        request_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.fallback_action = fallback_action
        self.request_id = request_id


class RequestPreprocessor:
    """Normalizes raw request context before analysis."""

    @staticmethod
    def normalize_messages(messages: List[Any]) -> List[MiddlewareMessage]:
        out: List[MiddlewareMessage] = []
        for msg in messages or []:
            if isinstance(msg, dict):
                msg = MiddlewareMessage.model_validate(msg)
            content = (msg.content or "").strip()
            if not content:
                continue
            out.append(MiddlewareMessage(role=(msg.role or "user").strip().lower(), content=content))
        return out

    @staticmethod
    def extract_user_message(messages: List[MiddlewareMessage]) -> Optional[str]:
        for msg in reversed(messages):
            if msg.role == "user":
                return msg.content
        return None

    @staticmethod
    def normalize_preferences(preferences: Optional[Dict[str, Any]], message: str = "") -> Dict[str, Any]:
        prefs = dict(preferences or {})
        language = str(prefs.get("language") or "").lower()[:2]
        prefs["language"] = language if language in ("es", "en") else detect_language(message)
        return prefs

    @classmethod
    def validate(cls, context: RequestContext) -> None:
        if not isinstance(context, RequestContext):
            raise IntentAnalysisMiddlewareError("Request context is required", code="INVALID_REQUEST")


class IntentAnalysisMiddleware:
    """Routes each chat turn to modification, clarification, information, rejection or fallback."""

    def __init__(
        self,
        config: Optional[MiddlewareConfig] = None,
        completion: Optional[CompletionPort] = None,
        state_manager: Optional[ConversationStateManager] = None,
        intent_analyzer: Optional[IntentAnalyzer] = None,
        dependency_analyzer: Optional[DependencyAnalyzer] = None,
        clarification_generator: Optional[ClarificationGenerator] = None,
        contextual_generator: Optional[ContextualResponseGenerator] = None,
        off_topic_detector: Optional[OffTopicDetector] = None,
    ):
        self.config = config or MiddlewareConfig()
        self.state_manager = state_manager or ConversationStateManager()
        self.off_topic_detector = off_topic_detector or OffTopicDetector(
            completion, enable_hybrid_detection=settings.OFF_TOPIC_HYBRID_DETECTION
        )
        self.intent_analyzer = intent_analyzer or IntentAnalyzer(completion)
        self.dependency_analyzer = dependency_analyzer or DependencyAnalyzer(completion)
        self.clarification_generator = clarification_generator or ClarificationGenerator(completion)
        self.contextual_generator = contextual_generator or ContextualResponseGenerator(completion)
        self.section_detector = SectionTargetDetector()
        self._handlers: Dict[IntentType, Callable[..., Awaitable[MiddlewareResponse]]] = {
            IntentType.MODIFY_CANVAS: self._handle_modification,
            IntentType.ASK_CLARIFICATION: self._handle_clarification,
            IntentType.PROVIDE_INFORMATION: self._handle_information,
            IntentType.REQUEST_EXPLANATION: self._handle_information,
            IntentType.OFF_TOPIC: self._handle_off_topic,
        }

    async def process_request(self, context: RequestContext) -> MiddlewareResponse:
        started = time.perf_counter()
        request_id = str(uuid.uuid4())
        session_id = context.session_id if context is not None else None

        try:
            RequestPreprocessor.validate(context)
            messages = RequestPreprocessor.normalize_messages(context.messages)
            user_message = RequestPreprocessor.extract_user_message(messages)
            if not user_message:
                return self._fallback(
                    "No user message found in request", started, request_id, session_id,
                    intent=IntentType.MODIFY_CANVAS, confidence=0.0,
                )

            session_id = session_id or generate_session_id()
            last_intent = self._prepare_session(session_id)
            preferences = RequestPreprocessor.normalize_preferences(context.user_preferences, user_message)
            history = messages[:-1] if messages and messages[-1].content == user_message else messages

            analysis = await self._analyze(user_message, history, context, last_intent)
            handler = self._handlers.get(analysis.intent)
            if handler is None:
                intent_value = getattr(analysis.intent, "value", analysis.intent)
                return self._fallback(f"Unknown intent type: {intent_value}", started, request_id, session_id)

            response = await handler(
                analysis=analysis,
                message=user_message,
                context=context,
                preferences=preferences,
                session_id=session_id,
                started=started,
                request_id=request_id,
            )
            if response.type != ResponseType.FALLBACK:
                self._record_turn(session_id, analysis, user_message, context, response)
            return response

        except IntentAnalysisMiddlewareError as e:
            logger.warning(f"Intent middleware rejected request {request_id}: [{e.code}] {e.message}")
            if not self.config.fallback_to_original:
                e.request_id = e.request_id or request_id
                raise
            return self._fallback(e.message, started, request_id, session_id)
        except Exception as e:
            logger.error(f"Intent middleware failed for request {request_id}: {e}", exc_info=True)
            if not self.config.fallback_to_original:
                raise IntentAnalysisMiddlewareError(f"Middleware error: {e}", request_id=request_id) from e
            return self._fallback(f"Middleware error: {e}", started, request_id, session_id)

    # ------------------------------------------------------------------

    def _prepare_session(self, session_id: str) -> Optional[IntentType]:
        if not self.config.enable_conversation_state:
            return None
        state = self.state_manager.get_state(session_id)
        if state is None:
            self.state_manager.initialize_session(session_id)
            return None
        return state.last_intent.intent if state.context_history else None

    async def _analyze(
        self,
        message: str,
        history: List[MiddlewareMessage],
        context: RequestContext,
        last_intent: Optional[IntentType],
    ) -> IntentAnalysisResult:
        if not self.config.enable_intent_analysis:
            return IntentAnalysisResult(
                intent=IntentType.MODIFY_CANVAS,
                confidence=0.5,
                target_sections=[],
                reasoning="Intent analysis disabled by configuration",
                should_modify_canvas=True,
            )
        try:
            return await asyncio.wait_for(
                self.intent_analyzer.analyze_intent(message, history, context.current_document, last_intent),
                timeout=self.config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Intent analysis timed out after {self.config.timeout_seconds}s, asking for clarification")
            sections = self.section_detector.validate_sections(
                self.section_detector.detect_by_keywords(message), context.current_document
            )
            return IntentAnalysisResult(
                intent=IntentType.ASK_CLARIFICATION,
                confidence=TIMEOUT_CONFIDENCE,
                target_sections=sections.primary_targets,
                context=self.intent_analyzer.build_context(context.current_document, history, last_intent),
                reasoning="Intent analysis timed out; asking the user to clarify",
                keywords=sections.keywords,
                requires_clarification=True,
            )

    async def _handle_modification(self, analysis, message, context, preferences, session_id, started, request_id):
        dependency_analysis = None
        document = context.current_document
        if self.config.enable_dependency_analysis and document is not None and analysis.target_sections:
            try:
                dependency_analysis = await self.dependency_analyzer.analyze_dependencies(
                    analysis.target_sections, document, message
                )
            except Exception as e:
                logger.warning(f"Dependency analysis failed, proceeding without it: {e}")
        return self._respond(
            ResponseType.MODIFICATION, analysis, session_id, started, request_id,
            ResponseData(dependency_analysis=dependency_analysis),
        )

    async def _handle_clarification(self, analysis, message, context, preferences, session_id, started, request_id):
        try:
            result = await self.clarification_generator.generate_clarification_questions(
                message, analysis.target_sections, context.current_document
            )
        except Exception as e:
            logger.error(f"Clarification generation failed: {e}", exc_info=True)
            return self._fallback(
                f"Clarification generation failed: {e}", started, request_id, session_id,
                intent=analysis.intent, confidence=analysis.confidence,
            )
        return self._respond(
            ResponseType.CLARIFICATION, analysis, session_id, started, request_id,
            ResponseData(clarification_result=result),
        )

    async def _handle_information(self, analysis, message, context, preferences, session_id, started, request_id):
        try:
            answer = await self.contextual_generator.generate_contextual_response(
                message, context.current_document, context.original_ticket_data
            )
        except Exception as e:
            logger.error(f"Contextual response generation failed: {e}", exc_info=True)
            return self._fallback(
                f"Contextual response generation failed: {e}", started, request_id, session_id,
                intent=analysis.intent, confidence=analysis.confidence,
            )
        return self._respond(
            ResponseType.INFORMATION, analysis, session_id, started, request_id,
            ResponseData(contextual_response=answer),
        )

    async def _handle_off_topic(self, analysis, message, context, preferences, session_id, started, request_id):
        verdict = await self.off_topic_detector.detect_off_topic(
            message, context.current_document, context.original_ticket_data
        )
        category = verdict.category or OffTopicCategory.OTHER
        rejection = self.off_topic_detector.generate_polite_rejection(category, preferences.get("language", "es"))
        return self._respond(
            ResponseType.REJECTION, analysis, session_id, started, request_id,
            ResponseData(
                rejection_message=rejection.message,
                redirection_suggestions=rejection.redirection_suggestions,
            ),
        )

    # ------------------------------------------------------------------

    def _record_turn(
        self,
        session_id: str,
        analysis: IntentAnalysisResult,
        message: str,
        context: RequestContext,
        response: MiddlewareResponse,
    ) -> None:
        if not self.config.enable_conversation_state:
            return
        manager = self.state_manager
        manager.update_last_intent(session_id, analysis)
        if response.type == ResponseType.CLARIFICATION and response.data.clarification_result:
            manager.add_pending_clarifications(session_id, response.data.clarification_result.questions)
        elif response.type == ResponseType.MODIFICATION:
            manager.transition_phase(session_id, ConversationPhase.PROCESSING_MODIFICATION)
        elif response.type == ResponseType.INFORMATION:
            manager.transition_phase(session_id, ConversationPhase.PROVIDING_INFORMATION)
        manager.add_context_snapshot(session_id, ContextSnapshot(
            timestamp=manager.clock(),
            canvas_state=context.current_document,
            user_message=message,
            system_response=self._summarize(response),
            intent=analysis.intent,
            confidence=analysis.confidence,
        ))

    @staticmethod
    def _summarize(response: MiddlewareResponse) -> str:
        data = response.data
        if data.clarification_result and data.clarification_result.questions:
            return data.clarification_result.questions[0].question
        if data.contextual_response:
            return data.contextual_response.response
        if data.rejection_message:
            return data.rejection_message
        if data.dependency_analysis:
            return data.dependency_analysis.impact_assessment
        return response.type.value

    def _metadata(self, started: float, request_id: str) -> ResponseMetadata:
        return ResponseMetadata(
            processing_time=int((time.perf_counter() - started) * 1000),
            request_id=request_id,
            timestamp=datetime.now(timezone.utc),
        )

    def _respond(
        self,
        response_type: ResponseType,
        analysis: IntentAnalysisResult,
        session_id: Optional[str],
        started: float,
        request_id: str,
        data: ResponseData,
    ) -> MiddlewareResponse:
        return MiddlewareResponse(
            type=response_type,
            intent=analysis.intent,
            confidence=analysis.confidence,
            target_sections=analysis.target_sections,
            session_id=session_id,
            data=data,
            metadata=self._metadata(started, request_id),
        )

    def _fallback(
        self,
        reason: str,
        started: float,
        request_id: str,
        session_id: Optional[str],
        intent: IntentType = IntentType.PROVIDE_INFORMATION,
        confidence: float = 0.0,
    ) -> MiddlewareResponse:
        return MiddlewareResponse(
            type=ResponseType.FALLBACK,
            intent=intent,
            confidence=confidence,
            target_sections=[],
            session_id=session_id,
            data=ResponseData(fallback_reason=reason),
            metadata=self._metadata(started, request_id),
        )
