"""
AI Service for managing multiple AI providers with failover support.
Implements the completion port on top of LangChain chat models.
"""

import logging
import time
from enum import Enum
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_groq import ChatGroq
from langchain_openai import ChatOpenAI
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder
from langchain_core.output_parsers import StrOutputParser

from ..core.config import settings
from .completion import CompletionError, coerce_structured

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class AIProvider(str, Enum):
    """Supported AI providers."""
    GEMINI = "gemini"
    GROQ = "groq"
    OPENAI = "openai"


class AIProviderError(CompletionError):
    """Raised when AI provider fails."""
    pass


class AIService:
    """LangChain-backed completion service with provider failover."""

    def __init__(self):
        self.models: Dict[AIProvider, Any] = {}
        self.chains: Dict[AIProvider, Any] = {}
        self._initialize_providers()

    def _initialize_providers(self):
        """Initialize all available AI providers and chains."""
        if settings.GEMINI_API_KEY:
            try:
                self.models[AIProvider.GEMINI] = ChatGoogleGenerativeAI(
                    google_api_key=settings.GEMINI_API_KEY,
                    model=settings.GEMINI_MODEL,
                    temperature=settings.AI_TEMPERATURE,
                    max_output_tokens=settings.AI_MAX_TOKENS,
                    timeout=settings.AI_TIMEOUT_SECONDS
                )
                self._create_chain(AIProvider.GEMINI)
                logger.info("Gemini provider initialized successfully")
            except Exception as e:
                logger.warning(f"Failed to initialize Gemini: {e}")

        if settings.GROQ_API_KEY:
            try:
                self.models[AIProvider.GROQ] = ChatGroq(
                    api_key=settings.GROQ_API_KEY,
                    model=settings.GROQ_MODEL,
                    temperature=settings.AI_TEMPERATURE,
                    max_tokens=settings.AI_MAX_TOKENS,
                    timeout=settings.AI_TIMEOUT_SECONDS
                )
                self._create_chain(AIProvider.GROQ)
                logger.info("Groq provider initialized successfully")
            except Exception as e:
                logger.warning(f"Failed to initialize Groq: {e}")

        if settings.OPENAI_API_KEY:
            try:
                self.models[AIProvider.OPENAI] = ChatOpenAI(
                    api_key=settings.OPENAI_API_KEY,
                    model=settings.OPENAI_MODEL,
                    temperature=settings.AI_TEMPERATURE,
                    max_completion_tokens=settings.AI_MAX_TOKENS,
                    timeout=settings.AI_TIMEOUT_SECONDS
                )
                self._create_chain(AIProvider.OPENAI)
                logger.info("OpenAI provider initialized successfully")
            except Exception as e:
                logger.warning(f"Failed to initialize OpenAI: {e}")

        if not self.models:
            # Analyzers fall back to their keyword paths on every call
            logger.warning("No AI providers configured; intent analysis will use deterministic fallbacks")

    def _create_chain(self, provider: AIProvider):
        """Create LangChain chain for the provider."""
        prompt = ChatPromptTemplate.from_messages([
            MessagesPlaceholder(variable_name="messages")
        ])
        self.chains[provider] = prompt | self.models[provider] | StrOutputParser()

    @staticmethod
    def _build_messages(prompt: str, system: Optional[str]) -> List:
        messages = []
        if system:
            messages.append(SystemMessage(content=system))
        messages.append(HumanMessage(content=prompt))
        return messages

    def _get_provider_order(self) -> List[AIProvider]:
        """Get provider order based on configuration."""
        order = []
        for name in (settings.PRIMARY_AI_PROVIDER, settings.SECONDARY_AI_PROVIDER, settings.TERTIARY_AI_PROVIDER):
            provider = getattr(AIProvider, (name or "").upper(), None)
            if provider and provider in self.models and provider not in order:
                order.append(provider)
        for provider in AIProvider:
            if provider in self.models and provider not in order:
                order.append(provider)
        return order

    @property
    def available(self) -> bool:
        return bool(self.models)

    async def classify(self, prompt: str, schema: Type[T], system: Optional[str] = None) -> T:
        """Structured completion with provider failover."""
        messages = self._build_messages(prompt, system)
        last_error: Optional[Exception] = None
        for provider in self._get_provider_order():
            try:
                start_time = time.time()
                structured = self.models[provider].with_structured_output(schema)
                raw = await structured.ainvoke(messages)
                result = coerce_structured(schema, raw)
                logger.info(
                    f"Structured {schema.__name__} from {provider.value} in {time.time() - start_time:.2f}s"
                )
                return result
            except Exception as e:
                logger.warning(f"Provider {provider.value} failed: {str(e)}")
                last_error = e
                continue
        if last_error is None:
            raise AIProviderError("No AI providers available")
        raise AIProviderError(f"All AI providers failed. Last error: {str(last_error)}")

    async def generate(self, prompt: str, system: Optional[str] = None) -> str:
        """Free-text completion with provider failover."""
        messages = self._build_messages(prompt, system)
        last_error: Optional[Exception] = None
        for provider in self._get_provider_order():
            try:
                logger.info(f"Attempting AI generation with {provider.value}")
                return await self.chains[provider].ainvoke({"messages": messages})
            except Exception as e:
                logger.warning(f"Provider {provider.value} failed: {str(e)}")
                last_error = e
                continue
        if last_error is None:
            raise AIProviderError("No AI providers available")
        raise AIProviderError(f"All AI providers failed. Last error: {str(last_error)}")
