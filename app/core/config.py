"""
Application configuration management using Pydantic Settings.
Handles environment-based configuration for AI providers, intent analysis and conversation sessions.
"""
import os
from typing import Optional, List
from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Application settings
    APP_NAME: str = "QA Canvas Intent API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Server settings
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # CORS settings
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
    ]
    ALLOWED_METHODS: List[str] = ["GET", "POST", "DELETE", "OPTIONS"]
    ALLOWED_HEADERS: List[str] = ["*"]

    # AI Provider settings
    GEMINI_API_KEY: Optional[str] = os.getenv("GEMINI_API_KEY")
    GROQ_API_KEY: Optional[str] = os.getenv("GROQ_API_KEY")
    OPENAI_API_KEY: Optional[str] = os.getenv("OPENAI_API_KEY")

    # AI Configuration
    PRIMARY_AI_PROVIDER: str = "gemini"
    SECONDARY_AI_PROVIDER: str = "groq"
    TERTIARY_AI_PROVIDER: str = "openai"

    # Model names (configurable via env)
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    GROQ_MODEL: str = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")
    OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")

    # AI Response Configuration
    AI_MAX_TOKENS: int = 1500
    AI_TEMPERATURE: float = 0.1
    AI_TIMEOUT_SECONDS: int = 10

    # Intent analysis pipeline
    INTENT_ANALYSIS_ENABLED: bool = True
    DEPENDENCY_ANALYSIS_ENABLED: bool = True
    CONVERSATION_STATE_ENABLED: bool = True
    FALLBACK_TO_ORIGINAL: bool = True
    INTENT_ANALYSIS_TIMEOUT_SECONDS: float = 5.0
    OFF_TOPIC_HYBRID_DETECTION: bool = True

    # Conversation sessions
    SESSION_TIMEOUT_MINUTES: int = 30
    SESSION_CLEANUP_INTERVAL_SECONDS: int = 300
    MAX_CONTEXT_HISTORY: int = 20
    MAX_PENDING_CLARIFICATIONS: int = 5

    # Logging settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @field_validator("INTENT_ANALYSIS_TIMEOUT_SECONDS")
    def validate_intent_timeout(cls, v):
        """Intent analysis must be allowed some time to run."""
        if v <= 0:
            raise ValueError("INTENT_ANALYSIS_TIMEOUT_SECONDS must be positive")
        return v

    @field_validator("SESSION_TIMEOUT_MINUTES", "SESSION_CLEANUP_INTERVAL_SECONDS")
    def validate_session_timing(cls, v):
        if v < 1:
            raise ValueError("Session timing values must be at least 1")
        return v

    @field_validator("MAX_CONTEXT_HISTORY", "MAX_PENDING_CLARIFICATIONS")
    def validate_limits(cls, v):
        """Conversation limits must keep at least one entry."""
        if v < 1:
            raise ValueError("Conversation limits must be at least 1")
        return v

    @field_validator("LOG_LEVEL")
    def validate_log_level(cls, v):
        level = str(v).upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError("LOG_LEVEL must be a standard logging level name")
        return level

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Global settings instance
settings = Settings()
