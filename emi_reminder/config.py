"""
Configuration management for the EMI Reminder agent.
Loads settings from environment variables with sensible defaults.
"""

from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # =========================
    # Application Settings
    # =========================
    APP_NAME: str = "EMI Reminder Agent"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    ENVIRONMENT: str = Field(default="development", description="Environment name")

    # =========================
    # API Keys
    # =========================
    GROQ_API_KEY: Optional[str] = Field(
        default=None,
        description="Groq API key for LLM replies and sentiment (LLM tier disabled when unset)"
    )
    NLU_API_KEY: Optional[str] = Field(default=None, description="Bearer token for the NLU service")

    # =========================
    # Server Settings
    # =========================
    HOST: str = Field(default="0.0.0.0", description="Server host")
    PORT: int = Field(default=8000, description="Server port")

    # =========================
    # Provider Settings
    # =========================
    LLM_MODEL_ID: str = Field(
        default="llama-3.1-70b-versatile",
        description="Groq LLM model to use"
    )
    LLM_MAX_TOKENS: int = Field(default=300, description="Maximum tokens per LLM reply")
    LLM_TEMPERATURE: float = Field(default=0.4, description="LLM sampling temperature")
    NLU_URL: Optional[str] = Field(
        default=None,
        description="Intent service endpoint (NLU tier disabled when unset)"
    )
    TTS_VOICE_ID: str = Field(default="en-IN-NeerjaNeural", description="Remote synthesis voice")

    # =========================
    # Latency Settings
    # =========================
    PROVIDER_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Timeout applied to every remote provider call"
    )
    PLAYBACK_TIMEOUT_SECONDS: float = Field(
        default=60.0,
        description="Longest time to wait for the client to finish playing audio"
    )
    LOCAL_SPEECH_TIMEOUT_SECONDS: float = Field(
        default=60.0,
        description="Longest time to wait for the local synthesizer"
    )

    # =========================
    # Turn-taking Settings
    # =========================
    TRANSCRIPT_DEBOUNCE_SECONDS: float = Field(
        default=3.0,
        description="Silence after an interim fragment before the buffer is dispatched"
    )
    CAPTURE_RESTART_DELAY_SECONDS: float = Field(
        default=0.1,
        description="Delay before restarting a capture engine that ended on its own"
    )
    MAX_CAPTURE_RESTARTS: int = Field(
        default=5,
        description="Consecutive automatic capture restarts before giving up"
    )
    RESUME_LISTENING_DELAY_SECONDS: float = Field(
        default=0.5,
        description="Pause between the end of playback and resumed listening"
    )
    ERROR_DISPLAY_SECONDS: float = Field(
        default=5.0,
        description="How long a user-visible error stays on screen"
    )

    # =========================
    # Domain Settings
    # =========================
    ASSISTANT_NAME: str = Field(default="Priya", description="Assistant persona name")
    SUPPORT_PHONE: str = Field(default="1800-123-4567", description="Customer service number")
    CURRENCY_SYMBOL: str = Field(default="₹", description="Currency symbol for amounts")
    DATE_FORMAT: str = Field(default="%d/%m/%Y", description="strftime format for due dates")

    # =========================
    # Session Settings
    # =========================
    SESSION_TIMEOUT_MINUTES: int = Field(default=30, description="Session idle timeout")
    MAX_SESSIONS: int = Field(default=100, description="Maximum concurrent sessions")
    MAX_ARCHIVED_CONVERSATIONS: int = Field(
        default=1000,
        description="Transcripts kept in the archive before the oldest is dropped"
    )

    # =========================
    # Logging Settings
    # =========================
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    AGENT_LOG_PATH: Path = Field(
        default=Path("./logs/agent_log.md"),
        description="Path to agent markdown log"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Capture error kinds reported by the browser recognizer
CAPTURE_ERROR_ALIASES = {
    "not-allowed": "permission-denied",
    "service-not-allowed": "permission-denied",
    "permission-denied": "permission-denied",
    "network": "network",
    "no-speech": "no-speech",
}

# User-facing capture error messages
CAPTURE_ERROR_MESSAGES = {
    "permission-denied": "Microphone access denied. Please allow microphone access and try again.",
    "network": "Network error occurred. Please check your connection.",
}
