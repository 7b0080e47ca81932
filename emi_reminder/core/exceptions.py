"""
Core exceptions for the EMI Reminder agent.
Custom exception classes for structured error handling.
"""

from typing import Optional, Dict, Any


class EmiAgentException(Exception):
    """Base exception for EMI Reminder agent errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "EMI_AGENT_ERROR",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


# =========================
# Capture Exceptions
# =========================

class CaptureException(EmiAgentException):
    """Base exception for speech capture errors."""

    def __init__(self, message: str, kind: str = "unknown", details: Optional[Dict[str, Any]] = None):
        self.kind = kind
        super().__init__(
            message=message,
            error_code="CAPTURE_ERROR",
            status_code=500,
            details={"kind": kind, **(details or {})}
        )


class CapturePermissionDeniedException(CaptureException):
    """Raised when the user denies microphone access."""

    def __init__(self):
        super().__init__(
            message="Microphone access denied. Please allow microphone access and try again.",
            kind="permission-denied"
        )


class CaptureUnavailableException(CaptureException):
    """Raised when the capture engine cannot be started."""

    def __init__(self, error: str):
        super().__init__(
            message=f"Speech recognition could not be started: {error}",
            kind="unavailable",
            details={"error": error}
        )


# =========================
# Provider Exceptions
# =========================

class ProviderException(EmiAgentException):
    """Base exception for remote provider errors (always absorbed by a fallback)."""

    def __init__(self, provider: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.provider = provider
        super().__init__(
            message=message,
            error_code="PROVIDER_ERROR",
            status_code=502,
            details={"provider": provider, **(details or {})}
        )


class ProviderTimeoutException(ProviderException):
    """Raised when a provider call exceeds its time budget."""

    def __init__(self, provider: str, timeout_seconds: float):
        super().__init__(
            provider,
            f"{provider} timed out after {timeout_seconds} seconds",
            details={"timeout_seconds": timeout_seconds}
        )


class ProviderUnavailableException(ProviderException):
    """Raised when a provider is not configured."""

    def __init__(self, provider: str):
        super().__init__(
            provider,
            f"{provider} is not configured",
            details={"error_type": "not_configured"}
        )


class SentimentException(ProviderException):
    """Raised when sentiment classification fails."""

    def __init__(self, error: str):
        super().__init__("sentiment", f"Sentiment classification failed: {error}")


class IntentServiceException(ProviderException):
    """Raised when the NLU intent service fails."""

    def __init__(self, error: str, status_code: Optional[int] = None):
        super().__init__(
            "nlu",
            f"Intent service error: {error}",
            details={"api_status_code": status_code}
        )


class LLMException(ProviderException):
    """Raised when Groq API returns an error."""

    def __init__(self, api_error: str, status_code: int = 500):
        super().__init__(
            "llm",
            f"LLM API error: {api_error}",
            details={"api_error": api_error, "api_status_code": status_code}
        )


class LLMEmptyResponseException(ProviderException):
    """Raised when the LLM returns no usable content."""

    def __init__(self):
        super().__init__("llm", "LLM returned an empty reply")


class TTSException(ProviderException):
    """Raised when remote speech synthesis fails."""

    def __init__(self, error: str):
        super().__init__("tts", f"Speech synthesis failed: {error}")


class PlaybackException(ProviderException):
    """Raised when the client fails to play synthesized audio."""

    def __init__(self, error: str):
        super().__init__("playback", f"Audio playback failed: {error}")


# =========================
# Session Exceptions
# =========================

class SessionException(EmiAgentException):
    """Base exception for session errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, status_code: int = 400):
        super().__init__(
            message=message,
            error_code="SESSION_ERROR",
            status_code=status_code,
            details=details
        )


class SessionNotFoundException(SessionException):
    """Raised when session is not found."""

    def __init__(self, session_id: str):
        super().__init__(
            message=f"Session '{session_id}' not found",
            details={"session_id": session_id},
            status_code=404
        )


class EmptyTranscriptException(SessionException):
    """Raised when a voice chat request carries no transcript."""

    def __init__(self):
        super().__init__(message="No transcript provided")


# =========================
# Client Exceptions
# =========================

class ClientException(EmiAgentException):
    """Base exception for client record errors."""

    def __init__(self, message: str, status_code: int = 400, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="CLIENT_ERROR",
            status_code=status_code,
            details=details
        )


class InvalidClientProfileException(ClientException):
    """Raised when client data is missing fields or malformed."""

    def __init__(self, errors: list):
        super().__init__(
            message="Invalid client data",
            status_code=422,
            details={"validation_errors": errors}
        )


class ClientNotFoundException(ClientException):
    """Raised when a client record is not found."""

    def __init__(self, client_id: str):
        super().__init__(
            message="Client not found",
            status_code=404,
            details={"client_id": client_id}
        )
