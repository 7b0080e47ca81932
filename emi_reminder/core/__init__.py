"""Core module initialization."""

from emi_reminder.core.exceptions import (
    EmiAgentException,
    CaptureException,
    ProviderException,
    SessionException,
    ClientException
)
from emi_reminder.core.models import (
    ClientProfile,
    ConversationState,
    ConversationTurn,
    Sentiment,
    Utterance
)
from emi_reminder.core.transcript import TranscriptAccumulator
from emi_reminder.core.responder import RuleBasedResponder
from emi_reminder.core.resolver import ResponseResolver
from emi_reminder.core.voice_channel import VoiceChannel
from emi_reminder.core.orchestrator import ConversationOrchestrator
from emi_reminder.core.session import SessionManager, Session

__all__ = [
    "EmiAgentException",
    "CaptureException",
    "ProviderException",
    "SessionException",
    "ClientException",
    "ClientProfile",
    "ConversationState",
    "ConversationTurn",
    "Sentiment",
    "Utterance",
    "TranscriptAccumulator",
    "RuleBasedResponder",
    "ResponseResolver",
    "VoiceChannel",
    "ConversationOrchestrator",
    "SessionManager",
    "Session"
]
