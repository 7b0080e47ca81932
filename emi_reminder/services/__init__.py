"""Services module initialization."""

from emi_reminder.services.llm import LLMService
from emi_reminder.services.sentiment import SentimentService
from emi_reminder.services.nlu import IntentServiceClient
from emi_reminder.services.tts import TTSService
from emi_reminder.services.memory import ClientStore, TranscriptArchiveService

__all__ = [
    "LLMService",
    "SentimentService",
    "IntentServiceClient",
    "TTSService",
    "ClientStore",
    "TranscriptArchiveService"
]
