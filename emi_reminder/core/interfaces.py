"""
Collaborator contracts for the conversation core.
Concrete implementations live in emi_reminder.services and the WebSocket bridge.
"""

from typing import Any, Dict, Optional, Protocol

from emi_reminder.core.models import (
    AudioClip,
    ClientProfile,
    ConversationState,
    ConversationTurn,
    IntentResult,
    Sentiment,
)


class SpeechCaptureEngine(Protocol):
    """Speech recognizer. Fragments, `ended` and `error` events are pushed
    into ConversationOrchestrator.on_fragment/on_capture_ended/on_capture_error."""

    async def start(self) -> None: ...

    async def stop(self) -> None: ...


class SentimentClassifier(Protocol):
    async def classify(self, text: str) -> Sentiment: ...


class IntentService(Protocol):
    async def query(self, text: str, context: Dict[str, Any]) -> IntentResult: ...


class LLMResponder(Protocol):
    async def generate(
        self,
        text: str,
        profile: ClientProfile,
        intent_hint: Optional[str],
        prior_reply_hint: Optional[str],
        sentiment: Sentiment,
    ) -> str: ...


class RemoteSynthesizer(Protocol):
    async def synthesize(self, text: str, voice_id: Optional[str] = None) -> AudioClip: ...


class AudioPlayer(Protocol):
    """Plays a clip; returns when playback ends, raises when it fails."""

    async def play(self, clip: AudioClip) -> None: ...


class LocalSynthesizer(Protocol):
    """On-device speech; returns when speaking ends, raises when it fails."""

    async def speak(self, text: str) -> None: ...


class TranscriptArchive(Protocol):
    async def save(self, session_id: str, turn: ConversationTurn) -> None: ...


class ConversationEvents(Protocol):
    """UI sink for state, transcript and error updates."""

    async def on_state_changed(self, state: ConversationState) -> None: ...

    async def on_turn(self, turn: ConversationTurn) -> None: ...

    async def on_interim(self, text: str) -> None: ...

    async def on_error(self, message: str) -> None: ...

    async def on_error_cleared(self) -> None: ...


class NullConversationEvents:
    """Events sink that discards everything."""

    async def on_state_changed(self, state: ConversationState) -> None:
        pass

    async def on_turn(self, turn: ConversationTurn) -> None:
        pass

    async def on_interim(self, text: str) -> None:
        pass

    async def on_error(self, message: str) -> None:
        pass

    async def on_error_cleared(self) -> None:
        pass
