"""
Conversation data model.
Value types shared by the transcript accumulator, resolver, voice channel
and orchestrator.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional
import base64

from emi_reminder.core.exceptions import InvalidClientProfileException


class ConversationState(str, Enum):
    """Turn-taking state of a conversation session."""
    IDLE = "idle"
    LISTENING = "listening"
    PROCESSING = "processing"
    SPEAKING = "speaking"


class Speaker(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Sentiment(str, Enum):
    """Coarse polarity of an utterance."""
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"

    @classmethod
    def parse(cls, label: Optional[str]) -> "Sentiment":
        """Map a provider label ("NEGATIVE", "Mixed", ...) onto a polarity."""
        if not label:
            return cls.NEUTRAL
        normalized = str(label).strip().strip(".").lower()
        for member in cls:
            if normalized == member.value:
                return member
        return cls.NEUTRAL


class ReplySource(str, Enum):
    """Fallback tier that produced a reply."""
    LLM = "llm"
    NLU = "nlu"
    RULES = "rules"
    LAST_RESORT = "last_resort"


class SpeechPath(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"
    FAILED = "failed"


@dataclass(frozen=True)
class Utterance:
    """One recognized span of speech (a fragment or a dispatched utterance)."""
    text: str
    is_final: bool = False
    confidence: float = 1.0


@dataclass(frozen=True)
class ClientProfile:
    """
    Borrower details supplied once per session.
    Accepts snake_case keys or the web client's camelCase keys.
    """
    name: str
    mobile: str
    total_outstanding: float
    installment_amount: float
    due_date: date

    _ALIASES = {
        "total_outstanding": ("total_outstanding", "totalOutstanding", "totalDue"),
        "installment_amount": ("installment_amount", "installmentAmount", "emiAmount"),
        "due_date": ("due_date", "dueDate"),
    }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ClientProfile":
        if not isinstance(data, dict):
            raise InvalidClientProfileException(["client data must be an object"])

        errors = []

        def pick(key: str) -> Any:
            for alias in cls._ALIASES.get(key, (key,)):
                if data.get(alias) not in (None, ""):
                    return data[alias]
            return None

        name = str(pick("name") or "").strip()
        if not name:
            errors.append("name is required")

        mobile = str(pick("mobile") or "").strip()

        amounts = {}
        for key in ("total_outstanding", "installment_amount"):
            raw = pick(key)
            try:
                amounts[key] = float(raw)
            except (TypeError, ValueError):
                errors.append(f"{key} must be a number")

        due_date = None
        raw_due = pick("due_date")
        try:
            due_date = _parse_date(raw_due)
        except (TypeError, ValueError):
            errors.append("due_date must be an ISO date")

        if errors:
            raise InvalidClientProfileException(errors)

        return cls(
            name=name,
            mobile=mobile,
            total_outstanding=amounts["total_outstanding"],
            installment_amount=amounts["installment_amount"],
            due_date=due_date,
        )

    def days_until_due(self, today: Optional[date] = None) -> int:
        today = today or date.today()
        return (self.due_date - today).days

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "mobile": self.mobile,
            "totalDue": self.total_outstanding,
            "emiAmount": self.installment_amount,
            "dueDate": self.due_date.isoformat(),
        }


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise TypeError(f"unsupported date value: {value!r}")
    # "2024-06-05" or "2024-06-05T00:00:00.000Z"
    return date.fromisoformat(value.strip()[:10])


@dataclass(frozen=True)
class ConversationTurn:
    """Single turn in the conversation log."""
    speaker: Speaker
    text: str
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "speaker": self.speaker.value,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class IntentResult:
    """Reply from the NLU intent service."""
    intent_name: Optional[str] = None
    reply_text: Optional[str] = None


@dataclass(frozen=True)
class ReplyResolution:
    """A resolved reply and the tier that produced it."""
    text: str
    source: ReplySource
    sentiment: Sentiment = Sentiment.NEUTRAL


@dataclass(frozen=True)
class AudioClip:
    """Playable audio produced by the remote synthesizer."""
    data: bytes
    mime_type: str = "audio/mpeg"
    voice_id: Optional[str] = None

    def to_data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode()
        return f"data:{self.mime_type};base64,{encoded}"


@dataclass(frozen=True)
class SpeechOutcome:
    """Terminal result of one VoiceChannel.speak() call."""
    path: SpeechPath
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.path != SpeechPath.FAILED


@dataclass(frozen=True)
class ClientRecord:
    """A stored client profile."""
    id: str
    profile: ClientProfile
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            **self.profile.to_dict(),
            "createdAt": self.created_at.isoformat(),
        }
