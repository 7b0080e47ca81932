"""
In-memory stores.
Client records and the transcript archive live only for the process lifetime.
"""

import asyncio
import logging
from collections import OrderedDict
from typing import Dict, List, Optional
from uuid import uuid4

from emi_reminder.config import get_settings
from emi_reminder.core.exceptions import ClientNotFoundException
from emi_reminder.core.models import ClientProfile, ClientRecord, ConversationTurn

logger = logging.getLogger(__name__)
settings = get_settings()


class ClientStore:
    """Write-once client records keyed by generated id."""

    def __init__(self):
        self._clients: Dict[str, ClientRecord] = {}
        self._lock = asyncio.Lock()

    async def add(self, profile: ClientProfile) -> ClientRecord:
        async with self._lock:
            record = ClientRecord(id=str(uuid4()), profile=profile)
            self._clients[record.id] = record
            logger.info(f"Stored client {record.id} ({profile.name})")
            return record

    async def get(self, client_id: str) -> ClientRecord:
        record = self._clients.get(client_id)
        if record is None:
            raise ClientNotFoundException(client_id)
        return record

    async def list(self) -> List[ClientRecord]:
        return list(self._clients.values())

    def __len__(self) -> int:
        return len(self._clients)


class TranscriptArchiveService:
    """
    Append-only transcript archive.
    Turns are grouped by session and never modified once stored. Holds at
    most `max_conversations` sessions; the one written to least recently is
    dropped first.
    """

    def __init__(self, max_conversations: Optional[int] = None):
        self._conversations: "OrderedDict[str, List[ConversationTurn]]" = OrderedDict()
        self._max_conversations = max_conversations or settings.MAX_ARCHIVED_CONVERSATIONS

    async def save(self, session_id: str, turn: ConversationTurn) -> None:
        if session_id not in self._conversations:
            while len(self._conversations) >= self._max_conversations:
                dropped, _ = self._conversations.popitem(last=False)
                logger.info(f"Archive full, dropped transcript for session {dropped}")
            self._conversations[session_id] = []

        self._conversations[session_id].append(turn)
        self._conversations.move_to_end(session_id)

    async def get_history(
        self,
        session_id: str,
        n: Optional[int] = None
    ) -> List[ConversationTurn]:
        history = self._conversations.get(session_id, [])

        if n is not None:
            return history[-n:] if n > 0 else []

        return list(history)

    @property
    def session_count(self) -> int:
        return len(self._conversations)
