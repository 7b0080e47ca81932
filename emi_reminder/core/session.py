"""
Session Management for the EMI Reminder agent.
One session per client conversation: the profile, the append-only turn log
and the last NLU result.
"""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from emi_reminder.config import get_settings
from emi_reminder.core.models import ClientProfile, ConversationTurn, IntentResult

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class Session:
    session_id: str
    profile: ClientProfile
    client_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    last_activity: datetime = field(default_factory=datetime.now)

    # Passed to the next turn as the prior-intent hint
    last_intent: Optional[IntentResult] = None

    _turns: List[ConversationTurn] = field(default_factory=list, init=False, repr=False)

    @property
    def turns(self) -> Tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    def add_turn(self, turn: ConversationTurn):
        """Append a turn; the log is never trimmed or rewritten."""
        self._turns.append(turn)
        self.touch()

    def touch(self):
        self.last_activity = datetime.now()

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        idle = (now or datetime.now()) - self.last_activity
        return idle > timedelta(minutes=settings.SESSION_TIMEOUT_MINUTES)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "clientId": self.client_id,
            "client": self.profile.to_dict(),
            "createdAt": self.created_at.isoformat(),
            "lastActivity": self.last_activity.isoformat(),
            "turnCount": len(self._turns),
        }


class SessionManager:
    """
    In-memory session registry.

    Sessions are kept in least-recently-used order; when `max_sessions` is
    reached the least recently used one is evicted. Idle sessions expire after
    SESSION_TIMEOUT_MINUTES and are purged by a background sweep.
    """

    def __init__(self, max_sessions: Optional[int] = None, sweep_interval: float = 60.0):
        self._sessions: "OrderedDict[str, Session]" = OrderedDict()
        self._lock = asyncio.Lock()
        self._max_sessions = max_sessions or settings.MAX_SESSIONS
        self._sweep_interval = sweep_interval
        self._sweeper: Optional[asyncio.Task] = None

    async def start(self):
        self._sweeper = asyncio.create_task(self._sweep_forever())
        logger.info(f"Session manager started (max {self._max_sessions} sessions)")

    async def stop(self):
        if self._sweeper is not None:
            self._sweeper.cancel()
            await asyncio.gather(self._sweeper, return_exceptions=True)
            self._sweeper = None
        logger.info("Session manager stopped")

    async def create_session(
        self,
        profile: ClientProfile,
        session_id: Optional[str] = None,
        client_id: Optional[str] = None
    ) -> Session:
        session = Session(session_id=session_id or str(uuid4()), profile=profile, client_id=client_id)

        async with self._lock:
            # Re-creating an existing id replaces it and needs no free slot
            while session.session_id not in self._sessions and len(self._sessions) >= self._max_sessions:
                evicted_id, _ = self._sessions.popitem(last=False)
                logger.info(f"Evicted least recently used session: {evicted_id}")

            self._sessions[session.session_id] = session
            self._sessions.move_to_end(session.session_id)

        logger.info(f"Created session {session.session_id} for {profile.name}")
        return session

    async def get_session(self, session_id: str) -> Optional[Session]:
        """Live session by id; expired sessions are dropped on access."""
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            if session.is_expired():
                del self._sessions[session_id]
                logger.info(f"Session {session_id} expired")
                return None
            self._sessions.move_to_end(session_id)
            return session

    async def get_or_create_session(
        self,
        profile: ClientProfile,
        session_id: Optional[str] = None,
        client_id: Optional[str] = None
    ) -> Session:
        """
        Reuse the session when it belongs to the same client profile.
        A different profile under the same id starts a fresh log.
        """
        if session_id:
            session = await self.get_session(session_id)
            if session is not None and session.profile == profile:
                session.touch()
                return session

        return await self.create_session(profile, session_id, client_id)

    async def delete_session(self, session_id: str) -> bool:
        async with self._lock:
            return self._sessions.pop(session_id, None) is not None

    async def get_active_session_count(self) -> int:
        async with self._lock:
            now = datetime.now()
            return sum(not s.is_expired(now) for s in self._sessions.values())

    async def purge_expired(self) -> int:
        async with self._lock:
            now = datetime.now()
            expired = [sid for sid, s in self._sessions.items() if s.is_expired(now)]
            for sid in expired:
                del self._sessions[sid]

        if expired:
            logger.info(f"Purged {len(expired)} expired sessions")
        return len(expired)

    async def _sweep_forever(self):
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                await self.purge_expired()
            except Exception as e:
                logger.error(f"Session sweep failed: {e}")
