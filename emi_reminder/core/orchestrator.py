"""
Conversation Orchestrator for the EMI Reminder agent.
Turn-taking state machine: listen → resolve → speak → listen.
"""

import asyncio
import logging
import time
from typing import Awaitable, Dict, FrozenSet, Optional, Set

from emi_reminder.config import get_settings, CAPTURE_ERROR_ALIASES, CAPTURE_ERROR_MESSAGES
from emi_reminder.core.interfaces import (
    ConversationEvents,
    NullConversationEvents,
    SpeechCaptureEngine,
    TranscriptArchive,
)
from emi_reminder.core.models import (
    ConversationState,
    ConversationTurn,
    Speaker,
    Utterance,
)
from emi_reminder.core.resolver import ResponseResolver
from emi_reminder.core.responder import build_greeting
from emi_reminder.core.session import Session
from emi_reminder.core.transcript import TranscriptAccumulator
from emi_reminder.core.voice_channel import VoiceChannel
from emi_reminder.logging.agent_logger import AgentLogger

logger = logging.getLogger(__name__)
settings = get_settings()


# IDLE is additionally reachable from every state (stop / fatal error)
ALLOWED_TRANSITIONS: Dict[ConversationState, FrozenSet[ConversationState]] = {
    ConversationState.IDLE: frozenset({ConversationState.LISTENING, ConversationState.SPEAKING}),
    ConversationState.LISTENING: frozenset({ConversationState.PROCESSING}),
    ConversationState.PROCESSING: frozenset({ConversationState.SPEAKING}),
    ConversationState.SPEAKING: frozenset({ConversationState.LISTENING}),
}


def can_transition(current: ConversationState, target: ConversationState) -> bool:
    if target == ConversationState.IDLE:
        return current != ConversationState.IDLE
    return target in ALLOWED_TRANSITIONS[current]


class ConversationOrchestrator:
    """
    Coordinates capture, the transcript accumulator, the response resolver
    and the voice channel for one session.

    Invariants:
    - capture is held only while LISTENING (fragments that arrive during
      PROCESSING are buffered, never dispatched)
    - at most one utterance is being resolved or spoken at a time
    - a stop wins over any in-flight turn: its reply is not spoken
    """

    def __init__(
        self,
        session: Session,
        capture: SpeechCaptureEngine,
        resolver: ResponseResolver,
        voice: VoiceChannel,
        events: Optional[ConversationEvents] = None,
        archive: Optional[TranscriptArchive] = None,
        agent_logger: Optional[AgentLogger] = None,
        debounce_seconds: Optional[float] = None,
        restart_delay: Optional[float] = None,
        max_restarts: Optional[int] = None,
        resume_delay: Optional[float] = None,
        error_display_seconds: Optional[float] = None
    ):
        self.session = session
        self.capture = capture
        self.resolver = resolver
        self.voice = voice
        self.events = events or NullConversationEvents()
        self.archive = archive
        self.agent_logger = agent_logger

        self.restart_delay = settings.CAPTURE_RESTART_DELAY_SECONDS if restart_delay is None else restart_delay
        self.max_restarts = settings.MAX_CAPTURE_RESTARTS if max_restarts is None else max_restarts
        self.resume_delay = settings.RESUME_LISTENING_DELAY_SECONDS if resume_delay is None else resume_delay
        self.error_display_seconds = (
            settings.ERROR_DISPLAY_SECONDS if error_display_seconds is None else error_display_seconds
        )

        self.accumulator = TranscriptAccumulator(
            on_utterance=self._on_utterance,
            on_interim=self._on_interim,
            debounce_seconds=debounce_seconds
        )

        self._state = ConversationState.IDLE
        self._active = False
        self._stop_requested = False
        self._permission_blocked = False
        self._restart_attempts = 0
        self._generation = 0

        self._restart_task: Optional[asyncio.Task] = None
        self._turn_task: Optional[asyncio.Task] = None
        self._playback: Optional[asyncio.Task] = None
        self._error_clear_handle: Optional[asyncio.TimerHandle] = None
        self._background: Set[asyncio.Task] = set()

    # =========================
    # State
    # =========================

    @property
    def state(self) -> ConversationState:
        return self._state

    @property
    def session_id(self) -> str:
        return self.session.session_id

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def restart_attempts(self) -> int:
        return self._restart_attempts

    def _transition(self, target: ConversationState) -> bool:
        if not can_transition(self._state, target):
            logger.warning(
                f"[{self.session_id}] Rejected transition {self._state.value} → {target.value}"
            )
            return False

        logger.info(f"[{self.session_id}] {self._state.value} → {target.value}")
        self._state = target
        self._spawn(self.events.on_state_changed(target))
        return True

    # =========================
    # Commands
    # =========================

    async def start_listening(self) -> bool:
        """IDLE → LISTENING. Returns False when a conversation is already running."""
        if self._state != ConversationState.IDLE:
            logger.debug(f"[{self.session_id}] start_listening ignored in {self._state.value}")
            return False

        await self._wait_for_playback()
        if self._state != ConversationState.IDLE:
            return False

        self._begin()
        self._transition(ConversationState.LISTENING)
        await self._start_capture()
        return True

    async def start_conversation(self, greeting: Optional[str] = None) -> bool:
        """Speak the reminder greeting, then listen for the client's reply."""
        if self._state != ConversationState.IDLE:
            logger.debug(f"[{self.session_id}] start_conversation ignored in {self._state.value}")
            return False

        await self._wait_for_playback()
        if self._state != ConversationState.IDLE:
            return False

        self._begin()
        generation = self._generation
        text = greeting or build_greeting(self.session.profile)

        self._transition(ConversationState.SPEAKING)
        await self._append_turn(Speaker.ASSISTANT, text)
        await self._speak(text)
        await self._finish_speaking(generation)
        return True

    async def stop(self):
        """Force IDLE from any state and disable automatic restarts."""
        self._stop_requested = True
        self._active = False
        self._generation += 1

        if self._restart_task is not None and self._restart_task is not asyncio.current_task():
            self._restart_task.cancel()
        self._restart_task = None
        self.accumulator.reset()

        if self._state == ConversationState.IDLE:
            return

        self._transition(ConversationState.IDLE)

        try:
            await self.capture.stop()
        except Exception as e:
            logger.warning(f"[{self.session_id}] Failed to stop capture: {e}")

        if self.agent_logger is not None:
            await self.agent_logger.log_system_event("Conversation stopped", {"session": self.session_id})

    async def close(self):
        """Stop and wait for background work to settle."""
        await self.stop()
        if self._error_clear_handle is not None:
            self._error_clear_handle.cancel()
            self._error_clear_handle = None
        if self._turn_task is not None and not self._turn_task.done():
            await asyncio.gather(self._turn_task, return_exceptions=True)
        await self._wait_for_playback()
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _begin(self):
        self._active = True
        self._stop_requested = False
        self._permission_blocked = False
        self._restart_attempts = 0
        self._generation += 1
        self.accumulator.reset()

    # =========================
    # Capture events
    # =========================

    async def on_fragment(self, fragment: Utterance):
        """Recognizer fragment (interim or final)."""
        if self._state not in (ConversationState.LISTENING, ConversationState.PROCESSING):
            logger.debug(f"[{self.session_id}] Fragment dropped in {self._state.value}")
            return

        self._restart_attempts = 0
        self.accumulator.on_fragment(fragment)

    async def on_capture_ended(self):
        """The capture engine stopped; restart it if we still expect to listen."""
        if (
            self._state != ConversationState.LISTENING
            or not self._active
            or self._stop_requested
            or self._permission_blocked
        ):
            return

        if self._restart_attempts >= self.max_restarts:
            logger.error(f"[{self.session_id}] Capture restart limit ({self.max_restarts}) reached")
            await self._report_error("Speech recognition keeps stopping. Please start the conversation again.")
            await self.stop()
            return

        self._restart_attempts += 1
        self._restart_task = asyncio.create_task(self._restart_capture(self._generation))

    async def on_capture_error(self, kind: str, message: Optional[str] = None):
        """Recognizer error; `no-speech` is ignored, everything else is surfaced."""
        kind = CAPTURE_ERROR_ALIASES.get(kind, kind)

        if kind == "no-speech":
            logger.debug(f"[{self.session_id}] No speech detected, continuing")
            return

        text = CAPTURE_ERROR_MESSAGES.get(kind) or message or f"Speech recognition error: {kind}"
        logger.warning(f"[{self.session_id}] Capture error '{kind}': {message or text}")

        if self.agent_logger is not None:
            await self.agent_logger.log_capture_error(self.session_id, kind, message or text)

        await self._report_error(text)

        if kind == "permission-denied":
            self._permission_blocked = True
            await self.stop()

    async def _restart_capture(self, generation: int):
        await asyncio.sleep(self.restart_delay)
        if generation != self._generation or self._state != ConversationState.LISTENING:
            return
        logger.info(f"[{self.session_id}] Restarting capture (attempt {self._restart_attempts})")
        await self._start_capture()

    async def _start_capture(self):
        try:
            await self.capture.start()
        except Exception as e:
            logger.error(f"[{self.session_id}] Failed to start capture: {e}")
            await self._report_error(f"Speech recognition could not be started: {e}")
            await self.stop()

    # =========================
    # Turn handling
    # =========================

    def _on_interim(self, text: str):
        self._spawn(self.events.on_interim(text))

    def _on_utterance(self, utterance: Utterance):
        """Accumulator emission → PROCESSING and a turn task."""
        if not self._transition(ConversationState.PROCESSING):
            self.accumulator.reset()
            return

        self._turn_task = asyncio.create_task(self._run_turn(utterance, self._generation))

    async def _run_turn(self, utterance: Utterance, generation: int):
        try:
            await self._resolve_and_speak(utterance, generation)
        except Exception as e:
            logger.exception(f"[{self.session_id}] Turn failed: {e}")
            if generation != self._generation:
                return
            await self._report_error("Something went wrong while replying. Please start the conversation again.")
            await self.stop()

    async def _resolve_and_speak(self, utterance: Utterance, generation: int):
        start_time = time.time()
        profile = self.session.profile

        await self._append_turn(Speaker.USER, utterance.text)
        if self.agent_logger is not None:
            await self.agent_logger.log_user_utterance(self.session_id, utterance.text, utterance.confidence)

        sentiment, intent = await self.resolver.analyze(utterance.text, profile, self.session_id)
        resolution = await self.resolver.resolve_with_source(
            utterance.text,
            profile,
            sentiment,
            intent or self.session.last_intent,
            self.session_id
        )
        if intent is not None:
            self.session.last_intent = intent

        if generation != self._generation or self._state != ConversationState.PROCESSING:
            logger.info(f"[{self.session_id}] Conversation stopped during processing; reply dropped")
            return

        await self._append_turn(Speaker.ASSISTANT, resolution.text)
        if self.agent_logger is not None:
            await self.agent_logger.log_reply(
                self.session_id,
                resolution.text,
                resolution.source.value,
                resolution.sentiment.value,
                (time.time() - start_time) * 1000
            )

        self._transition(ConversationState.SPEAKING)
        await self._speak(resolution.text)
        await self._finish_speaking(generation)

    async def _speak(self, text: str):
        """Play `text`; the playback task outlives a stop() so restarts can wait on it."""
        self._playback = asyncio.ensure_future(self.voice.speak(text))
        return await self._playback

    async def _wait_for_playback(self):
        playback = self._playback
        if playback is None or playback.done():
            return
        logger.info(f"[{self.session_id}] Waiting for the previous reply to finish playing")
        await asyncio.gather(playback, return_exceptions=True)

    async def _finish_speaking(self, generation: int):
        """Playback ended: resume listening if the session is still active."""
        if generation != self._generation or self._state != ConversationState.SPEAKING:
            return

        if not self._active:
            self._transition(ConversationState.IDLE)
            return

        if self.resume_delay > 0:
            await asyncio.sleep(self.resume_delay)
            if generation != self._generation or self._state != ConversationState.SPEAKING:
                return

        self._restart_attempts = 0
        self._transition(ConversationState.LISTENING)
        self.accumulator.release()
        await self._start_capture()

    async def _append_turn(self, speaker: Speaker, text: str):
        turn = ConversationTurn(speaker=speaker, text=text)
        self.session.add_turn(turn)
        await self.events.on_turn(turn)
        if self.archive is not None:
            self._spawn(self._archive_turn(turn))

    async def _archive_turn(self, turn: ConversationTurn):
        try:
            await self.archive.save(self.session_id, turn)
        except Exception as e:
            logger.error(f"[{self.session_id}] Failed to archive turn: {e}")

    # =========================
    # Errors and background work
    # =========================

    async def _report_error(self, message: str):
        """Show a transient error that clears itself after a fixed duration."""
        await self.events.on_error(message)

        if self._error_clear_handle is not None:
            self._error_clear_handle.cancel()
        self._error_clear_handle = asyncio.get_running_loop().call_later(
            self.error_display_seconds,
            self._clear_error
        )

    def _clear_error(self):
        self._error_clear_handle = None
        self._spawn(self.events.on_error_cleared())

    def _spawn(self, coro: Awaitable) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task):
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"[{self.session_id}] Background task failed: {task.exception()}")
