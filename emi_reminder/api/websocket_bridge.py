"""
Browser bridge over WebSocket.
The browser owns the microphone, the speech recognizer, the audio element and
the built-in speech synthesizer; this bridge exposes them to the orchestrator
as capture engine, audio player, local synthesizer and UI event sink.

Server → client messages:
    {"type": "capture.start"} / {"type": "capture.stop"}
    {"type": "audio.play", "id", "audioUrl"}
    {"type": "speech.local", "id", "text"}
    {"type": "state", "state"}
    {"type": "turn", "speaker", "text", "timestamp"}
    {"type": "interim", "text"}
    {"type": "error", "message"} / {"type": "error.cleared"}

Client → server acknowledgements:
    {"type": "playback.ended" | "playback.error", "id", "message"?}
    {"type": "speech.ended" | "speech.error", "id", "message"?}
"""

import asyncio
import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import WebSocket

from emi_reminder.core.exceptions import PlaybackException
from emi_reminder.core.models import AudioClip, ConversationState, ConversationTurn

logger = logging.getLogger(__name__)


class BrowserBridge:
    """Sends commands to the browser and tracks outstanding acknowledgements."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self._send_lock = asyncio.Lock()
        self._pending: Dict[str, asyncio.Future] = {}
        self._closed = False

    async def send(self, message: Dict[str, Any]):
        if self._closed:
            raise ConnectionError("websocket closed")
        async with self._send_lock:
            await self.websocket.send_json(message)

    async def notify(self, message: Dict[str, Any]):
        """Best-effort UI update."""
        try:
            await self.send(message)
        except Exception as e:
            logger.debug(f"Dropped UI message {message.get('type')}: {e}")

    async def request(self, message: Dict[str, Any]) -> None:
        """Send a command and wait for its ended/error acknowledgement."""
        request_id = str(uuid4())
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        try:
            await self.send({**message, "id": request_id})
            await future
        finally:
            self._pending.pop(request_id, None)

    def acknowledge(self, request_id: Optional[str], error: Optional[str] = None):
        future = self._pending.get(request_id or "")
        if future is None or future.done():
            logger.debug(f"Ignoring acknowledgement for unknown request {request_id}")
            return
        if error:
            future.set_exception(PlaybackException(error))
        else:
            future.set_result(None)

    def close(self, reason: str = "client disconnected"):
        self._closed = True
        for future in self._pending.values():
            if not future.done():
                future.set_exception(PlaybackException(reason))
        self._pending.clear()


class BrowserCaptureEngine:
    """Speech recognizer running in the browser."""

    def __init__(self, bridge: BrowserBridge):
        self.bridge = bridge

    async def start(self) -> None:
        await self.bridge.send({"type": "capture.start"})

    async def stop(self) -> None:
        await self.bridge.send({"type": "capture.stop"})


class BrowserAudioPlayer:
    """Plays synthesized audio through the browser's audio element."""

    def __init__(self, bridge: BrowserBridge):
        self.bridge = bridge

    async def play(self, clip: AudioClip) -> None:
        try:
            await self.bridge.request({"type": "audio.play", "audioUrl": clip.to_data_url()})
        except ConnectionError as e:
            raise PlaybackException(str(e))


class BrowserSpeechSynthesizer:
    """The browser's built-in speech synthesis."""

    def __init__(self, bridge: BrowserBridge):
        self.bridge = bridge

    async def speak(self, text: str) -> None:
        try:
            await self.bridge.request({"type": "speech.local", "text": text})
        except ConnectionError as e:
            raise PlaybackException(str(e))


class BrowserConversationEvents:
    """Pushes state, transcript and error updates to the page."""

    def __init__(self, bridge: BrowserBridge):
        self.bridge = bridge

    async def on_state_changed(self, state: ConversationState) -> None:
        await self.bridge.notify({"type": "state", "state": state.value})

    async def on_turn(self, turn: ConversationTurn) -> None:
        await self.bridge.notify({"type": "turn", **turn.to_dict()})

    async def on_interim(self, text: str) -> None:
        await self.bridge.notify({"type": "interim", "text": text})

    async def on_error(self, message: str) -> None:
        await self.bridge.notify({"type": "error", "message": message})

    async def on_error_cleared(self) -> None:
        await self.bridge.notify({"type": "error.cleared"})
