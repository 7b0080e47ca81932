"""
Voice Endpoints.
WebSocket turn-taking sessions plus speech synthesis and recognition helpers.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from emi_reminder.api.dependencies import resolve_client
from emi_reminder.api.websocket_bridge import (
    BrowserAudioPlayer,
    BrowserBridge,
    BrowserCaptureEngine,
    BrowserConversationEvents,
    BrowserSpeechSynthesizer,
)
from emi_reminder.config import get_settings
from emi_reminder.core.exceptions import EmiAgentException, EmptyTranscriptException
from emi_reminder.core.models import Utterance
from emi_reminder.core.orchestrator import ConversationOrchestrator
from emi_reminder.core.voice_channel import VoiceChannel

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter()


class SynthesisRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = ""
    voice_id: Optional[str] = Field(default=None, alias="voiceId")


class FragmentMessage(BaseModel):
    """Recognizer fragment sent over the voice WebSocket."""
    model_config = ConfigDict(populate_by_name=True)

    text: str = ""
    is_final: bool = Field(default=False, alias="isFinal")
    confidence: Optional[float] = None


class SpeechDebugRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transcript: str = ""
    confidence: Optional[float] = None
    is_final: Optional[bool] = Field(default=None, alias="isFinal")


@router.websocket("/voice/session")
async def voice_session(websocket: WebSocket):
    """
    WebSocket endpoint for a full turn-taking reminder conversation.

    Protocol:
    1. Client connects and sends {"type": "start", "clientData" | "clientId", "sessionId"?, "greet"?}
    2. Server replies {"type": "session", "sessionId"} and speaks the greeting
    3. Client streams recognizer events:
        - {"type": "fragment", "text", "isFinal", "confidence"}
        - {"type": "capture.ended"}
        - {"type": "capture.error", "error", "message"?}
    4. Client acknowledges audio with playback.* / speech.* messages
    5. {"type": "stop"} ends listening, {"type": "listen"} resumes it

    See websocket_bridge for the server → client messages.
    """
    await websocket.accept()

    app = websocket.app
    bridge = BrowserBridge(websocket)
    orchestrator: Optional[ConversationOrchestrator] = None
    tasks = set()

    def spawn(coro):
        task = asyncio.create_task(coro)
        tasks.add(task)
        task.add_done_callback(tasks.discard)

    try:
        while True:
            data = await websocket.receive_json()
            msg_type = data.get("type")

            if msg_type == "start":
                if orchestrator is not None:
                    await bridge.notify({"type": "error", "message": "Conversation already started"})
                    continue

                try:
                    orchestrator = await _create_orchestrator(app, bridge, data)
                except EmiAgentException as e:
                    await bridge.notify({"type": "error", "message": e.message, "details": e.details})
                    continue

                await bridge.send({"type": "session", "sessionId": orchestrator.session_id})
                if data.get("greet", True):
                    spawn(orchestrator.start_conversation())
                else:
                    spawn(orchestrator.start_listening())

            elif msg_type == "ping":
                await bridge.notify({"type": "pong"})

            elif orchestrator is None:
                await bridge.notify({"type": "error", "message": "Send a start message first"})

            elif msg_type == "fragment":
                try:
                    fragment = FragmentMessage.model_validate(data)
                except ValidationError as e:
                    fields = [".".join(str(part) for part in err["loc"]) for err in e.errors()]
                    await bridge.notify({"type": "error", "message": "Invalid fragment", "details": {"fields": fields}})
                    continue

                await orchestrator.on_fragment(Utterance(
                    text=fragment.text,
                    is_final=fragment.is_final,
                    confidence=1.0 if fragment.confidence is None else fragment.confidence
                ))

            elif msg_type == "capture.ended":
                await orchestrator.on_capture_ended()

            elif msg_type == "capture.error":
                spawn(orchestrator.on_capture_error(str(data.get("error", "unknown")), data.get("message")))

            elif msg_type in ("playback.ended", "speech.ended"):
                bridge.acknowledge(data.get("id"))

            elif msg_type in ("playback.error", "speech.error"):
                bridge.acknowledge(data.get("id"), data.get("message") or "client reported an error")

            elif msg_type == "stop":
                await orchestrator.stop()

            elif msg_type == "listen":
                spawn(orchestrator.start_listening())

            else:
                logger.warning(f"Unknown voice message type: {msg_type}")

    except WebSocketDisconnect:
        logger.info("Voice WebSocket disconnected")
    except ValueError as e:
        logger.warning(f"Invalid voice message: {e}")
    finally:
        bridge.close()
        if orchestrator is not None:
            await orchestrator.close()
            await app.state.agent_logger.log_system_event(
                "Voice session closed",
                {"session": orchestrator.session_id, "turns": len(orchestrator.session.turns)}
            )
        for task in list(tasks):
            task.cancel()


async def _create_orchestrator(app, bridge: BrowserBridge, data: Dict[str, Any]) -> ConversationOrchestrator:
    profile, client_id = await resolve_client(app, data.get("clientData"), data.get("clientId"))
    session = await app.state.session_manager.create_session(profile, data.get("sessionId"), client_id)

    capture = BrowserCaptureEngine(bridge)
    voice = VoiceChannel(
        capture=capture,
        local_synthesizer=BrowserSpeechSynthesizer(bridge),
        remote_synthesizer=app.state.tts_service,
        player=BrowserAudioPlayer(bridge)
    )

    await app.state.agent_logger.log_session_start(session.session_id, profile.name, "voice")

    return ConversationOrchestrator(
        session=session,
        capture=capture,
        resolver=app.state.resolver,
        voice=voice,
        events=BrowserConversationEvents(bridge),
        archive=app.state.transcript_archive,
        agent_logger=app.state.agent_logger
    )


@router.post("/tts/synthesize")
async def synthesize(request: Request, body: SynthesisRequest):
    """Synthesize speech with the remote voice and return it as a data URL."""
    if not body.text.strip():
        raise EmptyTranscriptException()

    voice_id = body.voice_id or settings.TTS_VOICE_ID
    clip = await request.app.state.tts_service.synthesize(body.text, voice_id)

    return {
        "success": True,
        "audioUrl": clip.to_data_url(),
        "text": body.text,
        "voiceId": voice_id,
        "outputFormat": clip.mime_type
    }


@router.post("/speech/debug")
async def speech_debug(body: SpeechDebugRequest):
    """Echo what the browser recognizer produced."""
    return {
        "success": True,
        "received": {
            "transcript": body.transcript,
            "confidence": body.confidence,
            "isFinal": body.is_final,
            "length": len(body.transcript)
        }
    }
