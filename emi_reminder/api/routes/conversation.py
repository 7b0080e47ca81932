"""
Conversation REST Endpoints.
Client records, text/voice chat turns and archived transcripts.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field

from emi_reminder.api.dependencies import resolve_client
from emi_reminder.config import get_settings
from emi_reminder.core.exceptions import EmptyTranscriptException, SessionNotFoundException
from emi_reminder.core.models import ClientProfile, ConversationTurn, Speaker

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter()


class ChatMessage(BaseModel):
    """Request model for a typed chat message."""
    model_config = ConfigDict(populate_by_name=True)

    message: str = ""
    client_data: Optional[Dict[str, Any]] = Field(default=None, alias="clientData")
    client_id: Optional[str] = Field(default=None, alias="clientId")
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class VoiceChatMessage(BaseModel):
    """Request model for a recognized speech transcript."""
    model_config = ConfigDict(populate_by_name=True)

    transcript: str = ""
    confidence: Optional[float] = None
    client_data: Optional[Dict[str, Any]] = Field(default=None, alias="clientData")
    client_id: Optional[str] = Field(default=None, alias="clientId")
    session_id: Optional[str] = Field(default=None, alias="sessionId")


# =========================
# Clients
# =========================

@router.post("/clients")
async def create_client(request: Request):
    """Store client data for a reminder conversation."""
    data = await request.json()
    profile = ClientProfile.from_dict(data)
    record = await request.app.state.client_store.add(profile)

    return {
        "success": True,
        "client": record.to_dict(),
        "message": "Client data stored successfully"
    }


@router.get("/clients")
async def list_clients(request: Request):
    records = await request.app.state.client_store.list()
    return {
        "success": True,
        "clients": [record.to_dict() for record in records],
        "count": len(records)
    }


@router.get("/clients/{client_id}")
async def get_client(request: Request, client_id: str):
    record = await request.app.state.client_store.get(client_id)
    return {"success": True, "client": record.to_dict()}


# =========================
# Chat
# =========================

async def _run_chat_turn(
    request: Request,
    text: str,
    client_data: Optional[Dict[str, Any]],
    client_id: Optional[str],
    session_id: Optional[str],
    channel: str
) -> Dict[str, Any]:
    """Resolve one turn outside the voice loop and archive it."""
    app = request.app
    start_time = time.time()

    profile, client_id = await resolve_client(app, client_data, client_id)
    session = await app.state.session_manager.get_or_create_session(profile, session_id, client_id)
    if not session.turns:
        await app.state.agent_logger.log_session_start(session.session_id, profile.name, channel)

    resolver = app.state.resolver
    sentiment, intent = await resolver.analyze(text, profile, session.session_id)
    resolution = await resolver.resolve_with_source(
        text,
        profile,
        sentiment,
        intent or session.last_intent,
        session.session_id
    )
    if intent is not None:
        session.last_intent = intent

    latency_ms = (time.time() - start_time) * 1000

    for turn in (
        ConversationTurn(speaker=Speaker.USER, text=text),
        ConversationTurn(speaker=Speaker.ASSISTANT, text=resolution.text),
    ):
        session.add_turn(turn)
        _archive_in_background(app, session.session_id, turn)

    await app.state.agent_logger.log_reply(
        session.session_id,
        resolution.text,
        resolution.source.value,
        resolution.sentiment.value,
        latency_ms
    )

    return {
        "success": True,
        "response": resolution.text,
        "source": resolution.source.value,
        "sentiment": resolution.sentiment.value,
        "intent": intent.intent_name if intent else None,
        "sessionId": session.session_id,
        "timestamp": datetime.now().isoformat(),
        "latencyMs": round(latency_ms, 2)
    }


def _archive_in_background(app, session_id: str, turn: ConversationTurn):
    async def save():
        try:
            await app.state.transcript_archive.save(session_id, turn)
        except Exception as e:
            logger.error(f"Failed to archive turn for {session_id}: {e}")

    task = asyncio.create_task(save())
    app.state.background_tasks.add(task)
    task.add_done_callback(app.state.background_tasks.discard)


@router.post("/chat")
async def chat(request: Request, message: ChatMessage):
    """
    Reply to a typed message.
    This goes through the same fallback chain as the voice loop.
    """
    if not message.message.strip():
        raise EmptyTranscriptException()

    return await _run_chat_turn(
        request,
        message.message.strip(),
        message.client_data,
        message.client_id,
        message.session_id,
        "chat"
    )


@router.post("/chat/voice")
async def voice_chat(request: Request, message: VoiceChatMessage):
    """Reply to a transcript produced by the browser's recognizer."""
    transcript = message.transcript.strip()
    if not transcript:
        raise EmptyTranscriptException()

    result = await _run_chat_turn(
        request,
        transcript,
        message.client_data,
        message.client_id,
        message.session_id,
        "voice"
    )
    result["transcript"] = transcript
    result["confidence"] = message.confidence
    return result


# =========================
# Transcripts
# =========================

@router.get("/conversations/{session_id}")
async def get_conversation(request: Request, session_id: str, limit: Optional[int] = None):
    """Archived transcript for a session."""
    history = await request.app.state.transcript_archive.get_history(session_id, n=limit)

    if not history:
        raise SessionNotFoundException(session_id)

    return {
        "success": True,
        "sessionId": session_id,
        "turns": [turn.to_dict() for turn in history],
        "count": len(history)
    }
