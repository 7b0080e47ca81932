"""
Text-to-Speech Service using Edge TTS.
Remote synthesis tier of the voice channel; the browser's speech
synthesizer is the local fallback.
"""

import logging
import time
from typing import Optional

import edge_tts

from emi_reminder.config import get_settings
from emi_reminder.core.exceptions import TTSException
from emi_reminder.core.models import AudioClip

logger = logging.getLogger(__name__)
settings = get_settings()


class TTSService:
    """
    Remote speech synthesis via edge-tts neural voices.
    Returns MP3 audio ready to be shipped to the browser as a data URL.
    """

    def __init__(self, default_voice: Optional[str] = None):
        self.default_voice = default_voice or settings.TTS_VOICE_ID
        self._is_initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    async def initialize(self):
        self._is_initialized = True
        logger.info(f"TTS service initialized with voice: {self.default_voice}")

    async def synthesize(self, text: str, voice_id: Optional[str] = None) -> AudioClip:
        """
        Synthesize speech from text.

        Args:
            text: Text to synthesize
            voice_id: edge-tts voice name

        Returns:
            AudioClip with MP3 bytes
        """
        if not text.strip():
            raise TTSException("empty text")

        voice = voice_id or self.default_voice
        start_time = time.time()

        try:
            communicate = edge_tts.Communicate(text, voice)
            audio_data = b''

            async for chunk in communicate.stream():
                if chunk["type"] == "audio":
                    audio_data += chunk["data"]

        except Exception as e:
            logger.error(f"edge-tts error: {e}")
            raise TTSException(str(e))

        if not audio_data:
            raise TTSException("no audio received")

        logger.debug(f"Synthesized {len(audio_data)} bytes in {(time.time() - start_time) * 1000:.0f}ms")
        return AudioClip(data=audio_data, mime_type="audio/mpeg", voice_id=voice)

    async def cleanup(self):
        self._is_initialized = False
        logger.info("TTS service cleaned up")
