"""
Voice output channel.
Speaks a reply through the remote synthesizer, falling back to the local one.
"""

import asyncio
import logging
from typing import Callable, Optional

from emi_reminder.config import get_settings
from emi_reminder.core.exceptions import (
    PlaybackException,
    ProviderTimeoutException,
    TTSException,
)
from emi_reminder.core.interfaces import (
    AudioPlayer,
    LocalSynthesizer,
    RemoteSynthesizer,
    SpeechCaptureEngine,
)
from emi_reminder.core.models import AudioClip, SpeechOutcome, SpeechPath

logger = logging.getLogger(__name__)
settings = get_settings()


class VoiceChannel:
    """
    Renders text as speech.

    Capture is suspended before any audio is produced and is never resumed
    here; resuming is the orchestrator's job once `speak()` has returned.
    Each call yields exactly one SpeechOutcome.
    """

    def __init__(
        self,
        capture: SpeechCaptureEngine,
        local_synthesizer: LocalSynthesizer,
        remote_synthesizer: Optional[RemoteSynthesizer] = None,
        player: Optional[AudioPlayer] = None,
        voice_id: Optional[str] = None,
        synthesis_timeout: Optional[float] = None,
        playback_timeout: Optional[float] = None,
        local_timeout: Optional[float] = None
    ):
        self.capture = capture
        self.local_synthesizer = local_synthesizer
        self.remote_synthesizer = remote_synthesizer
        self.player = player
        self.voice_id = voice_id or settings.TTS_VOICE_ID
        self.synthesis_timeout = settings.PROVIDER_TIMEOUT_SECONDS if synthesis_timeout is None else synthesis_timeout
        self.playback_timeout = settings.PLAYBACK_TIMEOUT_SECONDS if playback_timeout is None else playback_timeout
        self.local_timeout = settings.LOCAL_SPEECH_TIMEOUT_SECONDS if local_timeout is None else local_timeout

    async def speak(
        self,
        text: str,
        on_finished: Optional[Callable[[SpeechOutcome], None]] = None
    ) -> SpeechOutcome:
        """Speak `text`; never raises."""
        await self._suspend_capture()

        if not text or not text.strip():
            outcome = SpeechOutcome(SpeechPath.FAILED, "nothing to speak")
        else:
            outcome = await self._speak_remote(text)
            if outcome is None:
                outcome = await self._speak_local(text)

        if on_finished is not None:
            try:
                on_finished(outcome)
            except Exception as e:
                logger.error(f"Speech completion callback failed: {e}")

        return outcome

    async def _suspend_capture(self):
        try:
            await self.capture.stop()
        except Exception as e:
            logger.warning(f"Failed to suspend capture before speaking: {e}")

    async def _speak_remote(self, text: str) -> Optional[SpeechOutcome]:
        if self.remote_synthesizer is None or self.player is None:
            return None

        try:
            clip = await self._bounded(
                self.remote_synthesizer.synthesize(text, self.voice_id),
                "tts",
                self.synthesis_timeout
            )
            if not isinstance(clip, AudioClip) or not clip.data:
                raise TTSException("synthesizer returned no audio")

            await self._bounded(self.player.play(clip), "playback", self.playback_timeout)
            return SpeechOutcome(SpeechPath.REMOTE)

        except Exception as e:
            logger.warning(f"Remote speech failed, using local synthesizer: {e}")
            return None

    async def _speak_local(self, text: str) -> SpeechOutcome:
        try:
            await self._bounded(self.local_synthesizer.speak(text), "local_speech", self.local_timeout)
            return SpeechOutcome(SpeechPath.LOCAL)
        except Exception as e:
            logger.error(f"Local speech failed: {e}")
            return SpeechOutcome(SpeechPath.FAILED, str(e))

    @staticmethod
    async def _bounded(awaitable, provider: str, timeout: float):
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError:
            if provider == "playback":
                raise PlaybackException(f"no completion signal within {timeout} seconds")
            raise ProviderTimeoutException(provider, timeout)
