"""
Transcript accumulation.
Turns a stream of interim/final recognizer fragments into discrete utterances.
"""

import asyncio
import logging
from typing import Callable, List, Optional

from emi_reminder.config import get_settings
from emi_reminder.core.models import Utterance

logger = logging.getLogger(__name__)
settings = get_settings()


class PendingTimer:
    """A cancellable delayed callback on the running event loop."""

    def __init__(self, delay: float, callback: Callable[[], None]):
        self.delay = delay
        self._callback = callback
        self._fired = False
        self._handle = asyncio.get_running_loop().call_later(delay, self._fire)

    def _fire(self):
        self._fired = True
        self._callback()

    @property
    def active(self) -> bool:
        return not self._fired and not self._handle.cancelled()

    def cancel(self):
        self._handle.cancel()


class TranscriptAccumulator:
    """
    Buffers final fragments into a running utterance and decides when to emit.

    Completion triggers:
    - a final fragment arrives while nothing is being processed (immediate)
    - the debounce timer armed by an interim fragment expires (fallback)

    Emission sets `is_processing`; no further utterance is emitted until
    `release()` is called, so at most one utterance is ever in flight.
    """

    def __init__(
        self,
        on_utterance: Callable[[Utterance], None],
        on_interim: Optional[Callable[[str], None]] = None,
        debounce_seconds: Optional[float] = None
    ):
        self._on_utterance = on_utterance
        self._on_interim = on_interim
        self.debounce_seconds = (
            settings.TRANSCRIPT_DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        )

        self._buffer: List[str] = []
        self._confidences: List[float] = []
        self._timer: Optional[PendingTimer] = None
        self.is_processing = False

    @property
    def pending_text(self) -> str:
        return " ".join(self._buffer).strip()

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None and self._timer.active

    def on_fragment(self, fragment: Utterance):
        """Feed one recognizer fragment."""
        if fragment.is_final:
            text = fragment.text.strip()
            if text:
                self._buffer.append(text)
                self._confidences.append(fragment.confidence)
            self._try_emit()
            return

        if self._on_interim and fragment.text.strip():
            self._on_interim(fragment.text.strip())
        self._arm_timer()

    def release(self):
        """End the processing window opened by the last emission."""
        self.is_processing = False
        if self.pending_text:
            # Text buffered while busy waits for the debounce window
            self._arm_timer()

    def reset(self):
        """Drop buffered text and pending timers."""
        self._cancel_timer()
        self._buffer.clear()
        self._confidences.clear()
        self.is_processing = False

    def _arm_timer(self):
        self._cancel_timer()
        self._timer = PendingTimer(self.debounce_seconds, self._on_timer)

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self):
        self._timer = None
        if self._try_emit():
            logger.debug("Utterance dispatched by debounce timer")

    def _try_emit(self) -> bool:
        if self.is_processing:
            return False

        text = self.pending_text
        if not text:
            return False

        utterance = Utterance(
            text=text,
            is_final=True,
            confidence=min(self._confidences) if self._confidences else 1.0
        )

        self._buffer.clear()
        self._confidences.clear()
        self._cancel_timer()
        self.is_processing = True

        self._on_utterance(utterance)
        return True
