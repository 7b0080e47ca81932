"""Tests for TranscriptAccumulator."""
import asyncio

import pytest

from emi_reminder.core.models import Utterance
from emi_reminder.core.transcript import TranscriptAccumulator


def final(text, confidence=1.0):
    return Utterance(text=text, is_final=True, confidence=confidence)


def interim(text):
    return Utterance(text=text, is_final=False)


class TestTranscriptAccumulator:

    @pytest.mark.asyncio
    async def test_final_fragment_emits_immediately(self):
        emitted = []
        acc = TranscriptAccumulator(on_utterance=emitted.append, debounce_seconds=10)

        acc.on_fragment(final("  when is my emi due  "))

        assert [u.text for u in emitted] == ["when is my emi due"]
        assert emitted[0].is_final is True
        assert acc.is_processing is True
        assert acc.pending_text == ""

    @pytest.mark.asyncio
    async def test_no_emit_while_processing(self):
        emitted = []
        acc = TranscriptAccumulator(on_utterance=emitted.append, debounce_seconds=10)

        acc.on_fragment(final("hello"))
        acc.on_fragment(final("I have a question"))
        acc.on_fragment(final("about my loan"))

        assert len(emitted) == 1
        assert acc.pending_text == "I have a question about my loan"

    @pytest.mark.asyncio
    async def test_buffered_finals_are_joined_after_release(self):
        emitted = []
        acc = TranscriptAccumulator(on_utterance=emitted.append, debounce_seconds=0.05)

        acc.on_fragment(final("hello"))
        acc.on_fragment(final("I paid"))
        acc.on_fragment(final("yesterday", confidence=0.6))

        acc.release()
        assert acc.timer_armed is True

        await asyncio.sleep(0.15)

        assert [u.text for u in emitted] == ["hello", "I paid yesterday"]
        assert emitted[1].confidence == pytest.approx(0.6)

    @pytest.mark.asyncio
    async def test_final_after_release_emits_immediately(self):
        emitted = []
        interims = []
        acc = TranscriptAccumulator(
            on_utterance=emitted.append,
            on_interim=interims.append,
            debounce_seconds=0.05
        )

        acc.on_fragment(final("I want"))
        acc.release()
        acc.on_fragment(final("an extension"))
        acc.on_fragment(interim("please"))

        assert len(emitted) == 2
        assert interims == ["please"]

        acc.release()
        acc.on_fragment(final("for this month"))
        # The final above was emitted straight away; nothing left for the timer
        await asyncio.sleep(0.15)
        assert [u.text for u in emitted] == ["I want", "an extension", "for this month"]

    @pytest.mark.asyncio
    async def test_interim_rearms_timer(self):
        emitted = []
        acc = TranscriptAccumulator(on_utterance=emitted.append, debounce_seconds=0.2)

        acc.on_fragment(final("first"))
        acc.on_fragment(final("second"))
        acc.release()

        await asyncio.sleep(0.12)
        acc.on_fragment(interim("sec"))
        await asyncio.sleep(0.12)
        assert len(emitted) == 1

        await asyncio.sleep(0.2)
        assert [u.text for u in emitted] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_whitespace_never_emits(self):
        emitted = []
        acc = TranscriptAccumulator(on_utterance=emitted.append, debounce_seconds=0.02)

        acc.on_fragment(final("   "))
        acc.on_fragment(interim("  "))
        await asyncio.sleep(0.06)

        assert emitted == []
        assert acc.is_processing is False

    @pytest.mark.asyncio
    async def test_reset_drops_buffer_and_timer(self):
        emitted = []
        acc = TranscriptAccumulator(on_utterance=emitted.append, debounce_seconds=0.05)

        acc.on_fragment(final("hello"))
        acc.on_fragment(final("leftover"))
        acc.on_fragment(interim("more"))
        acc.reset()

        await asyncio.sleep(0.1)

        assert len(emitted) == 1
        assert acc.pending_text == ""
        assert acc.timer_armed is False
        assert acc.is_processing is False
