"""Tests for the markdown execution log."""
import pytest

from emi_reminder.logging.agent_logger import AgentLogger


@pytest.mark.asyncio
async def test_entries_flushed_on_close(tmp_path):
    log_path = tmp_path / "agent_log.md"
    agent_logger = AgentLogger(str(log_path))
    await agent_logger.initialize_log()

    await agent_logger.log_session_start("s-1", "Asha")
    await agent_logger.log_user_utterance("s-1", "I will pay tomorrow", 0.95)
    await agent_logger.log_reply("s-1", "Thank you, Asha.", "llm", "POSITIVE", latency_ms=412.3)
    await agent_logger.close()

    text = log_path.read_text(encoding="utf-8")
    assert text.startswith("# 🎙️ EMI Reminder Agent Log")
    assert "**Client:** Asha" in text
    assert '**Transcript:** "I will pay tomorrow"' in text
    assert "🟢 95%" in text
    assert "**Latency:** 412ms" in text
    assert "> Thank you, Asha." in text


@pytest.mark.asyncio
async def test_header_written_once(tmp_path):
    log_path = tmp_path / "agent_log.md"

    first = AgentLogger(str(log_path))
    await first.initialize_log()
    await first.log_system_event("Startup", {"Version": "1.0.0"})
    await first.close()

    second = AgentLogger(str(log_path))
    await second.initialize_log()
    await second.close()

    text = log_path.read_text(encoding="utf-8")
    assert text.count("## Execution Log") == 1
    assert "**Version:** 1.0.0" in text


def test_writes_inline_without_loop(tmp_path):
    agent_logger = AgentLogger(str(tmp_path / "agent_log.md"))

    assert agent_logger._writer_task is None


@pytest.mark.asyncio
async def test_missing_latency_is_omitted(tmp_path):
    log_path = tmp_path / "agent_log.md"
    agent_logger = AgentLogger(str(log_path))

    await agent_logger.log_reply("s-1", "x" * 600, "rules", "NEUTRAL")
    await agent_logger.close()

    text = log_path.read_text(encoding="utf-8")
    assert "Latency" not in text
    assert "x" * 500 + "..." in text
