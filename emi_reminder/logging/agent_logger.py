"""
Agent Logger for Markdown Execution Logs.
Keeps a human-readable record of reminder conversations for review.
"""

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

LOG_HEADER = """# 🎙️ EMI Reminder Agent Log

**Created:** {created}

Turn loop: Listen → Resolve reply → Speak → Listen
Reply tiers: LLM → NLU (enhanced) → Rules

---

## Execution Log

"""


def _confidence_marker(confidence: float) -> str:
    if confidence >= 0.9:
        return "🟢"
    if confidence >= 0.7:
        return "🟡"
    return "🔴"


class AgentLogger:
    """
    Markdown logger for conversation execution.

    Each entry is a small markdown section (heading plus bold key/value
    lines). Entries are queued and appended by a background writer when an
    event loop is running, and written inline otherwise.
    """

    def __init__(self, log_path: str = "logs/agent_log.md"):
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

        self._queue: asyncio.Queue = asyncio.Queue()
        self._writer_task: Optional[asyncio.Task] = None

        try:
            self._writer_task = asyncio.get_running_loop().create_task(self._drain())
        except RuntimeError:
            logger.debug("No running loop, agent log entries are written inline")

    # =========================
    # Writing
    # =========================

    async def _drain(self):
        while True:
            entry = await self._queue.get()
            if entry is None:
                break
            self._append(entry)

    def _append(self, entry: str):
        try:
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(entry.rstrip() + "\n\n")
        except OSError as e:
            logger.error(f"Failed to write agent log: {e}")

    async def _emit(
        self,
        heading: str,
        fields: Dict[str, Any],
        body: Optional[str] = None,
        with_date: bool = False
    ):
        stamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S" if with_date else "%H:%M:%S")
        lines = [f"### {heading} | {stamp}", ""]
        lines.extend(f"**{key}:** {value}  " for key, value in fields.items() if value is not None)
        if body:
            lines.extend(["", body])

        entry = "\n".join(lines)
        if self._writer_task is not None and not self._writer_task.done():
            await self._queue.put(entry)
        else:
            self._append(entry)

    # =========================
    # Conversation events
    # =========================

    async def log_session_start(self, session_id: str, client_name: str, channel: str = "voice"):
        await self._emit(
            "🆕 Session Started",
            {"Session": f"`{session_id}`", "Client": client_name, "Channel": channel},
            with_date=True
        )

    async def log_user_utterance(self, session_id: str, text: str, confidence: float):
        await self._emit("🎤 Client", {
            "Session": f"`{session_id}`",
            "Transcript": f'"{text}"',
            "Confidence": f"{_confidence_marker(confidence)} {confidence:.0%}",
        })

    async def log_reply(
        self,
        session_id: str,
        reply: str,
        source: str,
        sentiment: str,
        latency_ms: Optional[float] = None
    ):
        """Assistant reply with the tier that produced it."""
        shown = reply if len(reply) <= 500 else reply[:500] + "..."
        await self._emit(
            "🤖 Assistant",
            {
                "Session": f"`{session_id}`",
                "Tier": source,
                "Sentiment": sentiment,
                "Latency": f"{latency_ms:.0f}ms" if latency_ms is not None else None,
            },
            body=f"> {shown}"
        )

    async def log_provider_fallback(self, session_id: Optional[str], provider: str, error_message: str):
        await self._emit("↪️ Fallback", {
            "Session": f"`{session_id or 'n/a'}`",
            "Provider": f"`{provider}`",
            "Reason": error_message,
        })

    async def log_capture_error(self, session_id: str, kind: str, error_message: str):
        await self._emit("🎙️ Capture Error", {
            "Session": f"`{session_id}`",
            "Kind": f"`{kind}`",
            "Message": error_message,
        })

    async def log_error(
        self,
        context: str,
        error_type: str,
        error_message: str,
        stack_trace: Optional[str] = None
    ):
        body = None
        if stack_trace:
            body = f"<details>\n<summary>Stack Trace</summary>\n\n```\n{stack_trace}\n```\n\n</details>"
        await self._emit(
            "❌ Error",
            {"Context": context, "Type": f"`{error_type}`", "Message": error_message},
            body=body
        )

    async def log_system_event(self, event: str, details: Dict[str, Any]):
        await self._emit(
            "⚙️ System Event",
            {"Event": event, **details},
            with_date=True
        )

    # =========================
    # Lifecycle
    # =========================

    async def initialize_log(self):
        """Write the file header unless the log already has content."""
        if self.log_path.exists() and self.log_path.stat().st_size > 0:
            return

        with open(self.log_path, "w", encoding="utf-8") as f:
            f.write(LOG_HEADER.format(created=datetime.now().strftime("%Y-%m-%d %H:%M:%S")))

        logger.info(f"Agent log initialized: {self.log_path}")

    async def close(self):
        """Flush queued entries and stop the writer."""
        if self._writer_task is not None and not self._writer_task.done():
            await self._queue.put(None)
            await self._writer_task
        self._writer_task = None

        while not self._queue.empty():
            entry = self._queue.get_nowait()
            if entry is not None:
                self._append(entry)

        logger.info("Agent logger closed")
