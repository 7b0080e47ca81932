"""
Response resolution.
Produces exactly one reply per utterance by walking the provider fallback chain:

    LLM responder → NLU reply (enhanced) → rule-based responder

Provider failures, timeouts and empty payloads advance the chain; nothing
raised by a provider ever reaches the caller.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Dict, Optional, Tuple, TypeVar

from emi_reminder.config import get_settings
from emi_reminder.core.exceptions import (
    LLMEmptyResponseException,
    ProviderTimeoutException,
    ProviderUnavailableException,
)
from emi_reminder.core.interfaces import IntentService, LLMResponder, SentimentClassifier
from emi_reminder.core.models import (
    ClientProfile,
    IntentResult,
    ReplyResolution,
    ReplySource,
    Sentiment,
)
from emi_reminder.core.responder import RuleBasedResponder, enhance_reply
from emi_reminder.logging.agent_logger import AgentLogger

logger = logging.getLogger(__name__)
settings = get_settings()

T = TypeVar("T")

LAST_RESORT_REPLY = (
    "I'm sorry{name_part}, I couldn't process that just now. "
    "Please contact our customer service at {support_phone} for help with your loan account."
)


class ResponseResolver:
    """
    Multi-tier reply generation.

    Every remote call is bounded by `timeout_seconds`; a timeout counts as
    that tier's failure.
    """

    def __init__(
        self,
        llm: Optional[LLMResponder] = None,
        sentiment_classifier: Optional[SentimentClassifier] = None,
        intent_service: Optional[IntentService] = None,
        responder: Optional[RuleBasedResponder] = None,
        timeout_seconds: Optional[float] = None,
        agent_logger: Optional[AgentLogger] = None
    ):
        self.llm = llm
        self.sentiment_classifier = sentiment_classifier
        self.intent_service = intent_service
        self.responder = responder or RuleBasedResponder()
        self.timeout_seconds = (
            settings.PROVIDER_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        )
        self.agent_logger = agent_logger

    # =========================
    # Analysis
    # =========================

    async def analyze(
        self,
        text: str,
        profile: ClientProfile,
        session_id: Optional[str] = None
    ) -> Tuple[Sentiment, Optional[IntentResult]]:
        """Run sentiment classification and the NLU query concurrently."""
        sentiment, intent = await asyncio.gather(
            self.classify_sentiment(text, session_id),
            self.query_intent(text, profile, session_id)
        )
        return sentiment, intent

    async def classify_sentiment(self, text: str, session_id: Optional[str] = None) -> Sentiment:
        """Classifier failure defaults to neutral."""
        if self.sentiment_classifier is None:
            return Sentiment.NEUTRAL

        try:
            result = await self._call("sentiment", self.sentiment_classifier.classify(text))
        except Exception as e:
            await self._log_fallback(session_id, "sentiment", e)
            return Sentiment.NEUTRAL

        return result if isinstance(result, Sentiment) else Sentiment.parse(result)

    async def query_intent(
        self,
        text: str,
        profile: ClientProfile,
        session_id: Optional[str] = None
    ) -> Optional[IntentResult]:
        """NLU failure simply omits the NLU tier."""
        if self.intent_service is None:
            return None

        try:
            return await self._call(
                "nlu",
                self.intent_service.query(text, self._nlu_context(profile, session_id))
            )
        except Exception as e:
            await self._log_fallback(session_id, "nlu", e)
            return None

    # =========================
    # Resolution
    # =========================

    async def resolve(
        self,
        utterance_text: str,
        profile: ClientProfile,
        sentiment: Sentiment = Sentiment.NEUTRAL,
        prior_nlu: Optional[IntentResult] = None,
        session_id: Optional[str] = None
    ) -> str:
        """Return a non-empty reply; never raises."""
        resolution = await self.resolve_with_source(
            utterance_text, profile, sentiment, prior_nlu, session_id
        )
        return resolution.text

    async def resolve_with_source(
        self,
        utterance_text: str,
        profile: ClientProfile,
        sentiment: Sentiment = Sentiment.NEUTRAL,
        prior_nlu: Optional[IntentResult] = None,
        session_id: Optional[str] = None
    ) -> ReplyResolution:
        start_time = time.time()

        # Tier 1: LLM
        try:
            reply = await self._generate_llm_reply(utterance_text, profile, sentiment, prior_nlu)
            return self._finish(reply, ReplySource.LLM, sentiment, start_time)
        except Exception as e:
            await self._log_fallback(session_id, "llm", e)

        # Tier 2: NLU reply with enhancement
        if prior_nlu is not None and prior_nlu.reply_text and prior_nlu.reply_text.strip():
            try:
                reply = enhance_reply(prior_nlu.reply_text, profile, sentiment)
                return self._finish(reply, ReplySource.NLU, sentiment, start_time)
            except Exception as e:
                await self._log_fallback(session_id, "nlu_enhancement", e)

        # Tier 3: rules
        try:
            reply = self.responder.respond(utterance_text, profile, sentiment)
            if reply and reply.strip():
                return self._finish(reply, ReplySource.RULES, sentiment, start_time)
        except Exception as e:
            logger.exception(f"Rule-based responder failed: {e}")

        return self._finish(self._last_resort(profile), ReplySource.LAST_RESORT, sentiment, start_time)

    async def _generate_llm_reply(
        self,
        text: str,
        profile: ClientProfile,
        sentiment: Sentiment,
        prior_nlu: Optional[IntentResult]
    ) -> str:
        if self.llm is None:
            raise ProviderUnavailableException("llm")

        reply = await self._call(
            "llm",
            self.llm.generate(
                text,
                profile,
                prior_nlu.intent_name if prior_nlu else None,
                prior_nlu.reply_text if prior_nlu else None,
                sentiment
            )
        )

        if not isinstance(reply, str) or not reply.strip():
            raise LLMEmptyResponseException()

        return reply.strip()

    # =========================
    # Helpers
    # =========================

    async def _call(self, provider: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            raise ProviderTimeoutException(provider, self.timeout_seconds)

    def _finish(
        self,
        text: str,
        source: ReplySource,
        sentiment: Sentiment,
        start_time: float
    ) -> ReplyResolution:
        latency_ms = (time.time() - start_time) * 1000
        logger.info(f"Reply resolved by {source.value} tier in {latency_ms:.0f}ms")
        return ReplyResolution(text=text.strip(), source=source, sentiment=sentiment)

    def _last_resort(self, profile: Optional[ClientProfile]) -> str:
        name = getattr(profile, "name", "") or ""
        return LAST_RESORT_REPLY.format(
            name_part=f", {name}" if name else "",
            support_phone=self.responder.support_phone
        )

    @staticmethod
    def _nlu_context(profile: ClientProfile, session_id: Optional[str]) -> Dict[str, Any]:
        return {
            "sessionId": session_id,
            "clientName": profile.name,
            "mobile": profile.mobile,
            "emiAmount": str(profile.installment_amount),
            "totalDue": str(profile.total_outstanding),
            "dueDate": profile.due_date.isoformat(),
        }

    async def _log_fallback(self, session_id: Optional[str], provider: str, error: Exception):
        if isinstance(error, ProviderUnavailableException):
            logger.debug(f"{provider} tier skipped: not configured")
            return

        logger.warning(f"{provider} provider failed, falling back: {error}")
        if self.agent_logger is not None:
            try:
                await self.agent_logger.log_provider_fallback(session_id, provider, str(error))
            except Exception as e:
                logger.error(f"Failed to record provider fallback: {e}")
