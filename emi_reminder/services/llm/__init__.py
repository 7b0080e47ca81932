"""
LLM Service using Groq API.
Generates domain-restricted debt-collection replies for the first reply tier.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional, List, Dict

from groq import AsyncGroq

from emi_reminder.config import get_settings
from emi_reminder.core.exceptions import (
    LLMException,
    ProviderTimeoutException,
    ProviderUnavailableException,
)
from emi_reminder.core.models import ClientProfile, Sentiment
from emi_reminder.core.responder import format_amount, format_due_date

logger = logging.getLogger(__name__)
settings = get_settings()


SYSTEM_PROMPT = """You are {assistant}, a professional debt collection assistant for a loan service company in India. You specialize in EMI reminders and debt recovery while maintaining empathy and compliance with debt collection regulations.

STRICT DOMAIN RESTRICTIONS:
- ONLY respond to queries related to: loans, EMI payments, debt collection, financial obligations, payment plans, legal consequences of default, and related financial/legal matters
- If the user asks about anything outside these topics, politely redirect them back to their loan obligations
- Do not provide advice on non-financial topics, general life advice, or unrelated services

Client Debt Information:
- Name: {name}
- Mobile: {mobile}
- Total Outstanding: {outstanding}
- Monthly EMI: {installment}
- Due Date: {due_date}
- Current Sentiment: {sentiment}

NLU detected intent: {intent}
NLU response: {prior_reply}

Debt Collection Guidelines:
1. Always address the client by name professionally
2. Be firm but empathetic about payment obligations
3. Clearly state consequences of non-payment (late fees, credit score impact, legal action)
4. Offer payment solutions and restructuring options when appropriate
5. Keep responses under 150 words for voice clarity
6. Always end with a clear call-to-action regarding payment
7. For extensions or hardship, refer the client to customer service at {support_phone}

Legal Compliance:
- Follow RBI Fair Practices Code for debt collection
- Avoid harassment or threatening language
- Provide clear information about borrower rights
- Offer reasonable payment solutions"""

USER_PROMPT = """Client said: "{text}"

Provide a professional debt collection response that improves upon the NLU response. Focus ONLY on loan/finance/legal matters. If the query is outside this domain, redirect to loan obligations. Make it natural for voice conversation."""


@dataclass
class LLMResponse:
    """Response from LLM completion."""
    content: str
    finish_reason: Optional[str] = None
    usage: Optional[Dict[str, int]] = None
    processing_time_ms: Optional[float] = None


class LLMService:
    """
    LLM service using Groq API for low latency inference.

    The service stays uninitialized when no API key is configured; every
    call then raises ProviderUnavailableException so callers fall back.
    """

    def __init__(self):
        self._client: Optional[AsyncGroq] = None
        self._is_initialized = False
        self._model = settings.LLM_MODEL_ID

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    async def initialize(self):
        """Initialize Groq client."""
        if not settings.GROQ_API_KEY:
            logger.warning("GROQ_API_KEY not set, LLM tier disabled")
            self._is_initialized = False
            return

        try:
            logger.info("Initializing LLM service...")
            self._client = AsyncGroq(api_key=settings.GROQ_API_KEY)
            self._is_initialized = True
            logger.info(f"LLM service initialized with model: {self._model}")

        except Exception as e:
            logger.error(f"Failed to initialize LLM service: {e}")
            self._is_initialized = False

    async def complete(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ) -> LLMResponse:
        """
        Generate a complete response.

        Args:
            messages: Conversation messages
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate

        Returns:
            LLMResponse with content
        """
        if not self._is_initialized:
            raise ProviderUnavailableException("llm")

        start_time = time.time()

        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self._model,
                    messages=messages,
                    temperature=settings.LLM_TEMPERATURE if temperature is None else temperature,
                    max_tokens=max_tokens or settings.LLM_MAX_TOKENS
                ),
                timeout=settings.PROVIDER_TIMEOUT_SECONDS
            )
        except asyncio.TimeoutError:
            raise ProviderTimeoutException("llm", settings.PROVIDER_TIMEOUT_SECONDS)
        except Exception as e:
            raise LLMException(str(e), getattr(e, "status_code", 500))

        if not response.choices:
            raise LLMException("response contained no choices")

        choice = response.choices[0]
        usage = None
        if response.usage is not None:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens
            }

        return LLMResponse(
            content=(choice.message.content or "").strip(),
            finish_reason=choice.finish_reason,
            usage=usage,
            processing_time_ms=(time.time() - start_time) * 1000
        )

    async def generate(
        self,
        text: str,
        profile: ClientProfile,
        intent_hint: Optional[str],
        prior_reply_hint: Optional[str],
        sentiment: Sentiment
    ) -> str:
        """Debt-collection reply for one client utterance."""
        messages = self.build_messages(text, profile, intent_hint, prior_reply_hint, sentiment)
        response = await self.complete(messages)
        logger.debug(f"LLM reply in {response.processing_time_ms:.0f}ms")
        return response.content

    @staticmethod
    def build_messages(
        text: str,
        profile: ClientProfile,
        intent_hint: Optional[str],
        prior_reply_hint: Optional[str],
        sentiment: Sentiment
    ) -> List[Dict[str, str]]:
        system_prompt = SYSTEM_PROMPT.format(
            assistant=settings.ASSISTANT_NAME,
            name=profile.name,
            mobile=profile.mobile or "unknown",
            outstanding=format_amount(profile.total_outstanding),
            installment=format_amount(profile.installment_amount),
            due_date=format_due_date(profile.due_date),
            sentiment=sentiment.value.upper(),
            intent=intent_hint or "Unknown",
            prior_reply=prior_reply_hint or "No response",
            support_phone=settings.SUPPORT_PHONE
        )

        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": USER_PROMPT.format(text=text)}
        ]

    async def cleanup(self):
        """Cleanup resources."""
        if self._client is not None:
            await self._client.close()
        self._client = None
        self._is_initialized = False
        logger.info("LLM service cleaned up")
