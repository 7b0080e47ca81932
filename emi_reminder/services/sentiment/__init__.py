"""
Sentiment Service.
One-word polarity classification through the Groq LLM.
"""

import logging

from emi_reminder.core.exceptions import ProviderException, SentimentException
from emi_reminder.core.models import Sentiment
from emi_reminder.services.llm import LLMService

logger = logging.getLogger(__name__)


CLASSIFIER_PROMPT = """Classify the sentiment of the borrower's message below.
Answer with exactly one word: POSITIVE, NEGATIVE, NEUTRAL or MIXED.

Message: "{text}\""""


class SentimentService:
    """Sentiment classifier backed by the LLM service."""

    def __init__(self, llm_service: LLMService):
        self._llm = llm_service

    async def classify(self, text: str) -> Sentiment:
        try:
            response = await self._llm.complete(
                [{"role": "user", "content": CLASSIFIER_PROMPT.format(text=text)}],
                temperature=0.0,
                max_tokens=3
            )
        except ProviderException:
            raise
        except Exception as e:
            raise SentimentException(str(e))

        label = response.content.split()[0] if response.content else ""
        sentiment = Sentiment.parse(label)
        logger.debug(f"Sentiment '{label}' → {sentiment.value}")
        return sentiment
