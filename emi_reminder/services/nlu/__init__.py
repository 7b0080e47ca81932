"""
NLU Intent Service.
Posts client utterances to an intent-recognition endpoint over HTTP.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from emi_reminder.config import get_settings
from emi_reminder.core.exceptions import (
    IntentServiceException,
    ProviderTimeoutException,
    ProviderUnavailableException,
)
from emi_reminder.core.models import IntentResult

logger = logging.getLogger(__name__)
settings = get_settings()


class IntentServiceClient:
    """
    HTTP client for the NLU bot.

    Request:  {"text": ..., "sessionAttributes": {...}}
    Response: {"intent" | "intentName": ..., "reply" | "message": ...}
    """

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None
    ):
        self.url = url if url is not None else settings.NLU_URL
        self.api_key = api_key if api_key is not None else settings.NLU_API_KEY
        self.timeout_seconds = timeout_seconds or settings.PROVIDER_TIMEOUT_SECONDS
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.url)

    async def initialize(self):
        if not self.is_configured:
            logger.warning("NLU_URL not set, NLU tier disabled")
            return

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        self._client = httpx.AsyncClient(headers=headers, timeout=self.timeout_seconds)
        logger.info(f"NLU service initialized: {self.url}")

    async def query(self, text: str, context: Dict[str, Any]) -> IntentResult:
        if self._client is None:
            raise ProviderUnavailableException("nlu")

        payload = {
            "text": text,
            "sessionId": context.get("sessionId"),
            "sessionAttributes": {k: v for k, v in context.items() if k != "sessionId"}
        }

        try:
            response = await self._client.post(self.url, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException:
            raise ProviderTimeoutException("nlu", self.timeout_seconds)
        except httpx.HTTPStatusError as e:
            raise IntentServiceException(str(e), e.response.status_code)
        except (httpx.HTTPError, ValueError) as e:
            raise IntentServiceException(str(e))

        if not isinstance(data, dict):
            raise IntentServiceException("malformed response payload")

        return IntentResult(
            intent_name=data.get("intent") or data.get("intentName"),
            reply_text=data.get("reply") or data.get("message")
        )

    async def cleanup(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info("NLU service cleaned up")
