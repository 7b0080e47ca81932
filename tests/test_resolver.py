"""Tests for the reply fallback chain."""
import pytest

from emi_reminder.core.exceptions import IntentServiceException, LLMException, SentimentException
from emi_reminder.core.models import IntentResult, ReplySource, Sentiment
from emi_reminder.core.resolver import ResponseResolver

from stubs import StaticIntent, StaticLLM, StaticSentiment


class BrokenResponder:
    support_phone = "1800-123-4567"

    def respond(self, text, profile, sentiment):
        raise RuntimeError("template error")


class TestTierOrder:

    @pytest.mark.asyncio
    async def test_llm_reply_wins(self, profile):
        llm = StaticLLM(reply="  Hello Asha, your EMI is due soon.  ")
        resolver = ResponseResolver(llm=llm)

        resolution = await resolver.resolve_with_source("when is my emi due", profile)

        assert resolution.source == ReplySource.LLM
        assert resolution.text == "Hello Asha, your EMI is due soon."

    @pytest.mark.asyncio
    async def test_llm_receives_nlu_hints(self, profile):
        llm = StaticLLM(reply="ok Asha")
        resolver = ResponseResolver(llm=llm)
        prior = IntentResult(intent_name="PaymentStatus", reply_text="Your payment is pending.")

        await resolver.resolve("paid?", profile, Sentiment.POSITIVE, prior)

        assert llm.calls == [("paid?", "PaymentStatus", "Your payment is pending.", Sentiment.POSITIVE)]

    @pytest.mark.asyncio
    async def test_llm_failure_uses_enhanced_nlu_reply(self, profile):
        resolver = ResponseResolver(llm=StaticLLM(error=LLMException("rate limited", 429)))
        prior = IntentResult(intent_name="DueDate", reply_text="Your EMI is due on the 5th.")

        resolution = await resolver.resolve_with_source("due date?", profile, Sentiment.NEGATIVE, prior)

        assert resolution.source == ReplySource.NLU
        assert "Your EMI is due on the 5th." in resolution.text
        assert resolution.text.startswith("I understand")

    @pytest.mark.asyncio
    async def test_empty_llm_reply_falls_through(self, profile):
        resolver = ResponseResolver(llm=StaticLLM(reply="   "))

        resolution = await resolver.resolve_with_source("what is my balance", profile)

        assert resolution.source == ReplySource.RULES
        assert "₹15000" in resolution.text

    @pytest.mark.asyncio
    async def test_blank_nlu_reply_is_skipped(self, profile):
        resolver = ResponseResolver()
        prior = IntentResult(intent_name="Fallback", reply_text="  ")

        resolution = await resolver.resolve_with_source("help", profile, prior_nlu=prior)

        assert resolution.source == ReplySource.RULES

    @pytest.mark.asyncio
    async def test_llm_timeout_falls_back(self, profile):
        resolver = ResponseResolver(llm=StaticLLM(reply="too late", delay=1.0), timeout_seconds=0.05)

        resolution = await resolver.resolve_with_source("when is my emi due", profile)

        assert resolution.source == ReplySource.RULES
        assert "₹2500" in resolution.text

    @pytest.mark.asyncio
    async def test_last_resort_when_every_tier_fails(self, profile):
        resolver = ResponseResolver(
            llm=StaticLLM(error=RuntimeError("boom")),
            responder=BrokenResponder()
        )

        reply = await resolver.resolve("hello", profile)

        assert "Asha" in reply
        assert "1800-123-4567" in reply


class TestAnalysis:

    @pytest.mark.asyncio
    async def test_sentiment_failure_defaults_to_neutral(self, profile):
        resolver = ResponseResolver(sentiment_classifier=StaticSentiment(error=SentimentException("bad")))

        sentiment, intent = await resolver.analyze("whatever", profile, "s-1")

        assert sentiment == Sentiment.NEUTRAL
        assert intent is None

    @pytest.mark.asyncio
    async def test_nlu_failure_is_omitted(self, profile):
        resolver = ResponseResolver(
            sentiment_classifier=StaticSentiment(Sentiment.NEGATIVE),
            intent_service=StaticIntent(error=IntentServiceException("502 Bad Gateway", 502))
        )

        sentiment, intent = await resolver.analyze("I can't pay", profile, "s-1")

        assert sentiment == Sentiment.NEGATIVE
        assert intent is None

    @pytest.mark.asyncio
    async def test_nlu_receives_client_context(self, profile):
        service = StaticIntent(result=IntentResult("DueDate", "Soon."))
        resolver = ResponseResolver(intent_service=service)

        _, intent = await resolver.analyze("due?", profile, "s-42")

        assert intent.intent_name == "DueDate"
        context = service.contexts[0]
        assert context["sessionId"] == "s-42"
        assert context["clientName"] == "Asha"
        assert context["emiAmount"] == "2500.0"
        assert context["dueDate"] == profile.due_date.isoformat()


class TestNeverRaises:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   ", "paid", "बकाया कितना है", "x" * 2000])
    async def test_reply_always_names_client(self, profile, text):
        resolver = ResponseResolver(
            llm=StaticLLM(error=RuntimeError("down")),
            sentiment_classifier=StaticSentiment(error=RuntimeError("down")),
            intent_service=StaticIntent(error=RuntimeError("down"))
        )

        sentiment, intent = await resolver.analyze(text, profile)
        reply = await resolver.resolve(text, profile, sentiment, intent)

        assert reply.strip()
        assert "Asha" in reply
