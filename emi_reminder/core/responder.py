"""
Rule-based EMI responder.
Keyword classification into canned, sentiment-aware reply templates, plus
the enhancement transform applied to NLU replies and the session greeting.
"""

import logging
from datetime import date
from enum import Enum
from typing import Dict, List, Optional, Tuple

from emi_reminder.config import get_settings
from emi_reminder.core.models import ClientProfile, Sentiment

logger = logging.getLogger(__name__)
settings = get_settings()


class ReplyCategory(str, Enum):
    PAYMENT = "payment"
    BALANCE = "balance"
    EMI = "emi"
    EXTENSION = "extension"
    DIFFICULTY = "difficulty"
    HELP = "help"
    FAREWELL = "farewell"
    DEFAULT = "default"


# Checked in order; first match wins. Negated payment wording comes first so
# "I cannot pay" is not read as a payment confirmation.
KEYWORD_RULES: List[Tuple[ReplyCategory, Tuple[str, ...]]] = [
    (ReplyCategory.DIFFICULTY, (
        "cannot pay", "can't pay", "cant pay", "unable to pay", "not able to pay",
        "not paid", "haven't paid", "didn't pay", "not made the payment", "no payment",
    )),
    (ReplyCategory.PAYMENT, ("paid", "payment", "transferred")),
    (ReplyCategory.BALANCE, ("balance", "outstanding", "due amount", "total due", "how much do i owe")),
    (ReplyCategory.EMI, ("emi", "installment", "instalment")),
    (ReplyCategory.EXTENSION, ("extension", "extend", "delay", "postpone", "more time")),
    (ReplyCategory.DIFFICULTY, (
        "difficult", "problem", "cannot", "can't", "unable", "lost my job", "no money",
    )),
    (ReplyCategory.HELP, ("help", "support")),
    (ReplyCategory.FAREWELL, ("bye", "goodbye", "thank you", "thanks")),
]


# Keyed by (category, sentiment); `None` is the fallback variant
TEMPLATES: Dict[Tuple[ReplyCategory, Optional[Sentiment]], str] = {
    (ReplyCategory.PAYMENT, Sentiment.POSITIVE): (
        "Wonderful! Thank you for confirming your payment, {name}. I'm glad to hear you've "
        "taken care of this. Please ensure the payment is processed before the due date. "
        "Is there anything else I can help you with regarding your loan?"
    ),
    (ReplyCategory.PAYMENT, None): (
        "Thank you for confirming your payment, {name}. Please ensure the payment is processed "
        "before the due date. Is there anything else I can help you with regarding your loan?"
    ),
    (ReplyCategory.BALANCE, None): (
        "{name}, your current outstanding loan amount is {outstanding}. "
        "Your next EMI of {installment} is due on {due_date}."
    ),
    (ReplyCategory.EMI, None): (
        "{name}, your monthly EMI amount is {installment}. "
        "The due date for your next payment is {due_date}."
    ),
    (ReplyCategory.EXTENSION, Sentiment.NEGATIVE): (
        "I understand you're facing difficulties, {name}. Don't worry, we're here to help. "
        "Please contact our customer service at {support_phone} for payment extension requests. "
        "They will work with you to find a suitable arrangement."
    ),
    (ReplyCategory.EXTENSION, None): (
        "I understand you're requesting an extension, {name}. Please contact our customer service "
        "at {support_phone} for payment extension requests. They will be able to assist you with "
        "the necessary arrangements."
    ),
    (ReplyCategory.DIFFICULTY, None): (
        "I understand you're facing some challenges, {name}. We want to help you through this. "
        "Please contact our customer service at {support_phone} immediately. They have various "
        "assistance programs and can work out a payment plan that suits your situation."
    ),
    (ReplyCategory.HELP, None): (
        "I'm here to help you, {name}. I can provide information about your loan balance, EMI "
        "amount, due dates, and payment confirmations. For other queries, please contact our "
        "customer service at {support_phone}."
    ),
    (ReplyCategory.FAREWELL, Sentiment.POSITIVE): (
        "It was my pleasure helping you today, {name}! Please remember to make your EMI payment "
        "of {installment} by {due_date}. Have a wonderful day!"
    ),
    (ReplyCategory.FAREWELL, None): (
        "Thank you for your time, {name}. Please remember to make your EMI payment of "
        "{installment} by {due_date}. Have a great day!"
    ),
    (ReplyCategory.DEFAULT, Sentiment.NEGATIVE): (
        "I understand your concern, {name}, and I want to help resolve this for you. For detailed "
        "assistance with your loan account, please contact our customer service at {support_phone}. "
        "They're specially trained to handle your specific situation. Is there anything specific "
        "about your EMI or payment that I can help clarify right now?"
    ),
    (ReplyCategory.DEFAULT, None): (
        "I understand your concern, {name}. For detailed assistance with your loan account, please "
        "contact our customer service at {support_phone}. Is there anything specific about your EMI "
        "or payment that I can help clarify?"
    ),
}


def classify_utterance(text: str) -> ReplyCategory:
    """Classify an utterance by keyword; first matching category wins."""
    lowered = text.lower()
    for category, keywords in KEYWORD_RULES:
        if any(keyword in lowered for keyword in keywords):
            return category
    return ReplyCategory.DEFAULT


def format_amount(amount: float, currency: Optional[str] = None) -> str:
    """₹2500 for whole amounts, ₹2500.50 otherwise."""
    currency = settings.CURRENCY_SYMBOL if currency is None else currency
    if float(amount).is_integer():
        return f"{currency}{int(amount)}"
    return f"{currency}{amount:.2f}"


def format_due_date(value: date, date_format: Optional[str] = None) -> str:
    return value.strftime(date_format or settings.DATE_FORMAT)


class RuleBasedResponder:
    """Terminal fallback tier: deterministic template replies."""

    def __init__(
        self,
        support_phone: Optional[str] = None,
        currency: Optional[str] = None,
        date_format: Optional[str] = None
    ):
        self.support_phone = support_phone or settings.SUPPORT_PHONE
        self.currency = settings.CURRENCY_SYMBOL if currency is None else currency
        self.date_format = date_format or settings.DATE_FORMAT

    def respond(
        self,
        text: str,
        profile: ClientProfile,
        sentiment: Sentiment = Sentiment.NEUTRAL
    ) -> str:
        category = classify_utterance(text)
        template = TEMPLATES.get((category, sentiment)) or TEMPLATES[(category, None)]
        logger.debug(f"Rule responder matched '{category.value}' ({sentiment.value})")
        return template.format(**self._fields(profile))

    def _fields(self, profile: ClientProfile) -> Dict[str, str]:
        return {
            "name": profile.name,
            "outstanding": format_amount(profile.total_outstanding, self.currency),
            "installment": format_amount(profile.installment_amount, self.currency),
            "due_date": format_due_date(profile.due_date, self.date_format),
            "support_phone": self.support_phone,
        }


def enhance_reply(reply: str, profile: ClientProfile, sentiment: Sentiment) -> str:
    """
    Add debt-collection framing to an NLU reply.

    - negative sentiment: empathetic prefix and a credit/legal reminder
    - positive sentiment: acknowledgment prefix
    - no payment term: EMI call-to-action
    """
    enhanced = reply.strip()
    lowered = enhanced.lower()

    if sentiment == Sentiment.NEGATIVE and "understand" not in lowered:
        enhanced = (
            f"I understand this situation may be difficult, {profile.name}, but it's important "
            f"we address your loan obligations. {enhanced}"
        )
    elif sentiment == Sentiment.POSITIVE and "appreciate" not in lowered:
        enhanced = f"I appreciate your cooperation, {profile.name}. {enhanced}"

    if "pay" not in lowered:
        enhanced += (
            f" When can we expect your EMI payment of {format_amount(profile.installment_amount)}?"
        )

    if sentiment == Sentiment.NEGATIVE and "legal" not in lowered and "credit" not in lowered:
        enhanced += (
            " Please note that continued non-payment may affect your credit score and could "
            "lead to legal action as per loan agreement terms."
        )

    return enhanced


def build_greeting(profile: ClientProfile, today: Optional[date] = None) -> str:
    """Opening reminder spoken when a voice session starts."""
    installment = format_amount(profile.installment_amount)
    days = profile.days_until_due(today)

    greeting = f"Hello {profile.name}, this is an automated reminder from your loan service provider. "

    if days > 0:
        unit = "day" if days == 1 else "days"
        greeting += (
            f"Your EMI of {installment} is due in {days} {unit} on {format_due_date(profile.due_date)}. "
        )
    elif days == 0:
        greeting += f"Your EMI of {installment} is due today. "
    else:
        unit = "day" if days == -1 else "days"
        greeting += f"Your EMI of {installment} was due {abs(days)} {unit} ago. "

    greeting += (
        f"Your current outstanding amount is {format_amount(profile.total_outstanding)}. "
        "How can I assist you today?"
    )
    return greeting
