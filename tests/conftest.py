"""Pytest configuration and shared fixtures."""
import os
import tempfile
from datetime import date, timedelta
from pathlib import Path

# Settings are cached on first import; keep remote tiers off and logs out of the repo
os.environ["AGENT_LOG_PATH"] = str(Path(tempfile.mkdtemp()) / "agent_log.md")
os.environ.pop("GROQ_API_KEY", None)
os.environ.pop("NLU_URL", None)
os.environ.pop("NLU_API_KEY", None)

import pytest

from emi_reminder.core.models import ClientProfile


@pytest.fixture
def profile():
    """Borrower with an EMI due in five days."""
    return ClientProfile(
        name="Asha",
        mobile="9876543210",
        total_outstanding=15000.0,
        installment_amount=2500.0,
        due_date=date.today() + timedelta(days=5)
    )


@pytest.fixture
def client_payload():
    return {
        "name": "Asha",
        "mobile": "9876543210",
        "totalDue": 15000,
        "emiAmount": 2500,
        "dueDate": (date.today() + timedelta(days=5)).isoformat()
    }
