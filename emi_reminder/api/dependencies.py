"""
Shared request helpers for the API routes.
"""

from typing import Any, Dict, Optional, Tuple

from fastapi import FastAPI

from emi_reminder.core.exceptions import InvalidClientProfileException
from emi_reminder.core.models import ClientProfile


async def resolve_client(
    app: FastAPI,
    client_data: Optional[Dict[str, Any]] = None,
    client_id: Optional[str] = None
) -> Tuple[ClientProfile, Optional[str]]:
    """Profile from inline client data, or from a stored client record."""
    if client_data:
        return ClientProfile.from_dict(client_data), client_id

    if client_id:
        record = await app.state.client_store.get(client_id)
        return record.profile, record.id

    raise InvalidClientProfileException(["clientData or clientId is required"])
