"""
Health Check Endpoints.
System health and readiness checks.
"""

from datetime import datetime, timezone
from fastapi import APIRouter, Request

from emi_reminder.config import get_settings

router = APIRouter()
settings = get_settings()


@router.get("/health")
@router.get("/api/health")
async def health_check():
    """Basic health check endpoint."""
    return {
        "success": True,
        "status": "OK",
        "message": "EMI Reminder backend is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.APP_VERSION
    }


@router.get("/health/ready")
async def readiness_check(request: Request):
    """
    Readiness check - verifies all services are initialized.
    Remote reply tiers are optional; the rule-based tier is always available.
    """
    state = request.app.state

    checks = {
        "resolver": hasattr(state, "resolver"),
        "tts_service": hasattr(state, "tts_service") and state.tts_service.is_initialized,
        "client_store": hasattr(state, "client_store"),
        "transcript_archive": hasattr(state, "transcript_archive"),
    }

    providers = {
        "llm": hasattr(state, "llm_service") and state.llm_service.is_initialized,
        "nlu": hasattr(state, "nlu_service") and state.nlu_service.is_configured,
    }

    all_ready = all(checks.values())

    return {
        "success": all_ready,
        "status": "ready" if all_ready else "not_ready",
        "checks": checks,
        "providers": providers,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@router.get("/health/live")
async def liveness_check():
    """
    Liveness check - just verifies the server is responding.
    """
    return {
        "success": True,
        "status": "alive",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
