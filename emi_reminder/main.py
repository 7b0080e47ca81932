"""
FastAPI Application Entry Point
===============================
Wires the reminder services onto app.state, then mounts middleware and routes.
"""

import asyncio
from contextlib import asynccontextmanager
import logging
import time
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from emi_reminder.config import get_settings
from emi_reminder.core.exceptions import EmiAgentException
from emi_reminder.core.resolver import ResponseResolver
from emi_reminder.core.responder import RuleBasedResponder
from emi_reminder.core.session import SessionManager
from emi_reminder.api.routes import voice, conversation, health
from emi_reminder.services.llm import LLMService
from emi_reminder.services.sentiment import SentimentService
from emi_reminder.services.nlu import IntentServiceClient
from emi_reminder.services.tts import TTSService
from emi_reminder.services.memory import ClientStore, TranscriptArchiveService
from emi_reminder.logging.agent_logger import AgentLogger

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def _start_services(app: FastAPI):
    state = app.state

    state.agent_logger = AgentLogger(str(settings.AGENT_LOG_PATH))
    await state.agent_logger.initialize_log()

    # Remote reply tiers are optional; each one disables itself when unconfigured
    state.llm_service = LLMService()
    await state.llm_service.initialize()
    state.nlu_service = IntentServiceClient()
    await state.nlu_service.initialize()
    state.tts_service = TTSService()
    await state.tts_service.initialize()

    state.client_store = ClientStore()
    state.transcript_archive = TranscriptArchiveService()
    state.session_manager = SessionManager()
    await state.session_manager.start()
    state.background_tasks = set()

    state.resolver = ResponseResolver(
        llm=state.llm_service,
        sentiment_classifier=SentimentService(state.llm_service),
        intent_service=state.nlu_service,
        responder=RuleBasedResponder(),
        agent_logger=state.agent_logger
    )


async def _stop_services(app: FastAPI):
    state = app.state

    await state.session_manager.stop()
    for service in (state.llm_service, state.nlu_service, state.tts_service):
        await service.cleanup()

    pending = list(state.background_tasks)
    if pending:
        logger.info(f"Waiting for {len(pending)} archive writes")
        await asyncio.gather(*pending, return_exceptions=True)

    await state.agent_logger.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start services before serving; release them on shutdown."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION} ({settings.ENVIRONMENT})")

    await _start_services(app)

    tiers = ["llm"] if app.state.llm_service.is_initialized else []
    if app.state.nlu_service.is_configured:
        tiers.append("nlu")
    tiers.append("rules")

    logger.info(f"Reply tiers: {' → '.join(tiers)}")
    logger.info(f"Listening on http://{settings.HOST}:{settings.PORT} (docs at /docs)")
    await app.state.agent_logger.log_system_event("Application started", {
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "reply_tiers": ", ".join(tiers)
    })

    yield

    logger.info("Shutting down...")
    await app.state.agent_logger.log_system_event("Application shutting down", {})
    await _stop_services(app)
    logger.info("Shutdown complete.")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
    ## EMI Reminder Voice Agent

    Reminds borrowers about upcoming loan installments and answers their
    questions in a turn-taking voice conversation.

    - 🎤 Browser speech recognition streamed over `WS /api/voice/session`
    - 🔄 Reply fallback chain: LLM → NLU → rule-based responder
    - 🔊 Neural speech synthesis with the browser voice as fallback
    - 🙂 Sentiment-aware replies
    """,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

# ==================
# MIDDLEWARE
# ==================

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_headers(request: Request, call_next):
    """Report processing time and echo the caller's correlation id."""
    started = time.perf_counter()
    response = await call_next(request)
    response.headers["X-Process-Time-Ms"] = f"{(time.perf_counter() - started) * 1000:.2f}"

    request_id = request.headers.get("X-Request-Id")
    if request_id:
        response.headers["X-Request-Id"] = request_id
    return response


# ==================
# EXCEPTION HANDLERS
# ==================

def _error_response(status_code: int, error: str, message: str, details=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "message": message, "details": details}
    )


@app.exception_handler(EmiAgentException)
async def emi_agent_exception_handler(request: Request, exc: EmiAgentException):
    logger.warning(f"{exc.error_code} on {request.url.path}: {exc.message}")
    return _error_response(exc.status_code, exc.error_code, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return _error_response(
        422,
        "VALIDATION_ERROR",
        "Invalid request body",
        {"validation_errors": [error.get("msg") for error in exc.errors()]}
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unexpected error on {request.url.path}: {exc}")
    agent_logger = getattr(request.app.state, "agent_logger", None)
    if agent_logger is not None:
        await agent_logger.log_error(
            request.url.path,
            type(exc).__name__,
            str(exc),
            traceback.format_exc() if settings.DEBUG else None
        )
    return _error_response(
        500,
        "INTERNAL_ERROR",
        "An unexpected error occurred",
        str(exc) if settings.DEBUG else None
    )


# ==================
# ROUTES
# ==================

app.include_router(health.router, tags=["Health"])
app.include_router(conversation.router, prefix="/api", tags=["Conversation"])
app.include_router(voice.router, prefix="/api", tags=["Voice"])


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/docs",
        "health": "/health"
    }


if settings.DEBUG:
    @app.get("/debug/config")
    async def debug_config():
        """Effective provider configuration (DEBUG mode only)."""
        return {
            "environment": settings.ENVIRONMENT,
            "llm_model": settings.LLM_MODEL_ID,
            "nlu_url": settings.NLU_URL,
            "tts_voice": settings.TTS_VOICE_ID,
            "provider_timeout_seconds": settings.PROVIDER_TIMEOUT_SECONDS
        }
