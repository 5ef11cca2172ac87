"""
Support Chat Service
Handles: chat messages, transcript history
Port: 3000

The orchestrator (store + provider) is built once in the lifespan hook and
handed to routes through get_orchestrator(). Every failure is rendered as
{"error": ..., "category": ...}; internal detail only goes to the logs.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, configure_logging, load_settings
from .database import TranscriptStore, create_db_engine, init_db
from .exceptions import ChatError, UnexpectedError, ValidationError
from .models import ChatMessage, ChatReply, HealthResponse, HistoryResponse
from .orchestrator import ChatOrchestrator
from .providers import create_provider

logger = logging.getLogger(__name__)


def build_orchestrator(settings: Settings) -> ChatOrchestrator:
    engine = create_db_engine(settings.database_url)
    init_db(engine)
    store = TranscriptStore(engine)
    return ChatOrchestrator(store, create_provider(settings))


def get_orchestrator(request: Request) -> ChatOrchestrator:
    return request.app.state.orchestrator


def _error_response(error: ChatError) -> JSONResponse:
    return JSONResponse(
        status_code=error.status_code,
        content={"error": error.message, "category": error.category},
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = settings or load_settings()
        configure_logging(cfg.log_level)
        logger.info(
            "Starting support chat: provider=%s model=%s mock=%s",
            cfg.llm_provider, cfg.model, cfg.use_mock_ai,
        )
        orchestrator = build_orchestrator(cfg)
        app.state.orchestrator = orchestrator
        logger.info("Database initialized at %s", cfg.db_path)
        yield
        aclose = getattr(orchestrator.provider, "aclose", None)
        if aclose is not None:
            await aclose()

    app = FastAPI(title="Support Chat Service", version="1.0.0", lifespan=lifespan)

    cors_origins = settings.cors_origins if settings else load_settings().cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError):
        if exc.status_code >= 500:
            logger.warning("%s %s -> %s (%s)", request.method, request.url.path, exc.status_code, exc.category)
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return _error_response(ValidationError(detail))

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error_response(UnexpectedError())

    # ── Endpoints ─────────────────────────────────────────────────────────────

    @app.post("/chat/message", response_model=ChatReply)
    async def post_message(
        body: ChatMessage,
        orchestrator: ChatOrchestrator = Depends(get_orchestrator),
    ):
        outcome = await orchestrator.handle_message(body.message, body.session_id)
        return ChatReply(reply=outcome.reply, session_id=outcome.session_id)

    @app.get("/chat/history/{session_id}", response_model=HistoryResponse)
    async def get_history(
        session_id: str,
        orchestrator: ChatOrchestrator = Depends(get_orchestrator),
    ):
        messages = await orchestrator.get_history(session_id)
        return HistoryResponse(messages=messages)

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(status="ok", service="support-chat")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _settings = load_settings()
    configure_logging(_settings.log_level)
    uvicorn.run("support_chat.main:app", host="0.0.0.0", port=_settings.port)
