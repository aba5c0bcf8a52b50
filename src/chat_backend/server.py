"""FastAPI application exposing the persisted chat over a JSON API."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import Settings, load_config
from .context import ContextWindowBuilder
from .errors import ValidationError
from .llm import ResponseProvider, create_from_settings
from .models import Turn
from .orchestrator import ConversationOrchestrator
from .store import MessageStore

logger = logging.getLogger(__name__)

HEALTH_MESSAGE = "AI Chat Backend is running"


# -----------------------------
# Pydantic request/response
# -----------------------------
class MessageRequest(BaseModel):
    # Blank/missing text is rejected by the orchestrator with a 400, not here.
    message: Optional[str] = Field(default=None, description="User message text.")


class TurnOut(BaseModel):
    id: int
    role: str
    content: str
    timestamp: str


class MessagesResponse(BaseModel):
    success: bool = True
    messages: List[TurnOut]


class SubmitResponse(MessagesResponse):
    latestResponse: str


class ClearResponse(BaseModel):
    success: bool = True
    message: str


# -----------------------------
# Utilities
# -----------------------------
def _failure(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def _turns_out(turns: List[Turn]) -> List[TurnOut]:
    return [TurnOut(**t.to_dict()) for t in turns]


# -----------------------------
# App factory
# -----------------------------
def create_app(
    config_path: Optional[str] = None,
    settings: Optional[Settings] = None,
    store: Optional[MessageStore] = None,
    provider: Optional[ResponseProvider] = None,
) -> FastAPI:
    settings = settings or Settings.from_config(load_config(config_path))

    # Services
    store = store or MessageStore(settings.db_path)
    provider = provider or create_from_settings(settings)
    orchestrator = ConversationOrchestrator(
        store, provider, ContextWindowBuilder(settings.window_size)
    )

    app = FastAPI(title="AI Chat Backend", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.store = store
    app.state.orchestrator = orchestrator

    @app.exception_handler(RequestValidationError)
    async def bad_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("Rejected malformed request to %s: %s", request.url.path, exc.errors())
        return _failure(400, "Message is required")

    @app.get("/api/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok", "message": HEALTH_MESSAGE}

    @app.get("/api/config")
    def get_config() -> Dict[str, Any]:
        public = settings.public_dict()
        public["provider"] = provider.kind.value
        return public

    @app.get("/api/messages", response_model=MessagesResponse)
    def list_messages():
        try:
            turns = store.read_all()
        except Exception:
            logger.exception("Error fetching messages")
            return _failure(500, "Failed to fetch messages")
        return MessagesResponse(messages=_turns_out(turns))

    @app.post("/api/messages", response_model=SubmitResponse)
    def submit_message(req: MessageRequest):
        try:
            result = orchestrator.submit_with_reply(req.message or "")
        except ValidationError as e:
            return _failure(400, str(e) or "Message is required")
        except Exception:
            logger.exception("Error processing message")
            return _failure(500, "Failed to process message")
        return SubmitResponse(
            messages=_turns_out(result.messages),
            latestResponse=result.reply.text,
        )

    @app.delete("/api/messages", response_model=ClearResponse)
    def clear_messages():
        logger.info("Clear chat history request received")
        try:
            store.clear()
        except Exception:
            logger.exception("Error clearing messages")
            return _failure(500, "Failed to clear messages")
        return ClearResponse(message="Chat history cleared")

    return app
