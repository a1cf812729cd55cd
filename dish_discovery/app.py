from __future__ import annotations

import logging
import os
import uuid

from fastapi import Depends, FastAPI, Request
from pydantic import ValidationError
from starlette.middleware.sessions import SessionMiddleware

from .analytics.aggregator import compute_analytics
from .analytics.store import get_events
from .chat.models import ChatRequest, ChatResponse, ChatTurn, ConversationSession
from .chat.pipeline import DiscoveryServices, build_services, handle_turn
from .search.cache import BoundedCache

logger = logging.getLogger(__name__)

SESSION_STORE_SIZE = 1000
SESSION_TTL_SECONDS = 4 * 3600

app = FastAPI(title="Dish Discovery API", version="1.0.0")
app.add_middleware(
    SessionMiddleware,
    secret_key=os.environ.get("SESSION_SECRET", "dish-discovery-secret-change-in-production"),
)
app.state.sessions = BoundedCache(max_size=SESSION_STORE_SIZE, ttl=SESSION_TTL_SECONDS)

_services: DiscoveryServices | None = None


def get_services() -> DiscoveryServices:
    global _services
    if _services is None:
        _services = build_services()
    return _services


def _session_id(request: Request) -> str:
    sid = request.session.get("sid")
    if not sid:
        sid = uuid.uuid4().hex
        request.session["sid"] = sid
    return sid


def _load_session(request: Request) -> ConversationSession:
    raw = request.app.state.sessions.get(_session_id(request))
    if not raw:
        return ConversationSession()
    try:
        return ConversationSession.model_validate(raw)
    except ValidationError:
        logger.warning("Discarding unreadable session state", exc_info=True)
        return ConversationSession()


# ── Public endpoints ─────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


# ── Chat endpoints ───────────────────────────────────────────────────────


@app.post("/discover/chat", response_model=ChatResponse)
def discover_chat(
    body: ChatRequest,
    request: Request,
    services: DiscoveryServices = Depends(get_services),
) -> ChatResponse:
    # 1. Load conversation state; state sent by the client wins
    session = _load_session(request)
    chat_state = body.chat_state or session.chat_state
    grounded = body.grounded or session.grounded

    # 2. Run the turn
    response = handle_turn(body.message, chat_state, grounded, session.history, services)

    # 3. Save state and the trimmed history
    window = services.pipeline_config.history_window
    history = [
        *session.history,
        ChatTurn(role="user", content=body.message),
        ChatTurn(role="assistant", content=response.message),
    ][-window:]
    updated = ConversationSession(chat_state=response.chat_state, grounded=response.grounded, history=history)
    request.app.state.sessions.set(_session_id(request), updated.model_dump(mode="json"))

    return response


@app.post("/discover/reset")
def discover_reset(request: Request) -> dict[str, str]:
    request.app.state.sessions.delete(_session_id(request))
    return {"status": "reset"}


# ── Admin endpoints ──────────────────────────────────────────────────────


@app.get("/analytics")
def analytics() -> dict:
    return compute_analytics(get_events())


@app.get("/cache/stats")
def cache_stats(
    request: Request,
    services: DiscoveryServices = Depends(get_services),
) -> dict:
    return {
        "translation": services.translation_cache.stats(),
        "sessions": request.app.state.sessions.stats(),
    }
