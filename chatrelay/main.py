"""
FastAPI application exposing the chat relay: user chat, polling, debrief,
export and the operator panel.
"""
import json
import logging
import math
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response
from fastapi.templating import Jinja2Templates
from starlette.exceptions import HTTPException as StarletteHTTPException

from chatrelay.auth import require_basic_auth
from chatrelay.config import Settings, get_settings
from chatrelay.errors import RelayError, Unauthorized
from chatrelay.models import (
    ChatRequest,
    ChatResult,
    Debrief,
    InboxResponse,
    OperatorReplyRequest,
    OperatorReplyResponse,
    OperatorTranscript,
    PollResult,
    SessionCreateResponse,
    SessionSummary,
)
from chatrelay.responder import Responder, build_responder
from chatrelay.routing import RoutingEngine
from chatrelay.session_manager import SessionStore

SERVICE_NAME = "chatrelay"
VERSION = "1.0.0"

logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))

router = APIRouter()
operator_router = APIRouter(dependencies=[Depends(require_basic_auth)])


def get_engine(request: Request) -> RoutingEngine:
    return request.app.state.engine


def parse_cursor(after: Optional[str]) -> float:
    """Missing or blank means 0; anything non-numeric matches no message."""
    if after is None or not after.strip():
        return 0
    try:
        return float(after)
    except ValueError:
        return math.nan


def _error_response(status_code: int, message: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Basic"} if isinstance(exc, Unauthorized) else None
    return _error_response(exc.status_code, exc.message, headers)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_response(400, "Invalid request")


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(500, "Internal error")


# ---------------------------------------------------------------------------
# Public routes
# ---------------------------------------------------------------------------

@router.get("/", response_class=PlainTextResponse)
async def ping():
    return "pong"


@router.get("/health")
async def health_check(engine: RoutingEngine = Depends(get_engine)):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": VERSION,
        "responder": engine.responder.name,
    }


@router.post("/api/session", response_model=SessionCreateResponse)
async def create_session(
    mode: Optional[str] = None,
    engine: RoutingEngine = Depends(get_engine),
):
    """Create a chat session; ?mode=AI|HUMAN forces the condition."""
    session = engine.create_session(mode)
    return SessionCreateResponse(session_id=session.id, condition=session.condition)


@router.post("/api/chat", response_model=ChatResult, response_model_exclude_none=True)
async def chat(
    payload: Optional[ChatRequest] = Body(default=None),
    sessionId: Optional[str] = None,
    session: Optional[str] = None,
    engine: RoutingEngine = Depends(get_engine),
):
    """Submit a user message."""
    payload = payload or ChatRequest()
    session_id = sessionId or session or payload.session_id
    return await engine.handle_user_message(session_id, payload.text)


@router.get("/api/messages", response_model=PollResult)
async def poll_messages(
    sessionId: Optional[str] = None,
    session: Optional[str] = None,
    after: Optional[str] = None,
    engine: RoutingEngine = Depends(get_engine),
):
    """Messages newer than the ``after`` cursor."""
    return engine.poll(sessionId or session, parse_cursor(after))


@router.get("/debrief/{session_id}", response_model=Debrief)
async def debrief(session_id: str, engine: RoutingEngine = Depends(get_engine)):
    return engine.debrief(session_id)


@router.get("/export", dependencies=[Depends(require_basic_auth)])
async def export_sessions(engine: RoutingEngine = Depends(get_engine)):
    """Download every session as a JSON attachment."""
    dump = [s.model_dump(by_alias=True, mode="json") for s in engine.export()]
    return Response(
        content=json.dumps(dump, indent=2, ensure_ascii=False),
        media_type="application/json",
        headers={"Content-Disposition": 'attachment; filename="sessions.json"'},
    )


@router.get("/api/_debug/sessions", response_model=list[SessionSummary])
async def debug_sessions(engine: RoutingEngine = Depends(get_engine)):
    return engine.debug_sessions()


# ---------------------------------------------------------------------------
# Operator routes (behind the optional Basic gate)
# ---------------------------------------------------------------------------

@operator_router.get("/operator", response_class=HTMLResponse)
async def operator_page(request: Request):
    """Serve the operator panel."""
    return templates.TemplateResponse(request, "operator.html", {"service": SERVICE_NAME})


@operator_router.get("/api/operator/inbox", response_model=InboxResponse)
async def operator_inbox(engine: RoutingEngine = Depends(get_engine)):
    return InboxResponse(items=engine.operator_inbox())


@operator_router.get("/api/operator/messages", response_model=OperatorTranscript)
async def operator_messages(
    sessionId: Optional[str] = None,
    engine: RoutingEngine = Depends(get_engine),
):
    return engine.operator_transcript(sessionId)


@operator_router.post("/api/operator/reply", response_model=OperatorReplyResponse)
async def operator_reply(
    payload: Optional[OperatorReplyRequest] = Body(default=None),
    engine: RoutingEngine = Depends(get_engine),
):
    payload = payload or OperatorReplyRequest()
    engine.operator_reply(payload.session_id, payload.text)
    return OperatorReplyResponse()


def create_app(
    settings: Optional[Settings] = None,
    responder: Optional[Responder] = None,
) -> FastAPI:
    """Build an application with its own store, engine and responder."""
    settings = settings or get_settings()
    responder = responder or build_responder(settings)
    store = SessionStore(system_prompt=settings.system_prompt)
    engine = RoutingEngine(store, responder, default_mode=settings.session_mode)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Release the responder's connections on shutdown."""
        async with responder:
            yield

    app = FastAPI(title="Chat Relay", version=VERSION, lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.cors_origin == "*" else [settings.cors_origin],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        allow_credentials=False,
    )

    app.add_exception_handler(RelayError, relay_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(router)
    app.include_router(operator_router)
    return app


_settings = get_settings()
logging.basicConfig(level=_settings.log_level.upper(), format="%(asctime)s %(name)s %(levelname)s %(message)s")

app = create_app(_settings)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=_settings.port)
