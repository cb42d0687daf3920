"""FastAPI server for the Profit Scout financial assistant."""

# Load .env FIRST — must happen before any other imports so that env vars
# (especially LANGCHAIN_TRACING_V2 / LANGCHAIN_API_KEY) are available when
# @traceable decorators are evaluated at module-import time.
from dotenv import load_dotenv
load_dotenv()

from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from profit_scout.core.errors import InvalidInput, StoreUnavailable
from profit_scout.core.guards import validate_session_id
from profit_scout.core.protocol import DialogueTurn, Session
from profit_scout.memory.history_merger import merge, render_transcript
from profit_scout.utils.logging import get_logger, preview
from profit_scout.workflow.orchestrator import TurnOrchestrator, get_orchestrator, shutdown_orchestrator

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # let in-flight summaries finish before the process exits
    shutdown_orchestrator(wait=True)


app = FastAPI(
    title="Profit Scout",
    description=(
        "Conversational financial analyst. Answers questions about companies "
        "and keeps a rolling summary of each conversation. "
        "Not personalised investment advice."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],            # tighten in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Error mapping ──────────────────────────────────────────────────────────────

@app.exception_handler(InvalidInput)
async def invalid_input_handler(request: Request, exc: InvalidInput) -> JSONResponse:
    return JSONResponse(status_code=422, content=exc.to_dict())


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable) -> JSONResponse:
    logger.error("%s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"error": "store_unavailable", "message": "Conversation history is temporarily unavailable."},
    )


# ── Request / Response models ──────────────────────────────────────────────────

class ChatRequest(BaseModel):
    question: str
    session_id: Optional[str] = None        # omit to start a new session
    company_context: Optional[str] = None   # company name or ticker, if known
    user_id: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "question": "What about MSFT revenue?",
                "session_id": "3f0c9a3e5e2d4d1b9b7a8c6d5e4f3a2b",
            }
        }
    }


class ChatResponse(BaseModel):
    answer: str
    session_id: Optional[str]   # always returned so the client can continue the session
    query_id: Optional[str]
    summary_triggered: bool
    company_context: Optional[str] = None


class SessionsResponse(BaseModel):
    sessions: List[Session]


class TranscriptResponse(BaseModel):
    session_id: str
    turns: List[DialogueTurn]
    transcript: str


class SummaryResponse(BaseModel):
    session_id: str
    summary_id: str
    query_id: str
    summary: str
    timestamp: datetime


class SummarizeRequest(BaseModel):
    query_id: str


class SummarizeResponse(BaseModel):
    session_id: str
    query_id: str
    summary: Optional[str]
    persisted: bool


def _session_path_id(session_id: str) -> str:
    sid = validate_session_id(session_id)
    if not sid:
        raise InvalidInput("session_id", "Session id is required.")
    return sid


# ── Routes ─────────────────────────────────────────────────────────────────────

@app.get("/health", summary="Health check")
def health_check() -> dict:
    """Returns 200 OK when the service is running."""
    return {"status": "ok"}


@app.post("/chat", response_model=ChatResponse, summary="Ask a financial question")
def chat(
    request: ChatRequest,
    orchestrator: TurnOrchestrator = Depends(get_orchestrator),
) -> ChatResponse:
    """
    Answer a question within a session.

    Pass ``session_id`` to continue a conversation; omit it and a new
    session id is returned.  Model and store failures never produce a 5xx
    here: the answer degrades to a fallback text instead.
    """
    logger.info("POST /chat  question=%s  session=%s", preview(request.question), request.session_id)
    result = orchestrator.submit_turn(
        request.question,
        session_id=request.session_id,
        company_context=request.company_context,
        user_id=request.user_id or "anonymous",
    )
    return ChatResponse(
        answer=result.answer,
        session_id=result.session_id,
        query_id=result.query_id,
        summary_triggered=result.summary_triggered,
        company_context=result.company_context,
    )


@app.get("/sessions", response_model=SessionsResponse, summary="List sessions")
def list_sessions(
    user_id: Optional[str] = None,
    orchestrator: TurnOrchestrator = Depends(get_orchestrator),
) -> SessionsResponse:
    """Return sessions, most recently active first, optionally for one user."""
    return SessionsResponse(sessions=orchestrator.store.list_sessions(user_id=user_id))


@app.get(
    "/sessions/{session_id}/transcript",
    response_model=TranscriptResponse,
    summary="Merged transcript for a session",
)
def get_transcript(
    session_id: str,
    orchestrator: TurnOrchestrator = Depends(get_orchestrator),
) -> TranscriptResponse:
    """
    Return the session's queries and responses in causal order, both as
    structured turns and as ``User:`` / ``AI:`` text.
    """
    sid = _session_path_id(session_id)
    store = orchestrator.store
    turns = merge(store.list_queries(sid), store.list_responses(sid))
    return TranscriptResponse(session_id=sid, turns=turns, transcript=render_transcript(turns))


@app.get(
    "/sessions/{session_id}/summary",
    response_model=SummaryResponse,
    summary="Latest conversation summary",
)
def get_summary(
    session_id: str,
    orchestrator: TurnOrchestrator = Depends(get_orchestrator),
) -> SummaryResponse:
    sid = _session_path_id(session_id)
    entry = orchestrator.store.latest_summary(sid)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"No summary for session {sid}.")
    return SummaryResponse(
        session_id=sid,
        summary_id=entry.id,
        query_id=entry.query_id,
        summary=entry.text,
        timestamp=entry.timestamp,
    )


@app.post(
    "/sessions/{session_id}/summarize",
    response_model=SummarizeResponse,
    summary="Regenerate the session summary now",
)
def summarize(
    session_id: str,
    request: SummarizeRequest,
    orchestrator: TurnOrchestrator = Depends(get_orchestrator),
) -> SummarizeResponse:
    """
    Rebuild the summary from the stored conversation and persist it against
    ``query_id``.  ``summary`` is null when the model produced nothing; the
    previous summary then stays the latest.
    """
    sid = _session_path_id(session_id)
    summary = orchestrator.summarize_session(sid, request.query_id)
    return SummarizeResponse(
        session_id=sid,
        query_id=request.query_id,
        summary=summary,
        persisted=summary is not None,
    )
