"""
Conversation Protocol

Defines the data structures shared by the store, the merger, the engines and
the orchestrator.  Everything a session owns (queries, responses, specialist
outputs, summaries, metadata) is an immutable entry with a store-assigned
timestamp and an opaque string id.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class Speaker(str, Enum):
    """Who said a line of the transcript"""
    USER = "user"
    ASSISTANT = "assistant"

    @property
    def label(self) -> str:
        return "User" if self is Speaker.USER else "AI"


class TurnState(str, Enum):
    """Progress of a single turn through the orchestrator"""
    CREATED = "created"
    QUERY_PERSISTED = "query_persisted"
    ANSWERED = "answered"
    RESPONSE_PERSISTED = "response_persisted"
    SUMMARIZED = "summarized"
    SUMMARY_PERSISTED = "summary_persisted"


class AnswerStatus(str, Enum):
    """How the answer engine arrived at its text"""
    ANSWERED = "answered"
    EMPTY = "empty"
    FAILED = "failed"


# ── Stored entities ────────────────────────────────────────────────────────────

class Session(BaseModel):
    """
    A conversation session. Owns every entry below.
    """
    session_id: str = Field(description="Opaque session identifier")
    user_id: str = Field(description="Owning user id")
    created_at: datetime = Field(description="When the session was created")
    last_active: datetime = Field(description="Last turn time, never decreases")
    company_ticker: Optional[str] = Field(None, description="Company or ticker the session is about")

    class Config:
        json_schema_extra = {
            "example": {
                "session_id": "3f0c9a3e5e2d4d1b9b7a8c6d5e4f3a2b",
                "user_id": "anonymous",
                "created_at": "2026-02-15T10:00:00+00:00",
                "last_active": "2026-02-15T10:05:00+00:00",
                "company_ticker": "MSFT",
            }
        }


class BaseEntry(BaseModel):
    id: str = Field(description="Opaque entry id")
    timestamp: datetime = Field(description="Server-assigned timestamp")
    seq: int = Field(0, description="Store arrival order, breaks timestamp ties")


class QueryEntry(BaseEntry):
    text: str


class ResponseEntry(BaseEntry):
    text: str
    query_id: str = Field(description="Id of the QueryEntry this answers")


class SpecialistOutputEntry(BaseEntry):
    specialist_type: str = Field(description="Tool or sub-agent that produced the output")
    output_text: str
    file_links: List[str] = Field(default_factory=list, description="Source references")


class SummaryEntry(BaseEntry):
    text: str = Field(description="Summary text, target length under 1000 characters")
    query_id: str = Field(description="Id of the query whose turn produced this summary")


class SessionMetadataEntry(BaseEntry):
    key: str
    value: str


# ── Derived views ──────────────────────────────────────────────────────────────

class DialogueTurn(BaseModel):
    """One line of the merged transcript"""
    speaker: Speaker
    text: str


class ConversationHistory(BaseModel):
    """Everything the summarizer needs from the store for one session"""
    queries: List[QueryEntry] = Field(default_factory=list)
    responses: List[ResponseEntry] = Field(default_factory=list)
    latest_summary: Optional[SummaryEntry] = None


class LatestTurn(BaseModel):
    """Most recent entry of each kind for a session"""
    query: Optional[QueryEntry] = None
    response: Optional[ResponseEntry] = None
    specialist_output: Optional[SpecialistOutputEntry] = None
    summary: Optional[SummaryEntry] = None


# ── Engine inputs / outputs ────────────────────────────────────────────────────

class SpecialistOutput(BaseModel):
    """A tool result gathered while answering, not yet persisted"""
    specialist_type: str
    output_text: str
    file_links: List[str] = Field(default_factory=list)


class AnswerOutput(BaseModel):
    """Shape the answer engine expects back from the model"""
    answer: str


class SummaryOutput(BaseModel):
    """Shape the summarizer expects back from the model"""
    summary_text: str


class AnswerOutcome(BaseModel):
    answer: str
    status: AnswerStatus = AnswerStatus.ANSWERED
    specialist_outputs: List[SpecialistOutput] = Field(default_factory=list)


class TurnResult(BaseModel):
    """
    What ``submit_turn`` hands back to the caller
    """
    answer: str = Field(description="User-facing answer, always non-empty")
    session_id: Optional[str] = Field(None, description="Session to resupply on the next turn")
    query_id: Optional[str] = Field(None, description="Id of the persisted query, if persisted")
    summary_triggered: bool = Field(False, description="Whether deferred summarization was scheduled")
    state: TurnState = Field(TurnState.CREATED, description="State reached on the critical path")
    company_context: Optional[str] = Field(None, description="Company context used for the answer")

    class Config:
        json_schema_extra = {
            "example": {
                "answer": "Microsoft reported revenue of ...",
                "session_id": "3f0c9a3e5e2d4d1b9b7a8c6d5e4f3a2b",
                "query_id": "9d8c7b6a5f4e3d2c1b0a9f8e7d6c5b4a",
                "summary_triggered": True,
                "state": "answered",
                "company_context": "MSFT",
            }
        }
