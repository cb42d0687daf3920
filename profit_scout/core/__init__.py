"""Core data structures, errors and input guards for the conversation pipeline"""

from .errors import (
    InvalidInput,
    ProfitScoutError,
    ReasoningFailure,
    StoreUnavailable,
    ToolFailure,
)
from .guards import extract_company_context, validate_question, validate_session_id
from .protocol import (
    AnswerOutcome,
    AnswerStatus,
    ConversationHistory,
    DialogueTurn,
    QueryEntry,
    ResponseEntry,
    Session,
    SpecialistOutput,
    SpecialistOutputEntry,
    Speaker,
    SummaryEntry,
    TurnResult,
    TurnState,
)

__all__ = [
    # Errors
    "ProfitScoutError",
    "StoreUnavailable",
    "ReasoningFailure",
    "ToolFailure",
    "InvalidInput",
    # Guards
    "validate_question",
    "validate_session_id",
    "extract_company_context",
    # Protocol
    "Session",
    "QueryEntry",
    "ResponseEntry",
    "SpecialistOutputEntry",
    "SummaryEntry",
    "DialogueTurn",
    "ConversationHistory",
    "Speaker",
    "SpecialistOutput",
    "AnswerOutcome",
    "AnswerStatus",
    "TurnResult",
    "TurnState",
]
