"""
Error taxonomy for the conversation pipeline.

    StoreUnavailable   backing store unreachable or write rejected
    ReasoningFailure   language model raised, timed out or broke its output schema
    ToolFailure        a single data tool failed
    InvalidInput       malformed request, rejected before any I/O

Only ``InvalidInput`` ever leaves ``submit_turn``; the others are caught at
the engine / orchestrator boundaries and turned into fallback behaviour.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ProfitScoutError(Exception):
    """Base class for all errors raised by profit_scout."""


class StoreUnavailable(ProfitScoutError):
    """The conversation store could not be reached or rejected a write."""

    def __init__(self, operation: str, detail: str = "") -> None:
        self.operation = operation
        self.detail = detail
        message = f"Conversation store unavailable during {operation}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class ReasoningFailure(ProfitScoutError):
    """The reasoning capability failed or returned unusable output."""


class ToolFailure(ProfitScoutError):
    """An individual tool call failed."""

    def __init__(self, tool_name: str, detail: str) -> None:
        self.tool_name = tool_name
        self.detail = detail
        super().__init__(f"Tool {tool_name} failed: {detail}")


class InvalidInput(ProfitScoutError, ValueError):
    """The caller supplied a malformed request."""

    def __init__(self, field: str, message: str, value: Optional[Any] = None) -> None:
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> Dict[str, Any]:
        return {"error": "invalid_input", "field": self.field, "message": self.message}
