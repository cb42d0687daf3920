"""
Input guards for the chat turn.

This module runs *before* any store or model call:

Public helpers
--------------
- ``validate_question(question, max_chars)``   → cleaned question or InvalidInput
- ``validate_session_id(session_id)``          → cleaned id / None or InvalidInput
- ``extract_company_context(text, include_bare_tickers)`` → company name / ticker or None

Design notes
------------
- Pure functions, no I/O, safe to call from any thread.
- ``extract_company_context`` is a low-confidence hint. It only accepts
  capitalised names or ticker-shaped tokens so ordinary sentences such as
  "for a company like this" produce ``None``. Callers must never refuse to
  answer because it returned nothing.
"""

from __future__ import annotations

import re
from typing import Optional

from .errors import InvalidInput

# ── Constants ──────────────────────────────────────────────────────────────────

_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_\-]{1,128}$")

# Upper-case tokens that look like tickers but are finance vocabulary.
_NOT_TICKERS: frozenset[str] = frozenset({
    "AI", "API", "CEO", "CFO", "COO", "CTO", "EPS", "ETF", "ETFS", "EV",
    "EBIT", "EBITDA", "FCF", "FED", "FX", "GAAP", "GDP", "HI", "IPO", "IRA",
    "IRR", "LLC", "NAV", "NPV", "OK", "PE", "PEG", "ROA", "ROE", "ROI",
    "SEC", "TTM", "US", "USA", "USD", "YOY", "YTD", "QOQ", "CAGR", "CPI",
    # trading verbs and words people type in capitals for emphasis
    "BUY", "SELL", "HOLD", "LONG", "SHORT", "CALL", "PUT", "DIP", "MOON",
    "WHAT", "WHY", "HOW", "WHO", "WHEN", "IS", "IT", "NOW", "NOT", "NO",
    "YES", "THE", "AND", "OR", "TO", "IN", "ON", "OF", "AT", "DO", "ARE",
    "CAN", "ME", "MY", "WE", "ALL", "ANY", "HELP", "PLEASE", "ASAP", "FYI",
})

# Capitalised words that follow "about"/"for"/"on" without naming a company.
_GENERIC_WORDS: frozenset[str] = frozenset({
    "A", "An", "The", "This", "That", "These", "Those", "It", "Its", "My",
    "Our", "Your", "Their", "What", "How", "Why", "Me", "Us", "Them",
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday",
    "January", "February", "March", "April", "May", "June", "July", "August",
    "September", "October", "November", "December",
})

_PERIOD_RE = re.compile(r"^(?:Q[1-4]|H[12]|FY\d{0,4})$")

_NAME = r"[A-Z][A-Za-z0-9&\-]*(?:\s+[A-Z][A-Za-z0-9&\-]*){0,2}"

_TICKER_RE = re.compile(r"(?:^|[\s(])\$?([A-Z]{2,5})(?=$|[\s,.?!)'’])")
_CASHTAG_RE = re.compile(r"\$([A-Za-z]{1,5})\b")

# Ordered: explicit legal suffix first, then prepositions.
_NAME_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(rf"\b({_NAME})\s+(?:Inc|Corp|Corporation|Company|Co|Ltd|Group|Holdings|plc)\b\.?"),
    re.compile(rf"\b(?:about|for|on|of|at|into)\s+({_NAME})"),
)

_SUFFIX_WORDS = frozenset({"Inc", "Corp", "Corporation", "Company", "Co", "Ltd", "Group", "Holdings", "plc"})


# ── Internal helpers ───────────────────────────────────────────────────────────

def _clean_candidate(candidate: str) -> Optional[str]:
    words = candidate.split()
    while words and words[-1] in _SUFFIX_WORDS:
        words.pop()
    if not words or words[0] in _GENERIC_WORDS or _PERIOD_RE.match(words[0]):
        return None
    if words[0] in _NOT_TICKERS:
        return None
    return " ".join(words)


def _find_bare_ticker(text: str) -> Optional[str]:
    for match in _TICKER_RE.finditer(text):
        token = match.group(1)
        if token not in _NOT_TICKERS:
            return token
    return None


# ── Public API ─────────────────────────────────────────────────────────────────

def validate_question(question: object, max_chars: int = 4000) -> str:
    """
    Return the stripped question, or raise :class:`InvalidInput`.

    Rejects non-strings, empty / whitespace-only text and text longer than
    *max_chars*.
    """
    if not isinstance(question, str):
        raise InvalidInput("question", "Question must be a string.")
    cleaned = question.strip()
    if not cleaned:
        raise InvalidInput("question", "Question must not be empty.")
    if len(cleaned) > max_chars:
        raise InvalidInput(
            "question",
            f"Question must be at most {max_chars} characters.",
            value=len(cleaned),
        )
    return cleaned


def validate_session_id(session_id: Optional[str]) -> Optional[str]:
    """Return *session_id* stripped (``None`` / blank → ``None``) or raise InvalidInput."""
    if session_id is None:
        return None
    cleaned = session_id.strip()
    if not cleaned:
        return None
    if not _SESSION_ID_RE.match(cleaned):
        raise InvalidInput("session_id", "Session id contains unsupported characters.")
    return cleaned


def extract_company_context(text: str, include_bare_tickers: bool = True) -> Optional[str]:
    """
    Best-effort guess at the company a message is about.

    Checks, in order:
    1. a cashtag ("$aapl")
    2. an upper-case ticker-shaped token ("MSFT"), unless
       *include_bare_tickers* is false
    3. a capitalised name followed by a legal suffix ("Globex Corp")
    4. a capitalised name after "about" / "for" / "on" / "of" / "at"

    A bare upper-case token is the weakest signal (people type "BUY" or
    "WHAT" in capitals), so callers that overwrite stored context pass
    ``include_bare_tickers=False``.

    Returns
    -------
    str | None
        The name or ticker, or ``None`` when nothing plausible is found.

    Examples
    --------
    >>> extract_company_context("What about MSFT revenue?")
    'MSFT'
    >>> extract_company_context("Tell me about Innovatech")
    'Innovatech'
    >>> extract_company_context("Is now a good time for a company like this?") is None
    True
    >>> extract_company_context("Compare NVDA and AMD", include_bare_tickers=False) is None
    True
    """
    if not text or not text.strip():
        return None

    cashtag = _CASHTAG_RE.search(text)
    if cashtag:
        return cashtag.group(1).upper()

    if include_bare_tickers:
        ticker = _find_bare_ticker(text)
        if ticker:
            return ticker

    for pattern in _NAME_PATTERNS:
        for match in pattern.finditer(text):
            candidate = _clean_candidate(match.group(1))
            if candidate:
                return candidate
    return None
