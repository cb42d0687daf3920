"""
Summarizer Agent

Regenerates the rolling conversation summary after every turn from the
previous summary, the full merged transcript and the latest exchange.

Fail-soft: any model error, schema mismatch or empty output yields ``""``.
Output cut off by the token limit keeps its complete sentences.
Callers skip persisting an empty summary and the previous one stays the
latest.

Usage
-----
    from profit_scout.agents.summarizer_agent import summarize_conversation

    summary = summarize_conversation(previous, transcript, "What about MSFT?", answer)
"""
from __future__ import annotations

import json
import re
from typing import List, Dict, Optional

from pydantic import ValidationError

from profit_scout.core.errors import ReasoningFailure
from profit_scout.core.protocol import SummaryOutput
from profit_scout.utils.config import get_config
from profit_scout.utils.logging import get_logger, preview
from profit_scout.utils.tracing import traceable
from .client import get_client
from .prompts import SYSTEM_PROMPT, USER_PROMPT_TEMPLATE, length_instruction

logger = get_logger(__name__)

_SENTENCE_ENDS = (".", "!", "?")

_TRUNCATED_SUMMARY_RE = re.compile(r'"summary_text"\s*:\s*"((?:[^"\\]|\\.)*)')
_PARTIAL_ESCAPE_RE = re.compile(r"\\u[0-9a-fA-F]{0,3}$")


def build_summary_messages(
    previous_summary: Optional[str],
    transcript: str,
    latest_query: str,
    latest_response: str,
    max_chars: Optional[int] = None,
) -> List[Dict[str, str]]:
    """
    Build the chat messages sent to the model.

    The length constraint is placed verbatim in both the system and the
    user message.
    """
    instruction = length_instruction(max_chars or get_config().summarizer.max_chars)
    user_prompt = USER_PROMPT_TEMPLATE.format(
        previous_summary=previous_summary or "None",
        transcript=transcript,
        latest_query=latest_query,
        latest_response=latest_response,
        length_instruction=instruction,
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT.format(length_instruction=instruction)},
        {"role": "user", "content": user_prompt},
    ]


def apply_hard_cap(text: str, cap: int) -> str:
    """
    Trim *text* to at most *cap* characters, preferring a sentence boundary.

    Only a safety net; the length target is enforced through the prompt.
    """
    if len(text) <= cap:
        return text
    return _trim_to_sentence(text[:cap])


def _trim_to_sentence(text: str) -> str:
    boundary = max(text.rfind(mark) for mark in _SENTENCE_ENDS)
    if boundary >= len(text) // 2:
        return text[: boundary + 1]
    return text.rstrip()


def _salvage_truncated(content: str) -> str:
    """
    Recover ``summary_text`` from JSON cut off by the token limit.

    Returns the text up to its last complete sentence, or ``""``.
    """
    match = _TRUNCATED_SUMMARY_RE.search(content)
    if not match:
        return ""
    # a \uXXXX escape split by the cut cannot be decoded
    partial = _PARTIAL_ESCAPE_RE.sub("", match.group(1))
    try:
        text = json.loads(f'"{partial}"', strict=False).strip()
    except ValueError:
        return ""
    return _trim_to_sentence(text) if text else ""


def _generate_summary(messages: List[Dict[str, str]]) -> str:
    """Call the model and validate its JSON payload; raises ReasoningFailure."""
    cfg = get_config()
    client = get_client()
    response = client.chat.completions.create(
        model=cfg.llm.model,
        messages=messages,
        temperature=cfg.summarizer.temperature,
        max_tokens=cfg.summarizer.max_tokens,
        response_format={"type": "json_object"},
    )
    choice = response.choices[0]
    content = choice.message.content
    if not content or not content.strip():
        raise ReasoningFailure("model returned no summary content")
    try:
        output = SummaryOutput.model_validate_json(content)
    except ValidationError as exc:
        if choice.finish_reason == "length":
            salvaged = _salvage_truncated(content)
            if salvaged:
                logger.warning(
                    "Summarizer: output hit max_tokens, kept %d chars of partial summary",
                    len(salvaged),
                )
                return salvaged
        raise ReasoningFailure(f"summary output did not match schema: {exc.errors()[:1]}") from exc
    text = output.summary_text.strip()
    if not text:
        raise ReasoningFailure("model returned an empty summary_text")
    return text


@traceable(name="summarizer_agent", run_type="chain", tags=["memory", "summarizer"])
def summarize_conversation(
    previous_summary: Optional[str],
    transcript: str,
    latest_query: str,
    latest_response: str,
) -> str:
    """
    Produce a new bounded summary of the whole conversation.

    Parameters
    ----------
    previous_summary : str | None
        The latest stored summary, if any.
    transcript : str
        ``User: ...`` / ``AI: ...`` lines for the full session.
    latest_query, latest_response : str
        The exchange that triggered this summary.

    Returns
    -------
    str
        The summary, or ``""`` when the model failed in any way.
    """
    messages = build_summary_messages(previous_summary, transcript, latest_query, latest_response)
    logger.info(
        "Summarizer: transcript=%d chars, previous_summary=%s, latest_query=%s",
        len(transcript), bool(previous_summary), preview(latest_query),
    )
    try:
        summary = _generate_summary(messages)
    except Exception as exc:
        logger.warning("Summarizer: returning empty summary (%s: %s)", type(exc).__name__, exc)
        return ""

    summary = apply_hard_cap(summary, get_config().summarizer.hard_cap_chars)
    logger.info("Summarizer: produced %d-char summary", len(summary))
    return summary
