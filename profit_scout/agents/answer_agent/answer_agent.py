"""
Answer Agent — drives a bounded tool-calling loop over the data tools and
turns the result into a user-facing answer.

Uses ChatOpenAI.bind_tools() with a manual Thought -> Action -> Observation
loop.  The model decides when to call fetch_company_data, search_documents
or search_web, inspects the JSON result, and answers once it has enough.

Fail-soft on the user-visible path:

    model raises                 -> fixed apology, status "failed"
    empty final text             -> clarification, status "empty"
    final text is raw tool data  -> one rewrite without tools, then clarification

Usage
-----
    from profit_scout.agents.answer_agent import answer_question

    print(answer_question("What about MSFT revenue?", company_context="MSFT"))
"""
from __future__ import annotations

import json
from typing import List, Optional, Tuple

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage
from pydantic import ValidationError

from profit_scout.core.errors import InvalidInput, ToolFailure
from profit_scout.core.protocol import AnswerOutcome, AnswerOutput, AnswerStatus, SpecialistOutput
from profit_scout.utils.config import get_config
from profit_scout.utils.logging import get_logger, preview
from profit_scout.utils.tracing import traceable
from .client import get_llm
from .prompts import (
    APOLOGY_ANSWER,
    CLARIFICATION_ANSWER,
    COMPANY_CONTEXT_TEMPLATE,
    REWRITE_PROMPT,
    SUMMARY_CONTEXT_TEMPLATE,
    SYSTEM_PROMPT,
    USER_PROMPT_TEMPLATE,
)

logger = get_logger(__name__)


# ── Message building ──────────────────────────────────────────────────────────

def build_answer_messages(
    question: str,
    company_context: Optional[str] = None,
    conversation_summary: Optional[str] = None,
) -> List[BaseMessage]:
    """System prompt plus one user message carrying the question and context."""
    parts = [USER_PROMPT_TEMPLATE.format(question=question.strip())]
    if company_context:
        parts.append(COMPANY_CONTEXT_TEMPLATE.format(company_context=company_context))
    if conversation_summary:
        parts.append(SUMMARY_CONTEXT_TEMPLATE.format(conversation_summary=conversation_summary))
    return [
        SystemMessage(content=SYSTEM_PROMPT),
        HumanMessage(content="\n".join(parts)),
    ]


def _get_tools() -> list:
    if not get_config().answer.tools_enabled:
        return []
    from profit_scout.tools import ANSWER_TOOLS
    return list(ANSWER_TOOLS)


def _message_text(message: BaseMessage) -> str:
    """Flatten AIMessage content, which may be a string or a list of parts."""
    content = message.content
    if isinstance(content, str):
        return content
    texts = []
    for part in content or []:
        if isinstance(part, str):
            texts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            texts.append(part.get("text", ""))
    return "".join(texts)


# ── Tool execution ────────────────────────────────────────────────────────────

def _invoke_tool(tool_map: dict, name: str, args: dict) -> str:
    """Run one tool; raises ToolFailure for unknown tools and tool exceptions."""
    if name not in tool_map:
        raise ToolFailure(name, "unknown tool")
    try:
        return str(tool_map[name].invoke(args))
    except Exception as exc:
        raise ToolFailure(name, str(exc)) from exc


def _as_specialist_output(name: str, result: str) -> Optional[SpecialistOutput]:
    """Record a tool result unless it is an error payload."""
    try:
        payload = json.loads(result)
    except ValueError:
        return SpecialistOutput(specialist_type=name, output_text=result)
    if isinstance(payload, dict):
        if payload.get("error"):
            return None
        sources = [str(s) for s in payload.get("sources") or [] if s]
        return SpecialistOutput(specialist_type=name, output_text=result, file_links=sources)
    return SpecialistOutput(specialist_type=name, output_text=result)


def _run_tool_loop(
    llm,
    tools: list,
    messages: List[BaseMessage],
    max_iterations: int,
) -> Tuple[str, List[str], List[SpecialistOutput]]:
    """
    Drive the tool-calling loop until the model returns a final text answer.

    Returns the final text, every raw tool result fed back to the model and
    the specialist outputs for the successful calls.  Model exceptions
    propagate; tool exceptions are fed back as ``{"error": ...}`` payloads.
    """
    tool_map = {t.name: t for t in tools}
    runner = llm.bind_tools(tools) if tools else llm
    msgs = list(messages)
    tool_results: List[str] = []
    last_text = ""
    outputs: List[SpecialistOutput] = []

    for _ in range(max_iterations):
        response: AIMessage = runner.invoke(msgs)
        msgs.append(response)
        # text written alongside a tool call is kept in case the loop runs out
        last_text = _message_text(response)

        tool_calls = getattr(response, "tool_calls", None)
        if not tool_calls:
            return last_text, tool_results, outputs

        for tc in tool_calls:
            name = tc["name"]
            try:
                result = _invoke_tool(tool_map, name, tc.get("args") or {})
            except ToolFailure as exc:
                logger.warning("Answer agent: %s", exc)
                result = json.dumps({"error": exc.detail, "tool": exc.tool_name})
            else:
                output = _as_specialist_output(name, result)
                if output is not None:
                    outputs.append(output)
            tool_results.append(result)
            msgs.append(ToolMessage(content=result, tool_call_id=tc["id"]))

    logger.warning("Answer agent: tool loop hit %d iterations without a final answer", max_iterations)
    return last_text, tool_results, outputs


# ── Output checks ─────────────────────────────────────────────────────────────

def _unwrap_answer_object(text: str) -> str:
    """Accept ``{"answer": "..."}`` replies by returning the inner answer."""
    stripped = text.strip()
    if not stripped.startswith("{"):
        return text
    try:
        return AnswerOutput.model_validate_json(stripped).answer
    except ValidationError:
        return text


def _is_raw_payload(text: str, tool_results: List[str]) -> bool:
    """True when *text* is a tool result verbatim or any JSON object/array."""
    stripped = text.strip()
    if not stripped:
        return False
    if any(stripped == r.strip() for r in tool_results):
        return True
    if stripped[0] not in "{[":
        return False
    try:
        return isinstance(json.loads(stripped), (dict, list))
    except ValueError:
        return False


def _rewrite_as_prose(llm, messages: List[BaseMessage], raw_text: str) -> str:
    """Ask the model once, without tools, to turn raw data into an answer."""
    rewrite_msgs = list(messages) + [
        AIMessage(content=raw_text),
        HumanMessage(content=REWRITE_PROMPT),
    ]
    return _unwrap_answer_object(_message_text(llm.invoke(rewrite_msgs)))


# ── Public API ────────────────────────────────────────────────────────────────

@traceable(name="answer_agent", run_type="chain", tags=["answer", "react"])
def run_answer_agent(
    question: str,
    company_context: Optional[str] = None,
    conversation_summary: Optional[str] = None,
) -> AnswerOutcome:
    """
    Answer a financial question, calling data tools as needed.

    Parameters
    ----------
    question : str
        The user's question.
    company_context : str, optional
        Company name or ticker the question is about.
    conversation_summary : str, optional
        Latest rolling summary of the session.

    Returns
    -------
    AnswerOutcome
        Always carries a non-empty answer.
    """
    if not question or not question.strip():
        raise InvalidInput("question", "must be a non-empty string")

    logger.info(
        "Answer agent received question=%s company=%s summary=%s",
        preview(question), company_context, bool(conversation_summary),
    )
    messages = build_answer_messages(question, company_context, conversation_summary)
    cfg = get_config()

    try:
        llm = get_llm()
        text, tool_results, outputs = _run_tool_loop(
            llm, _get_tools(), messages, cfg.answer.max_tool_iterations,
        )
        text = _unwrap_answer_object(text)
        if _is_raw_payload(text, tool_results):
            logger.info("Answer agent: final text was raw tool data, asking for a rewrite")
            text = _rewrite_as_prose(llm, messages, text)
            if _is_raw_payload(text, tool_results):
                text = ""
    except Exception as exc:
        logger.error(
            "Answer agent failed [question=%s]: %s: %s",
            preview(question), type(exc).__name__, exc,
        )
        return AnswerOutcome(answer=APOLOGY_ANSWER, status=AnswerStatus.FAILED)

    if not text or not text.strip():
        logger.warning("Answer agent: empty answer [question=%s]", preview(question))
        return AnswerOutcome(
            answer=CLARIFICATION_ANSWER,
            status=AnswerStatus.EMPTY,
            specialist_outputs=outputs,
        )

    return AnswerOutcome(
        answer=text.strip(),
        status=AnswerStatus.ANSWERED,
        specialist_outputs=outputs,
    )


def answer_question(
    question: str,
    company_context: Optional[str] = None,
    conversation_summary: Optional[str] = None,
) -> str:
    """Plain-text form of :func:`run_answer_agent`."""
    return run_answer_agent(question, company_context, conversation_summary).answer
