"""
Turn Orchestrator

Sequences one user turn through the store and the two engines:

    critical path (caller waits)
      1. validate input, infer company context
      2. ensure the session exists / bump last_active
      3. persist the query
      4. fetch the latest summary
      5. answer
      6. return the answer, schedule the deferred phase

    deferred phase (TaskScheduler, best-effort)
      7. persist the response and any specialist outputs
      8. rebuild the full transcript
      9. summarize
     10. persist a non-empty summary against the turn's query

Store failures on the critical path are logged and skipped; anything else
unexpected degrades to the apology answer, which is then persisted like any
other response.  Only InvalidInput reaches the caller.  The orchestrator keeps no per-session state between calls.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Callable, List, Optional, Tuple, Union

from profit_scout.agents.answer_agent import APOLOGY_ANSWER, run_answer_agent
from profit_scout.agents.summarizer_agent import summarize_conversation
from profit_scout.core.errors import InvalidInput, StoreUnavailable
from profit_scout.core.guards import extract_company_context, validate_question, validate_session_id
from profit_scout.core.protocol import AnswerOutcome, AnswerStatus, TurnResult, TurnState
from profit_scout.memory.conversation_store import ConversationStore
from profit_scout.memory.history_merger import build_transcript
from profit_scout.utils.config import get_config
from profit_scout.utils.logging import get_logger, preview
from profit_scout.utils.tracing import log_run
from .scheduler import TaskScheduler

logger = get_logger(__name__)

AnswerFn = Callable[..., Union[AnswerOutcome, str]]
SummarizeFn = Callable[[Optional[str], str, str, str], str]


class TurnOrchestrator:
    """
    Runs turns against a ConversationStore.

    Args:
        store: Conversation store; opened lazily from config when omitted
        answer_fn: ``(question, company_context, conversation_summary) -> AnswerOutcome``
        summarize_fn: ``(previous_summary, transcript, latest_query, latest_response) -> str``
        scheduler: Runs the deferred phase; a private one is created when omitted
    """

    def __init__(
        self,
        store: Optional[ConversationStore] = None,
        answer_fn: Optional[AnswerFn] = None,
        summarize_fn: Optional[SummarizeFn] = None,
        scheduler: Optional[TaskScheduler] = None,
    ):
        self._store = store
        self.answer_fn = answer_fn or run_answer_agent
        self.summarize_fn = summarize_fn or summarize_conversation
        self.scheduler = scheduler or TaskScheduler()

    @property
    def store(self) -> ConversationStore:
        """The store, opened on first use so an outage at startup is survivable."""
        if self._store is None:
            self._store = ConversationStore()
        return self._store

    # ── critical path ─────────────────────────────────────────────────────────

    def _ensure_session(
        self,
        session_id: Optional[str],
        user_id: str,
        company: Optional[str],
        hint: Optional[str] = None,
    ) -> Tuple[str, Optional[str]]:
        """
        Return ``(session_id, company_context)``; never raises StoreUnavailable.

        *company* is an explicit or clearly named company and replaces the
        stored one. *hint* is a weak guess that only seeds a new session or
        fills in when nothing is stored.
        """
        sid = session_id or ConversationStore.new_session_id()
        try:
            session = self.store.get_session(sid) if session_id else None
            if session is None:
                company = company or hint
                self.store.create_session(user_id=user_id, company_ticker=company, session_id=sid)
                logger.info("Created session %s [company=%s]", sid, company)
                return sid, company
            if company and company != session.company_ticker:
                self.store.update_company_ticker(sid, company)
            else:
                self.store.touch_session(sid)
            return sid, company or session.company_ticker or hint
        except StoreUnavailable as exc:
            logger.error("Session %s not ensured, continuing without it: %s", sid, exc)
            return sid, company or hint

    def _persist_query(self, session_id: str, question: str) -> Optional[str]:
        try:
            return self.store.append_query(session_id, question)
        except StoreUnavailable as exc:
            logger.error(
                "Query not persisted [session=%s, question=%s]; turn will not be summarized: %s",
                session_id, preview(question), exc,
            )
            return None

    def _previous_summary(self, session_id: str) -> Optional[str]:
        try:
            entry = self.store.latest_summary(session_id)
        except StoreUnavailable as exc:
            logger.warning("Latest summary unavailable [session=%s]: %s", session_id, exc)
            return None
        return entry.text if entry else None

    def _answer(
        self,
        question: str,
        company: Optional[str],
        previous_summary: Optional[str],
    ) -> AnswerOutcome:
        outcome = self.answer_fn(
            question,
            company_context=company,
            conversation_summary=previous_summary,
        )
        if isinstance(outcome, str):
            outcome = AnswerOutcome(answer=outcome)
        if not outcome.answer or not outcome.answer.strip():
            raise ValueError("answer engine returned an empty answer")
        return outcome

    def submit_turn(
        self,
        question: str,
        session_id: Optional[str] = None,
        company_context: Optional[str] = None,
        user_id: str = "anonymous",
    ) -> TurnResult:
        """
        Answer *question* within *session_id* (a new session when omitted).

        Returns once the answer is available; persistence of the response and
        the summary update happen afterwards on the scheduler.

        Raises:
            InvalidInput: malformed question or session id, before any I/O
        """
        question = validate_question(question, get_config().guards.max_question_chars)
        session_id = validate_session_id(session_id)
        if company_context is not None and not isinstance(company_context, str):
            raise InvalidInput("company_context", "Company context must be a string.")
        company = (company_context or "").strip() or extract_company_context(
            question, include_bare_tickers=False,
        )
        hint = None if company else extract_company_context(question)
        user_id = (user_id or "").strip() or "anonymous"

        state = TurnState.CREATED
        sid: Optional[str] = session_id
        query_id: Optional[str] = None
        previous_summary: Optional[str] = None
        logger.info(
            "Turn started [session=%s, company=%s, question=%s]",
            sid, company or hint, preview(question),
        )

        try:
            sid, company = self._ensure_session(session_id, user_id, company, hint)
            query_id = self._persist_query(sid, question)
            if query_id:
                state = TurnState.QUERY_PERSISTED
            previous_summary = self._previous_summary(sid)
            outcome = self._answer(question, company, previous_summary)
            state = TurnState.ANSWERED
        except Exception as exc:
            logger.error(
                "Turn failed on the critical path [session=%s, question=%s]: %s: %s",
                sid, preview(question), type(exc).__name__, exc, exc_info=True,
            )
            # the persisted query still gets the apology as its response
            apology = AnswerOutcome(answer=APOLOGY_ANSWER, status=AnswerStatus.FAILED)
            return TurnResult(
                answer=APOLOGY_ANSWER,
                session_id=sid,
                query_id=query_id,
                summary_triggered=self._schedule_maintenance(
                    sid, query_id, question, apology, previous_summary,
                ),
                state=state,
                company_context=company or hint,
            )

        summary_triggered = self._schedule_maintenance(
            sid, query_id, question, outcome, previous_summary,
        )

        logger.info(
            "Turn answered [session=%s, query=%s, status=%s, summary_triggered=%s]",
            sid, query_id, outcome.status.value, summary_triggered,
        )
        return TurnResult(
            answer=outcome.answer,
            session_id=sid,
            query_id=query_id,
            summary_triggered=summary_triggered,
            state=state,
            company_context=company,
        )

    # ── deferred phase ────────────────────────────────────────────────────────

    def _schedule_maintenance(
        self,
        session_id: Optional[str],
        query_id: Optional[str],
        question: str,
        outcome: AnswerOutcome,
        previous_summary: Optional[str],
    ) -> bool:
        """Hand steps 7-10 to the scheduler; False when there is nothing to link to."""
        if not (session_id and query_id):
            return False
        try:
            self.scheduler.submit(
                f"maintain_context[{session_id}]",
                self._maintain_context,
                session_id, query_id, question, outcome, previous_summary,
            )
        except RuntimeError as exc:
            logger.error("Deferred phase not scheduled [session=%s]: %s", session_id, exc)
            return False
        return True

    def _persist_specialist_outputs(self, session_id: str, outcome: AnswerOutcome) -> int:
        saved = 0
        for output in outcome.specialist_outputs:
            try:
                self.store.append_specialist_output(
                    session_id, output.specialist_type, output.output_text, output.file_links,
                )
                saved += 1
            except StoreUnavailable as exc:
                logger.warning(
                    "Specialist output %s not persisted [session=%s]: %s",
                    output.specialist_type, session_id, exc,
                )
        return saved

    def _maintain_context(
        self,
        session_id: str,
        query_id: str,
        question: str,
        outcome: AnswerOutcome,
        previous_summary: Optional[str],
    ) -> TurnState:
        """Steps 7-10. Returns the furthest state reached."""
        state = TurnState.ANSWERED
        error: Optional[str] = None
        try:
            self.store.append_response(session_id, outcome.answer, query_id)
            state = TurnState.RESPONSE_PERSISTED
            self._persist_specialist_outputs(session_id, outcome)

            transcript = build_transcript(
                self.store.list_queries(session_id),
                self.store.list_responses(session_id),
            )
            summary = self.summarize_fn(previous_summary, transcript, question, outcome.answer)
            if not summary:
                logger.info("No summary produced [session=%s, query=%s]", session_id, query_id)
            else:
                state = TurnState.SUMMARIZED
                self.store.append_summary(session_id, summary, query_id)
                state = TurnState.SUMMARY_PERSISTED
        except (StoreUnavailable, InvalidInput) as exc:
            error = str(exc)
            logger.error(
                "Context maintenance stopped at %s [session=%s, query=%s]: %s",
                state.value, session_id, query_id, exc,
            )
        except Exception as exc:
            error = f"{type(exc).__name__}: {exc}"
            logger.error(
                "Context maintenance failed at %s [session=%s, query=%s]: %s",
                state.value, session_id, query_id, error, exc_info=True,
            )

        log_run(
            name="turn",
            inputs={"session_id": session_id, "query_id": query_id, "question": preview(question, 200)},
            outputs={
                "answer": outcome.answer[:200],
                "answer_status": outcome.status.value,
                "state": state.value,
            },
            run_type="chain",
            tags=["orchestrator", state.value],
            error=error,
        )
        return state

    # ── on-demand summary ─────────────────────────────────────────────────────

    def summarize_session(self, session_id: str, query_id: str) -> Optional[str]:
        """
        Regenerate the session summary now and persist it against *query_id*.

        Returns the new summary text, or ``None`` when the summarizer produced
        nothing (the previous summary stays the latest).

        Raises:
            InvalidInput: *query_id* is not a query of *session_id*
            StoreUnavailable: the store could not be read or written
        """
        session_id = validate_session_id(session_id)
        if not session_id:
            raise InvalidInput("session_id", "Session id is required.")
        if not query_id or not str(query_id).strip():
            raise InvalidInput("query_id", "Query id is required.")

        history = self.store.full_history(session_id)
        query = next((q for q in history.queries if q.id == query_id), None)
        if query is None:
            raise InvalidInput("query_id", f"Unknown query {query_id} for session {session_id}.")
        answers: List[str] = [r.text for r in history.responses if r.query_id == query_id]

        transcript = build_transcript(history.queries, history.responses)
        previous = history.latest_summary.text if history.latest_summary else None
        summary = self.summarize_fn(previous, transcript, query.text, answers[-1] if answers else "")
        if not summary:
            logger.info("On-demand summary empty [session=%s, query=%s]", session_id, query_id)
            return None

        self.store.append_summary(session_id, summary, query_id)
        logger.info("On-demand summary persisted [session=%s, query=%s]", session_id, query_id)
        return summary

    def shutdown(self, wait: bool = True) -> None:
        self.scheduler.shutdown(wait=wait)


# ── Module-level entry points (used by the web app and the CLI) ───────────────

@lru_cache(maxsize=1)
def get_orchestrator() -> TurnOrchestrator:
    """Process-wide orchestrator with the configured store and engines."""
    return TurnOrchestrator()


def submit_turn(
    question: str,
    session_id: Optional[str] = None,
    company_context: Optional[str] = None,
    user_id: str = "anonymous",
) -> TurnResult:
    """Run one turn on the process-wide orchestrator."""
    return get_orchestrator().submit_turn(
        question,
        session_id=session_id,
        company_context=company_context,
        user_id=user_id,
    )


def shutdown_orchestrator(wait: bool = True) -> None:
    """Drain the process-wide orchestrator's deferred jobs, if one was created."""
    if get_orchestrator.cache_info().currsize:
        get_orchestrator().shutdown(wait=wait)
        get_orchestrator.cache_clear()
