"""Unit tests for profit_scout/workflow/orchestrator.py – TurnOrchestrator.submit_turn()"""
from __future__ import annotations
import threading
import time
from unittest.mock import patch, MagicMock

import pytest


def _outcome(answer="Revenue grew 15% year over year.", outputs=None):
    from profit_scout.core.protocol import AnswerOutcome
    return AnswerOutcome(answer=answer, specialist_outputs=outputs or [])


@pytest.fixture
def answer_fn():
    return MagicMock(return_value=_outcome())


@pytest.fixture
def summarize_fn():
    return MagicMock(return_value="User asked about MSFT revenue.")


@pytest.fixture
def orchestrator(store, answer_fn, summarize_fn, scheduler):
    from profit_scout.workflow.orchestrator import TurnOrchestrator
    return TurnOrchestrator(
        store=store, answer_fn=answer_fn, summarize_fn=summarize_fn, scheduler=scheduler,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Happy path
# ═══════════════════════════════════════════════════════════════════════════════

class TestSubmitTurn:

    def test_new_session_full_pipeline(self, orchestrator, store, scheduler, summarize_fn):
        from profit_scout.core.protocol import TurnState
        result = orchestrator.submit_turn("What about MSFT revenue?")
        scheduler.shutdown(wait=True)

        assert result.answer == "Revenue grew 15% year over year."
        assert result.session_id
        assert result.query_id
        assert result.summary_triggered is True
        assert result.state == TurnState.ANSWERED
        assert result.company_context == "MSFT"

        assert store.get_session(result.session_id).company_ticker == "MSFT"
        [response] = store.list_responses(result.session_id)
        assert response.query_id == result.query_id
        summary = store.latest_summary(result.session_id)
        assert summary.text == "User asked about MSFT revenue."
        assert summary.query_id == result.query_id
        summarize_fn.assert_called_once()

    def test_example_session_inputs(self, orchestrator, store, scheduler, answer_fn, summarize_fn):
        sid = store.create_session()
        q1 = store.append_query(sid, "Hi")
        store.append_response(sid, "Hello! How can I help?", q1)

        result = orchestrator.submit_turn("What about MSFT revenue?", session_id=sid)
        scheduler.shutdown(wait=True)

        assert answer_fn.call_args.kwargs["conversation_summary"] is None
        assert answer_fn.call_args.kwargs["company_context"] == "MSFT"
        previous, transcript, latest_query, latest_response = summarize_fn.call_args.args
        assert previous is None
        assert transcript == (
            "User: Hi\nAI: Hello! How can I help?\nUser: What about MSFT revenue?\n"
            "AI: Revenue grew 15% year over year."
        )
        assert latest_query == "What about MSFT revenue?"
        assert latest_response == result.answer

    def test_previous_summary_fed_to_both_engines(self, orchestrator, store, scheduler, answer_fn, summarize_fn):
        sid = store.create_session()
        qid = store.append_query(sid, "Tell me about Innovatech")
        store.append_summary(sid, "User is researching Innovatech.", qid)

        orchestrator.submit_turn("And its margins?", session_id=sid)
        scheduler.shutdown(wait=True)

        assert answer_fn.call_args.kwargs["conversation_summary"] == "User is researching Innovatech."
        assert summarize_fn.call_args.args[0] == "User is researching Innovatech."

    def test_existing_session_keeps_stored_company(self, orchestrator, store, answer_fn):
        sid = store.create_session(company_ticker="Innovatech")
        result = orchestrator.submit_turn("And its margins?", session_id=sid)
        assert result.company_context == "Innovatech"
        assert answer_fn.call_args.kwargs["company_context"] == "Innovatech"

    def test_new_company_replaces_stored_one(self, orchestrator, store):
        sid = store.create_session(company_ticker="Innovatech")
        orchestrator.submit_turn("What about MSFT revenue?", session_id=sid)
        assert store.get_session(sid).company_ticker == "MSFT"

    def test_shouted_word_does_not_replace_stored_company(self, orchestrator, store, answer_fn):
        sid = store.create_session(company_ticker="MSFT")
        result = orchestrator.submit_turn("Is it a good time to BUY?", session_id=sid)
        assert store.get_session(sid).company_ticker == "MSFT"
        assert result.company_context == "MSFT"
        assert answer_fn.call_args.kwargs["company_context"] == "MSFT"

    def test_bare_ticker_does_not_replace_stored_company(self, orchestrator, store, answer_fn):
        sid = store.create_session(company_ticker="Innovatech")
        orchestrator.submit_turn("Compare NVDA and AMD", session_id=sid)
        assert store.get_session(sid).company_ticker == "Innovatech"
        assert answer_fn.call_args.kwargs["company_context"] == "Innovatech"

    def test_bare_ticker_seeds_new_session(self, orchestrator, store, answer_fn):
        result = orchestrator.submit_turn("Compare NVDA and AMD")
        assert store.get_session(result.session_id).company_ticker == "NVDA"
        assert answer_fn.call_args.kwargs["company_context"] == "NVDA"

    def test_cashtag_replaces_stored_company(self, orchestrator, store):
        sid = store.create_session(company_ticker="MSFT")
        orchestrator.submit_turn("How did $aapl do this week?", session_id=sid)
        assert store.get_session(sid).company_ticker == "AAPL"

    def test_explicit_company_context_wins(self, orchestrator, answer_fn):
        orchestrator.submit_turn("What about MSFT revenue?", company_context="Globex")
        assert answer_fn.call_args.kwargs["company_context"] == "Globex"

    def test_unknown_session_id_is_created(self, orchestrator, store):
        result = orchestrator.submit_turn("Hi", session_id="client-made-id", user_id="alice")
        assert result.session_id == "client-made-id"
        assert store.get_session("client-made-id").user_id == "alice"

    def test_existing_session_last_active_bumped(self, orchestrator, store):
        sid = store.create_session()
        before = store.get_session(sid).last_active
        orchestrator.submit_turn("Hi", session_id=sid)
        assert store.get_session(sid).last_active > before

    def test_specialist_outputs_persisted(self, orchestrator, store, scheduler, answer_fn):
        from profit_scout.core.protocol import SpecialistOutput
        answer_fn.return_value = _outcome(outputs=[
            SpecialistOutput(
                specialist_type="fetch_company_data",
                output_text='{"ticker": "MSFT"}',
                file_links=["https://finance.yahoo.com/quote/MSFT"],
            ),
        ])
        result = orchestrator.submit_turn("What about MSFT revenue?")
        scheduler.shutdown(wait=True)
        [output] = store.list_specialist_outputs(result.session_id)
        assert output.specialist_type == "fetch_company_data"

    def test_plain_string_answer_fn_accepted(self, store, scheduler, summarize_fn):
        from profit_scout.workflow.orchestrator import TurnOrchestrator
        orch = TurnOrchestrator(
            store=store, answer_fn=lambda q, **kw: "Plain answer.",
            summarize_fn=summarize_fn, scheduler=scheduler,
        )
        assert orch.submit_turn("Hi").answer == "Plain answer."


# ═══════════════════════════════════════════════════════════════════════════════
# Deferred summarization
# ═══════════════════════════════════════════════════════════════════════════════

class TestDeferredPhase:

    def test_returns_without_waiting_for_slow_summarizer(self, store, answer_fn, scheduler):
        from profit_scout.workflow.orchestrator import TurnOrchestrator
        release = threading.Event()

        def slow_summary(*args):
            release.wait(10)
            return "late summary"

        orch = TurnOrchestrator(
            store=store, answer_fn=answer_fn, summarize_fn=slow_summary, scheduler=scheduler,
        )
        started = time.monotonic()
        result = orch.submit_turn("What about MSFT revenue?")
        elapsed = time.monotonic() - started

        assert elapsed < 5
        assert result.summary_triggered is True
        assert store.latest_summary(result.session_id) is None

        release.set()
        scheduler.shutdown(wait=True)
        assert store.latest_summary(result.session_id).text == "late summary"

    def test_empty_summary_not_persisted(self, orchestrator, store, scheduler, summarize_fn):
        summarize_fn.return_value = ""
        sid = store.create_session()
        q1 = store.append_query(sid, "Hi")
        store.append_summary(sid, "Old summary.", q1)

        orchestrator.submit_turn("What about MSFT revenue?", session_id=sid)
        scheduler.shutdown(wait=True)

        assert [s.text for s in store.list_summaries(sid)] == ["Old summary."]
        assert len(store.list_responses(sid)) == 1

    def test_summarizer_exception_is_contained(self, orchestrator, store, scheduler, summarize_fn):
        summarize_fn.side_effect = RuntimeError("boom")
        result = orchestrator.submit_turn("Hi")
        scheduler.shutdown(wait=True)
        assert result.answer
        assert store.latest_summary(result.session_id) is None
        assert len(store.list_responses(result.session_id)) == 1

    def test_maintain_context_reaches_summary_persisted(self, orchestrator, store):
        from profit_scout.core.protocol import TurnState
        sid = store.create_session()
        qid = store.append_query(sid, "Hi")
        state = orchestrator._maintain_context(sid, qid, "Hi", _outcome("Hello!"), None)
        assert state == TurnState.SUMMARY_PERSISTED

    def test_maintain_context_stops_on_store_failure(self, orchestrator, store):
        from profit_scout.core.errors import StoreUnavailable
        from profit_scout.core.protocol import TurnState
        sid = store.create_session()
        qid = store.append_query(sid, "Hi")
        with patch.object(store, "list_queries", side_effect=StoreUnavailable("list_queries")):
            state = orchestrator._maintain_context(sid, qid, "Hi", _outcome("Hello!"), None)
        assert state == TurnState.RESPONSE_PERSISTED
        assert store.latest_summary(sid) is None

    @patch("profit_scout.workflow.orchestrator.log_run")
    def test_unexpected_error_still_records_turn(self, mock_log_run, orchestrator, store, summarize_fn):
        from profit_scout.core.protocol import TurnState
        summarize_fn.side_effect = RuntimeError("boom")
        sid = store.create_session()
        qid = store.append_query(sid, "Hi")
        state = orchestrator._maintain_context(sid, qid, "Hi", _outcome("Hello!"), None)
        assert state == TurnState.RESPONSE_PERSISTED
        mock_log_run.assert_called_once()
        assert mock_log_run.call_args.kwargs["error"] == "RuntimeError: boom"
        assert mock_log_run.call_args.kwargs["outputs"]["state"] == "response_persisted"

    def test_scheduler_shut_down_means_no_summary(self, orchestrator, scheduler):
        scheduler.shutdown(wait=True)
        result = orchestrator.submit_turn("Hi")
        assert result.answer
        assert result.summary_triggered is False


# ═══════════════════════════════════════════════════════════════════════════════
# Failure handling
# ═══════════════════════════════════════════════════════════════════════════════

class TestFailureHandling:

    def test_invalid_question_raises_before_io(self, answer_fn):
        from profit_scout.core.errors import InvalidInput
        from profit_scout.workflow.orchestrator import TurnOrchestrator
        store = MagicMock()
        orch = TurnOrchestrator(store=store, answer_fn=answer_fn, scheduler=MagicMock())
        with pytest.raises(InvalidInput):
            orch.submit_turn("   ")
        assert store.method_calls == []
        answer_fn.assert_not_called()

    def test_invalid_session_id_raises(self, orchestrator):
        from profit_scout.core.errors import InvalidInput
        with pytest.raises(InvalidInput):
            orchestrator.submit_turn("Hi", session_id="bad id!")

    def test_store_down_still_answers(self, answer_fn, summarize_fn, scheduler):
        from profit_scout.core.errors import StoreUnavailable
        from profit_scout.core.protocol import TurnState
        from profit_scout.workflow.orchestrator import TurnOrchestrator
        store = MagicMock()
        for name in ("get_session", "create_session", "append_query", "latest_summary"):
            getattr(store, name).side_effect = StoreUnavailable(name, "disk full")
        orch = TurnOrchestrator(
            store=store, answer_fn=answer_fn, summarize_fn=summarize_fn, scheduler=scheduler,
        )
        result = orch.submit_turn("What about MSFT revenue?")
        assert result.answer == "Revenue grew 15% year over year."
        assert result.session_id
        assert result.query_id is None
        assert result.summary_triggered is False
        assert result.state == TurnState.ANSWERED
        assert answer_fn.call_args.kwargs["conversation_summary"] is None
        summarize_fn.assert_not_called()

    def test_summary_read_failure_answers_without_summary(self, orchestrator, store, answer_fn):
        from profit_scout.core.errors import StoreUnavailable
        with patch.object(store, "latest_summary", side_effect=StoreUnavailable("latest_summary")):
            result = orchestrator.submit_turn("Hi")
        assert result.summary_triggered is True
        assert answer_fn.call_args.kwargs["conversation_summary"] is None

    def test_answer_engine_crash_returns_apology(self, orchestrator, answer_fn):
        from profit_scout.agents.answer_agent import APOLOGY_ANSWER
        from profit_scout.core.protocol import TurnState
        answer_fn.side_effect = RuntimeError("unexpected")
        result = orchestrator.submit_turn("What about MSFT revenue?")
        assert result.answer == APOLOGY_ANSWER
        assert result.summary_triggered is True
        assert result.state == TurnState.QUERY_PERSISTED

    def test_answer_engine_crash_persists_apology_as_response(
        self, orchestrator, store, scheduler, answer_fn, summarize_fn,
    ):
        from profit_scout.agents.answer_agent import APOLOGY_ANSWER
        answer_fn.side_effect = RuntimeError("unexpected")
        result = orchestrator.submit_turn("Hi")
        scheduler.shutdown(wait=True)

        assert len(store.list_queries(result.session_id)) == 1
        [response] = store.list_responses(result.session_id)
        assert response.text == APOLOGY_ANSWER
        assert response.query_id == result.query_id
        assert summarize_fn.call_args.args[1] == f"User: Hi\nAI: {APOLOGY_ANSWER}"

    def test_answer_engine_crash_without_query_schedules_nothing(self, answer_fn, summarize_fn):
        from profit_scout.agents.answer_agent import APOLOGY_ANSWER
        from profit_scout.core.errors import StoreUnavailable
        from profit_scout.workflow.orchestrator import TurnOrchestrator
        store = MagicMock()
        store.append_query.side_effect = StoreUnavailable("append_query", "disk full")
        scheduler = MagicMock()
        answer_fn.side_effect = RuntimeError("unexpected")
        orch = TurnOrchestrator(
            store=store, answer_fn=answer_fn, summarize_fn=summarize_fn, scheduler=scheduler,
        )
        result = orch.submit_turn("Hi")
        assert result.answer == APOLOGY_ANSWER
        assert result.summary_triggered is False
        scheduler.submit.assert_not_called()

    def test_empty_answer_from_engine_returns_apology(self, orchestrator, answer_fn):
        from profit_scout.agents.answer_agent import APOLOGY_ANSWER
        answer_fn.return_value = _outcome(answer="   ")
        assert orchestrator.submit_turn("Hi").answer == APOLOGY_ANSWER

    def test_store_outage_at_open_is_survivable(self, answer_fn, summarize_fn, scheduler):
        from profit_scout.core.errors import StoreUnavailable
        from profit_scout.workflow.orchestrator import TurnOrchestrator
        orch = TurnOrchestrator(answer_fn=answer_fn, summarize_fn=summarize_fn, scheduler=scheduler)
        with patch(
            "profit_scout.workflow.orchestrator.ConversationStore",
            side_effect=StoreUnavailable("init_schema", "unable to open database file"),
        ) as mock_cls:
            mock_cls.new_session_id.return_value = "fresh-id"
            result = orch.submit_turn("Hi")
        assert result.answer == "Revenue grew 15% year over year."
        assert result.query_id is None


# ═══════════════════════════════════════════════════════════════════════════════
# On-demand summary
# ═══════════════════════════════════════════════════════════════════════════════

class TestSummarizeSession:

    def test_regenerates_and_persists(self, orchestrator, store, summarize_fn):
        sid = store.create_session()
        qid = store.append_query(sid, "Hi")
        store.append_response(sid, "Hello! How can I help?", qid)
        summarize_fn.return_value = "Greeting exchanged."

        assert orchestrator.summarize_session(sid, qid) == "Greeting exchanged."
        assert store.latest_summary(sid).query_id == qid
        previous, transcript, latest_query, latest_response = summarize_fn.call_args.args
        assert previous is None
        assert transcript == "User: Hi\nAI: Hello! How can I help?"
        assert (latest_query, latest_response) == ("Hi", "Hello! How can I help?")

    def test_empty_summary_returns_none(self, orchestrator, store, summarize_fn):
        sid = store.create_session()
        qid = store.append_query(sid, "Hi")
        summarize_fn.return_value = ""
        assert orchestrator.summarize_session(sid, qid) is None
        assert store.latest_summary(sid) is None

    def test_unknown_query_rejected(self, orchestrator, store):
        from profit_scout.core.errors import InvalidInput
        sid = store.create_session()
        with pytest.raises(InvalidInput):
            orchestrator.summarize_session(sid, "missing")

    def test_store_failure_propagates(self, orchestrator, store):
        from profit_scout.core.errors import StoreUnavailable
        with patch.object(store, "full_history", side_effect=StoreUnavailable("full_history")):
            with pytest.raises(StoreUnavailable):
                orchestrator.summarize_session("s1", "q1")


# ═══════════════════════════════════════════════════════════════════════════════
# Module-level entry points
# ═══════════════════════════════════════════════════════════════════════════════

class TestModuleEntryPoints:

    def test_submit_turn_uses_shared_orchestrator(self):
        from profit_scout.workflow import orchestrator as mod
        fake = MagicMock()
        fake.submit_turn.return_value = "result"
        with patch.object(mod, "get_orchestrator", return_value=fake):
            assert mod.submit_turn("Hi", session_id="s1") == "result"
        fake.submit_turn.assert_called_once_with(
            "Hi", session_id="s1", company_context=None, user_id="anonymous",
        )
