"""Unit tests for profit_scout/agents/answer_agent"""
from __future__ import annotations
import json
from unittest.mock import patch, MagicMock

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_core.tools import tool

MSFT_PAYLOAD = json.dumps({
    "company": "Microsoft Corporation",
    "ticker": "MSFT",
    "data_available": True,
    "revenue": 245122000000,
    "sources": ["https://finance.yahoo.com/quote/MSFT"],
})


@tool
def fake_company_data(company: str) -> str:
    """Return canned company data."""
    return MSFT_PAYLOAD


@tool
def broken_lookup(company: str) -> str:
    """Always fails."""
    raise RuntimeError("provider down")


def _tool_call(name, args, call_id="call_1"):
    return AIMessage(content="", tool_calls=[{"name": name, "args": args, "id": call_id}])


def _llm(*responses, rewrite=None):
    """MagicMock ChatOpenAI whose tool-bound runner replies with *responses* in order."""
    llm = MagicMock()
    runner = MagicMock()
    runner.invoke.side_effect = list(responses)
    llm.bind_tools.return_value = runner
    if rewrite is not None:
        llm.invoke.return_value = rewrite
    return llm


class TestBuildAnswerMessages:

    def test_question_only(self):
        from profit_scout.agents.answer_agent import build_answer_messages
        system, user = build_answer_messages("  What is EPS?  ")
        assert isinstance(system, SystemMessage)
        assert isinstance(user, HumanMessage)
        assert user.content == "User question: What is EPS?"

    def test_company_and_summary_included(self):
        from profit_scout.agents.answer_agent import build_answer_messages
        _, user = build_answer_messages("Revenue?", "MSFT", "User asked about Microsoft.")
        assert "Company context: MSFT" in user.content
        assert "Conversation summary so far: User asked about Microsoft." in user.content

    def test_no_summary_line_when_absent(self):
        from profit_scout.agents.answer_agent import build_answer_messages
        _, user = build_answer_messages("Revenue?", None, None)
        assert "summary" not in user.content.lower()


class TestRunAnswerAgent:

    def test_empty_question_raises_invalid_input(self):
        from profit_scout.agents.answer_agent import run_answer_agent
        from profit_scout.core.errors import InvalidInput
        with pytest.raises(InvalidInput):
            run_answer_agent("   ")

    @patch("profit_scout.agents.answer_agent.answer_agent._get_tools", return_value=[fake_company_data])
    @patch("profit_scout.agents.answer_agent.answer_agent.get_llm")
    def test_direct_answer(self, mock_get_llm, _tools):
        mock_get_llm.return_value = _llm(AIMessage(content="Hello! How can I help with your financial questions?"))
        from profit_scout.agents.answer_agent import run_answer_agent
        from profit_scout.core.protocol import AnswerStatus
        outcome = run_answer_agent("Hi")
        assert outcome.status == AnswerStatus.ANSWERED
        assert outcome.answer.startswith("Hello!")
        assert outcome.specialist_outputs == []

    @patch("profit_scout.agents.answer_agent.answer_agent._get_tools", return_value=[fake_company_data])
    @patch("profit_scout.agents.answer_agent.answer_agent.get_llm")
    def test_tool_loop_records_specialist_output(self, mock_get_llm, _tools):
        llm = _llm(
            _tool_call("fake_company_data", {"company": "MSFT"}),
            AIMessage(content="Microsoft's trailing revenue is about $245B."),
        )
        mock_get_llm.return_value = llm
        from profit_scout.agents.answer_agent import run_answer_agent
        outcome = run_answer_agent("What about MSFT revenue?", company_context="MSFT")
        assert outcome.answer == "Microsoft's trailing revenue is about $245B."
        [output] = outcome.specialist_outputs
        assert output.specialist_type == "fake_company_data"
        assert output.file_links == ["https://finance.yahoo.com/quote/MSFT"]
        second_call_msgs = llm.bind_tools.return_value.invoke.call_args_list[1].args[0]
        assert isinstance(second_call_msgs[-1], ToolMessage)
        assert second_call_msgs[-1].content == MSFT_PAYLOAD

    @patch("profit_scout.agents.answer_agent.answer_agent._get_tools", return_value=[broken_lookup])
    @patch("profit_scout.agents.answer_agent.answer_agent.get_llm")
    def test_tool_exception_fed_back_as_error_payload(self, mock_get_llm, _tools):
        llm = _llm(
            _tool_call("broken_lookup", {"company": "Globex"}),
            AIMessage(content="Specific data for Globex is not available right now."),
        )
        mock_get_llm.return_value = llm
        from profit_scout.agents.answer_agent import run_answer_agent
        from profit_scout.core.protocol import AnswerStatus
        outcome = run_answer_agent("What's Globex's revenue?")
        assert outcome.status == AnswerStatus.ANSWERED
        assert outcome.specialist_outputs == []
        tool_msg = llm.bind_tools.return_value.invoke.call_args_list[1].args[0][-1]
        assert json.loads(tool_msg.content)["error"] == "provider down"

    @patch("profit_scout.agents.answer_agent.answer_agent._get_tools", return_value=[fake_company_data])
    @patch("profit_scout.agents.answer_agent.answer_agent.get_llm")
    def test_unknown_tool_fed_back_as_error_payload(self, mock_get_llm, _tools):
        llm = _llm(
            _tool_call("no_such_tool", {}),
            AIMessage(content="I could not look that up."),
        )
        mock_get_llm.return_value = llm
        from profit_scout.agents.answer_agent import run_answer_agent
        assert run_answer_agent("Q?").answer == "I could not look that up."

    @patch("profit_scout.agents.answer_agent.answer_agent._get_tools", return_value=[])
    @patch("profit_scout.agents.answer_agent.answer_agent.get_llm")
    def test_model_exception_returns_apology(self, mock_get_llm, _tools):
        llm = MagicMock()
        llm.invoke.side_effect = RuntimeError("rate limited")
        mock_get_llm.return_value = llm
        from profit_scout.agents.answer_agent import APOLOGY_ANSWER, run_answer_agent
        from profit_scout.core.protocol import AnswerStatus
        outcome = run_answer_agent("What is a P/E ratio?")
        assert outcome.answer == APOLOGY_ANSWER
        assert outcome.status == AnswerStatus.FAILED

    @patch("profit_scout.agents.answer_agent.answer_agent.get_llm")
    def test_missing_api_key_returns_apology(self, mock_get_llm):
        mock_get_llm.side_effect = EnvironmentError("OPENAI_API_KEY is not set.")
        from profit_scout.agents.answer_agent import APOLOGY_ANSWER, answer_question
        assert answer_question("What is a P/E ratio?") == APOLOGY_ANSWER

    @pytest.mark.parametrize("content", ["", "   ", []])
    @patch("profit_scout.agents.answer_agent.answer_agent._get_tools", return_value=[])
    @patch("profit_scout.agents.answer_agent.answer_agent.get_llm")
    def test_empty_answer_returns_clarification(self, mock_get_llm, _tools, content):
        llm = MagicMock()
        llm.invoke.return_value = AIMessage(content=content)
        mock_get_llm.return_value = llm
        from profit_scout.agents.answer_agent import CLARIFICATION_ANSWER, run_answer_agent
        from profit_scout.core.protocol import AnswerStatus
        outcome = run_answer_agent("Tell me about Innovatech")
        assert outcome.answer == CLARIFICATION_ANSWER
        assert outcome.status == AnswerStatus.EMPTY

    @patch("profit_scout.agents.answer_agent.answer_agent._get_tools", return_value=[])
    @patch("profit_scout.agents.answer_agent.answer_agent.get_llm")
    def test_list_content_is_flattened(self, mock_get_llm, _tools):
        llm = MagicMock()
        llm.invoke.return_value = AIMessage(content=[{"type": "text", "text": "EPS is earnings per share."}])
        mock_get_llm.return_value = llm
        from profit_scout.agents.answer_agent import answer_question
        assert answer_question("What is EPS?") == "EPS is earnings per share."

    @patch("profit_scout.agents.answer_agent.answer_agent._get_tools", return_value=[])
    @patch("profit_scout.agents.answer_agent.answer_agent.get_llm")
    def test_answer_object_is_unwrapped(self, mock_get_llm, _tools):
        llm = MagicMock()
        llm.invoke.return_value = AIMessage(content='{"answer": "Revenue grew 15%."}')
        mock_get_llm.return_value = llm
        from profit_scout.agents.answer_agent import answer_question
        assert answer_question("Revenue?") == "Revenue grew 15%."


class TestRawPayloadGuard:

    @patch("profit_scout.agents.answer_agent.answer_agent._get_tools", return_value=[fake_company_data])
    @patch("profit_scout.agents.answer_agent.answer_agent.get_llm")
    def test_raw_tool_output_is_rewritten(self, mock_get_llm, _tools):
        llm = _llm(
            _tool_call("fake_company_data", {"company": "MSFT"}),
            AIMessage(content=MSFT_PAYLOAD),
            rewrite=AIMessage(content="Microsoft reported about $245B in revenue."),
        )
        mock_get_llm.return_value = llm
        from profit_scout.agents.answer_agent import run_answer_agent
        outcome = run_answer_agent("What about MSFT revenue?")
        assert outcome.answer == "Microsoft reported about $245B in revenue."
        rewrite_msgs = llm.invoke.call_args.args[0]
        assert rewrite_msgs[-2].content == MSFT_PAYLOAD
        assert isinstance(rewrite_msgs[-1], HumanMessage)

    @patch("profit_scout.agents.answer_agent.answer_agent._get_tools", return_value=[fake_company_data])
    @patch("profit_scout.agents.answer_agent.answer_agent.get_llm")
    def test_raw_rewrite_falls_back_to_clarification(self, mock_get_llm, _tools):
        llm = _llm(
            _tool_call("fake_company_data", {"company": "MSFT"}),
            AIMessage(content=MSFT_PAYLOAD),
            rewrite=AIMessage(content='{"ticker": "MSFT"}'),
        )
        mock_get_llm.return_value = llm
        from profit_scout.agents.answer_agent import CLARIFICATION_ANSWER, run_answer_agent
        outcome = run_answer_agent("What about MSFT revenue?")
        assert outcome.answer == CLARIFICATION_ANSWER
        assert "{" not in outcome.answer

    def test_is_raw_payload(self):
        from profit_scout.agents.answer_agent.answer_agent import _is_raw_payload
        assert _is_raw_payload('{"a": 1}', []) is True
        assert _is_raw_payload("[1, 2]", []) is True
        assert _is_raw_payload("tool said hi", ["tool said hi"]) is True
        assert _is_raw_payload("Revenue grew 15% {approx}.", []) is False
        assert _is_raw_payload("{not json", []) is False
        assert _is_raw_payload("", []) is False


class TestToolLoopLimit:

    @patch("profit_scout.agents.answer_agent.answer_agent._get_tools", return_value=[fake_company_data])
    @patch("profit_scout.agents.answer_agent.answer_agent.get_llm")
    def test_endless_tool_calls_end_in_clarification(self, mock_get_llm, _tools):
        llm = MagicMock()
        runner = MagicMock()
        runner.invoke.side_effect = lambda msgs: _tool_call("fake_company_data", {"company": "MSFT"})
        llm.bind_tools.return_value = runner
        mock_get_llm.return_value = llm
        from profit_scout.agents.answer_agent import CLARIFICATION_ANSWER, run_answer_agent
        from profit_scout.utils.config import get_config
        outcome = run_answer_agent("MSFT?")
        assert outcome.answer == CLARIFICATION_ANSWER
        assert runner.invoke.call_count == get_config().answer.max_tool_iterations

    @patch("profit_scout.agents.answer_agent.answer_agent._get_tools", return_value=[fake_company_data])
    @patch("profit_scout.agents.answer_agent.answer_agent.get_llm")
    def test_text_beside_last_tool_call_is_kept(self, mock_get_llm, _tools):
        llm = MagicMock()
        runner = MagicMock()
        runner.invoke.side_effect = lambda msgs: AIMessage(
            content="Microsoft's revenue grew about 16% last year.",
            tool_calls=[{"name": "fake_company_data", "args": {"company": "MSFT"}, "id": "call_1"}],
        )
        llm.bind_tools.return_value = runner
        mock_get_llm.return_value = llm
        from profit_scout.agents.answer_agent import run_answer_agent
        outcome = run_answer_agent("MSFT?")
        assert outcome.answer == "Microsoft's revenue grew about 16% last year."
