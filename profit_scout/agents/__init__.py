"""Agents package — the two reasoning engines of the chat pipeline.

  answer_question         answer_agent       Tool-augmented financial answers (ReAct)
  summarize_conversation  summarizer_agent   Rolling conversation summary (JSON output)
"""

from .answer_agent.answer_agent import answer_question, run_answer_agent
from .summarizer_agent.summarizer_agent import summarize_conversation

__all__ = [
    "answer_question",
    "run_answer_agent",
    "summarize_conversation",
]
