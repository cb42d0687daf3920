from .answer_agent import answer_question, run_answer_agent, build_answer_messages
from .prompts import APOLOGY_ANSWER, CLARIFICATION_ANSWER

__all__ = [
    "answer_question",
    "run_answer_agent",
    "build_answer_messages",
    "APOLOGY_ANSWER",
    "CLARIFICATION_ANSWER",
]
