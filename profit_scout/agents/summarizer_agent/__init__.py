from .summarizer_agent import summarize_conversation, build_summary_messages

__all__ = ["summarize_conversation", "build_summary_messages"]
