"""Persistent conversation memory backed by SQLite, plus transcript merging."""
from .conversation_store import ConversationStore
from .history_merger import build_transcript, merge, render_transcript

__all__ = ["ConversationStore", "merge", "render_transcript", "build_transcript"]
