"""Shared fixtures for the profit_scout test-suite."""
from __future__ import annotations
import os

import pytest

# keep test runs out of LangSmith; traceable() reads this at import time
os.environ.pop("LANGCHAIN_TRACING_V2", None)


@pytest.fixture
def store(tmp_path):
    from profit_scout.memory.conversation_store import ConversationStore
    return ConversationStore(db_path=tmp_path / "conversations.db")


@pytest.fixture
def scheduler():
    from profit_scout.workflow.scheduler import TaskScheduler
    sched = TaskScheduler(max_workers=2)
    yield sched
    sched.shutdown(wait=True)
