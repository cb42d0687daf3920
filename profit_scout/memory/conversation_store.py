"""
SQLite-backed, append-only conversation store.

Schema
------
sessions : session_id TEXT PK, user_id TEXT, created_at TEXT,
           last_active TEXT, company_ticker TEXT
entries  : seq INTEGER PK AUTOINCREMENT, id TEXT UNIQUE, session_id TEXT FK,
           kind TEXT, text TEXT, query_id TEXT, specialist_type TEXT,
           file_links TEXT (JSON), meta_key TEXT, timestamp TEXT

Every entry kind (query, response, specialist_output, summary, metadata)
lives in ``entries``; ``seq`` is the store-wide arrival order and breaks
timestamp ties.  Timestamps are assigned here, never by callers, and are
stored in a fixed-width UTC format so they sort as text.

Usage
-----
    store = ConversationStore()                  # opens/creates data/conversations.db
    sid = store.create_session("user-1", "MSFT")
    qid = store.append_query(sid, "What about MSFT revenue?")
    store.append_response(sid, "Revenue grew ...", qid)
    store.list_queries(sid)                      # [QueryEntry, ...] oldest first
"""
from __future__ import annotations

import json
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator, List, Optional

from profit_scout.core.errors import InvalidInput, StoreUnavailable
from profit_scout.core.protocol import (
    ConversationHistory,
    LatestTurn,
    QueryEntry,
    ResponseEntry,
    Session,
    SessionMetadataEntry,
    SpecialistOutputEntry,
    SummaryEntry,
)
from profit_scout.utils.config import get_config
from profit_scout.utils.logging import get_logger

logger = get_logger(__name__)

_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"
_BUSY_TIMEOUT = 10.0

_QUERY = "query"
_RESPONSE = "response"
_SPECIALIST = "specialist_output"
_SUMMARY = "summary"
_METADATA = "metadata"


class _MonotonicClock:
    """UTC wall clock that never hands out the same or an earlier instant twice."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last = datetime.min.replace(tzinfo=timezone.utc)

    def now(self, not_before: Optional[datetime] = None) -> datetime:
        with self._lock:
            current = datetime.now(timezone.utc)
            floor = self._last if not_before is None else max(self._last, not_before)
            if current <= floor:
                current = floor + timedelta(microseconds=1)
            self._last = current
            return current


_clock = _MonotonicClock()


def _fmt(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).strftime(_TS_FORMAT)


def _parse(value: str) -> datetime:
    return datetime.fromisoformat(value)


class ConversationStore:
    """Append-only SQLite store, safe for concurrent appends from many threads or processes."""

    def __init__(self, db_path: Optional[Path] = None) -> None:
        self.db_path = Path(db_path or get_config().store.db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    # ── schema ────────────────────────────────────────────────────────────────

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=_BUSY_TIMEOUT)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")  # safe for concurrent reads
        return conn

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success, always close; map sqlite errors."""
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            logger.error("Store connect failed during %s: %s", operation, exc)
            raise StoreUnavailable(operation, str(exc)) from exc
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            logger.error("Store %s failed: %s", operation, exc)
            raise StoreUnavailable(operation, str(exc)) from exc
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._transaction("init_schema") as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS sessions (
                    session_id      TEXT PRIMARY KEY,
                    user_id         TEXT NOT NULL,
                    created_at      TEXT NOT NULL,
                    last_active     TEXT NOT NULL,
                    company_ticker  TEXT
                );

                CREATE TABLE IF NOT EXISTS entries (
                    seq              INTEGER PRIMARY KEY AUTOINCREMENT,
                    id               TEXT    NOT NULL UNIQUE,
                    session_id       TEXT    NOT NULL REFERENCES sessions(session_id),
                    kind             TEXT    NOT NULL CHECK(kind IN
                                         ('query', 'response', 'specialist_output', 'summary', 'metadata')),
                    text             TEXT    NOT NULL,
                    query_id         TEXT,
                    specialist_type  TEXT,
                    file_links       TEXT,
                    meta_key         TEXT,
                    timestamp        TEXT    NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_entries_session_kind
                    ON entries(session_id, kind, timestamp, seq);
            """)

    # ── sessions ──────────────────────────────────────────────────────────────

    @staticmethod
    def new_session_id() -> str:
        """Generate a fresh opaque session identifier."""
        return uuid.uuid4().hex

    def create_session(
        self,
        user_id: str = "anonymous",
        company_ticker: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> str:
        """
        Create a session row and return its id.

        Supplying an existing *session_id* is a no-op that returns the id.
        """
        sid = session_id or self.new_session_id()
        now = _fmt(_clock.now())
        with self._transaction("create_session") as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO sessions
                    (session_id, user_id, created_at, last_active, company_ticker)
                VALUES (?, ?, ?, ?, ?)
                """,
                (sid, user_id, now, now, company_ticker),
            )
        return sid

    def get_session(self, session_id: str) -> Optional[Session]:
        with self._transaction("get_session") as conn:
            row = conn.execute(
                "SELECT * FROM sessions WHERE session_id = ?", (session_id,)
            ).fetchone()
        return self._row_to_session(row) if row else None

    def touch_session(self, session_id: str) -> None:
        """Bump ``last_active``; never moves it backwards."""
        now = _fmt(_clock.now())
        with self._transaction("touch_session") as conn:
            conn.execute(
                "UPDATE sessions SET last_active = MAX(last_active, ?) WHERE session_id = ?",
                (now, session_id),
            )

    def update_company_ticker(self, session_id: str, company_ticker: Optional[str]) -> None:
        """Replace the session's company context (last writer wins) and bump ``last_active``."""
        now = _fmt(_clock.now())
        with self._transaction("update_company_ticker") as conn:
            conn.execute(
                """
                UPDATE sessions
                SET company_ticker = ?, last_active = MAX(last_active, ?)
                WHERE session_id = ?
                """,
                (company_ticker, now, session_id),
            )

    def list_sessions(self, user_id: Optional[str] = None) -> List[Session]:
        """Return sessions, most recently active first, optionally for one user."""
        sql = "SELECT * FROM sessions"
        params: tuple = ()
        if user_id is not None:
            sql += " WHERE user_id = ?"
            params = (user_id,)
        sql += " ORDER BY last_active DESC"
        with self._transaction("list_sessions") as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_session(r) for r in rows]

    # ── appends ───────────────────────────────────────────────────────────────

    def _insert(
        self,
        conn: sqlite3.Connection,
        session_id: str,
        kind: str,
        text: str,
        *,
        query_id: Optional[str] = None,
        specialist_type: Optional[str] = None,
        file_links: Optional[List[str]] = None,
        meta_key: Optional[str] = None,
        not_before: Optional[datetime] = None,
    ) -> str:
        entry_id = uuid.uuid4().hex
        now = _clock.now(not_before)
        # appends to an unknown session create it
        conn.execute(
            """
            INSERT OR IGNORE INTO sessions
                (session_id, user_id, created_at, last_active, company_ticker)
            VALUES (?, 'anonymous', ?, ?, NULL)
            """,
            (session_id, _fmt(now), _fmt(now)),
        )
        conn.execute(
            """
            INSERT INTO entries
                (id, session_id, kind, text, query_id, specialist_type, file_links, meta_key, timestamp)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry_id,
                session_id,
                kind,
                text,
                query_id,
                specialist_type,
                json.dumps(file_links) if file_links is not None else None,
                meta_key,
                _fmt(now),
            ),
        )
        return entry_id

    def _query_timestamp(self, conn: sqlite3.Connection, session_id: str, query_id: str) -> datetime:
        row = conn.execute(
            "SELECT timestamp FROM entries WHERE id = ? AND session_id = ? AND kind = ?",
            (query_id, session_id, _QUERY),
        ).fetchone()
        if row is None:
            raise InvalidInput("query_id", f"Unknown query {query_id} for session {session_id}.")
        return _parse(row["timestamp"])

    def append_query(self, session_id: str, text: str) -> str:
        with self._transaction("append_query") as conn:
            return self._insert(conn, session_id, _QUERY, text)

    def append_response(self, session_id: str, text: str, query_id: str) -> str:
        """
        Append the answer to *query_id*.

        Raises InvalidInput when *query_id* is not a query of this session;
        the response timestamp is never earlier than the query's.
        """
        with self._transaction("append_response") as conn:
            query_ts = self._query_timestamp(conn, session_id, query_id)
            return self._insert(
                conn, session_id, _RESPONSE, text, query_id=query_id, not_before=query_ts
            )

    def append_summary(self, session_id: str, text: str, query_id: str) -> str:
        with self._transaction("append_summary") as conn:
            query_ts = self._query_timestamp(conn, session_id, query_id)
            return self._insert(
                conn, session_id, _SUMMARY, text, query_id=query_id, not_before=query_ts
            )

    def append_specialist_output(
        self,
        session_id: str,
        specialist_type: str,
        output_text: str,
        file_links: Optional[List[str]] = None,
    ) -> str:
        with self._transaction("append_specialist_output") as conn:
            return self._insert(
                conn,
                session_id,
                _SPECIALIST,
                output_text,
                specialist_type=specialist_type,
                file_links=list(file_links or []),
            )

    def add_session_metadata(self, session_id: str, key: str, value: str) -> str:
        with self._transaction("add_session_metadata") as conn:
            return self._insert(conn, session_id, _METADATA, value, meta_key=key)

    # ── reads ─────────────────────────────────────────────────────────────────

    def _rows(self, session_id: str, kind: str, operation: str) -> List[sqlite3.Row]:
        with self._transaction(operation) as conn:
            return conn.execute(
                """
                SELECT * FROM entries
                WHERE session_id = ? AND kind = ?
                ORDER BY timestamp ASC, seq ASC
                """,
                (session_id, kind),
            ).fetchall()

    def _latest_row(self, session_id: str, kind: str, operation: str) -> Optional[sqlite3.Row]:
        with self._transaction(operation) as conn:
            return conn.execute(
                """
                SELECT * FROM entries
                WHERE session_id = ? AND kind = ?
                ORDER BY timestamp DESC, seq DESC
                LIMIT 1
                """,
                (session_id, kind),
            ).fetchone()

    def list_queries(self, session_id: str) -> List[QueryEntry]:
        return [self._row_to_query(r) for r in self._rows(session_id, _QUERY, "list_queries")]

    def list_responses(self, session_id: str) -> List[ResponseEntry]:
        return [self._row_to_response(r) for r in self._rows(session_id, _RESPONSE, "list_responses")]

    def list_specialist_outputs(self, session_id: str) -> List[SpecialistOutputEntry]:
        rows = self._rows(session_id, _SPECIALIST, "list_specialist_outputs")
        return [self._row_to_specialist(r) for r in rows]

    def list_summaries(self, session_id: str) -> List[SummaryEntry]:
        return [self._row_to_summary(r) for r in self._rows(session_id, _SUMMARY, "list_summaries")]

    def get_session_metadata(self, session_id: str) -> List[SessionMetadataEntry]:
        rows = self._rows(session_id, _METADATA, "get_session_metadata")
        return [
            SessionMetadataEntry(
                id=r["id"], timestamp=_parse(r["timestamp"]), seq=r["seq"],
                key=r["meta_key"], value=r["text"],
            )
            for r in rows
        ]

    def latest_summary(self, session_id: str) -> Optional[SummaryEntry]:
        row = self._latest_row(session_id, _SUMMARY, "latest_summary")
        return self._row_to_summary(row) if row else None

    def latest_turn(self, session_id: str) -> LatestTurn:
        """Most recent query, response, specialist output and summary of a session."""
        query = self._latest_row(session_id, _QUERY, "latest_turn")
        response = self._latest_row(session_id, _RESPONSE, "latest_turn")
        specialist = self._latest_row(session_id, _SPECIALIST, "latest_turn")
        summary = self._latest_row(session_id, _SUMMARY, "latest_turn")
        return LatestTurn(
            query=self._row_to_query(query) if query else None,
            response=self._row_to_response(response) if response else None,
            specialist_output=self._row_to_specialist(specialist) if specialist else None,
            summary=self._row_to_summary(summary) if summary else None,
        )

    def full_history(self, session_id: str) -> ConversationHistory:
        """All queries and responses (oldest first) plus the latest summary."""
        return ConversationHistory(
            queries=self.list_queries(session_id),
            responses=self.list_responses(session_id),
            latest_summary=self.latest_summary(session_id),
        )

    # ── row mapping ───────────────────────────────────────────────────────────

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> Session:
        return Session(
            session_id=row["session_id"],
            user_id=row["user_id"],
            created_at=_parse(row["created_at"]),
            last_active=_parse(row["last_active"]),
            company_ticker=row["company_ticker"],
        )

    @staticmethod
    def _row_to_query(row: sqlite3.Row) -> QueryEntry:
        return QueryEntry(id=row["id"], timestamp=_parse(row["timestamp"]), seq=row["seq"], text=row["text"])

    @staticmethod
    def _row_to_response(row: sqlite3.Row) -> ResponseEntry:
        return ResponseEntry(
            id=row["id"], timestamp=_parse(row["timestamp"]), seq=row["seq"],
            text=row["text"], query_id=row["query_id"],
        )

    @staticmethod
    def _row_to_specialist(row: sqlite3.Row) -> SpecialistOutputEntry:
        return SpecialistOutputEntry(
            id=row["id"], timestamp=_parse(row["timestamp"]), seq=row["seq"],
            specialist_type=row["specialist_type"], output_text=row["text"],
            file_links=json.loads(row["file_links"] or "[]"),
        )

    @staticmethod
    def _row_to_summary(row: sqlite3.Row) -> SummaryEntry:
        return SummaryEntry(
            id=row["id"], timestamp=_parse(row["timestamp"]), seq=row["seq"],
            text=row["text"], query_id=row["query_id"],
        )
