"""
Document Retriever

High-level interface over the Pinecone store: ``retrieve_documents()``
returns structured snippets with their source paths for the answer
engine's document tool, and ``load_text_documents()`` prepares local
files for ``upsert_documents()``.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from profit_scout.utils.logging import get_logger
from .pinecone_store import query_similar

logger = get_logger(__name__)

_SCORE_THRESHOLD = 0.75     # ignore low-relevance matches
_MAX_SNIPPET_CHARS = 800
_DOC_SUFFIXES = (".txt", ".md")


def retrieve_documents(
    query: str,
    top_k: int = 3,
    ticker: Optional[str] = None,
    score_threshold: float = _SCORE_THRESHOLD,
) -> List[dict]:
    """
    Return the chunks relevant to *query*.

    Parameters
    ----------
    query : str
        The search phrase.
    top_k : int
        Maximum number of chunks (default 3).
    ticker : str | None
        Restrict to chunks tagged with this ticker (metadata filter).
    score_threshold : float
        Minimum similarity score to include a chunk (0–1, default 0.75).

    Returns
    -------
    list[dict]
        ``{"source", "snippet", "score"}`` dicts, best first.  Empty when
        nothing clears the threshold.
    """
    if not query or not query.strip():
        return []

    filter_meta = {"ticker": ticker.upper()} if ticker else None
    matches = query_similar(query_text=query, top_k=top_k, filter_metadata=filter_meta)

    relevant = [m for m in matches if m["score"] >= score_threshold]
    if not relevant:
        logger.debug("RAG: no matches above threshold %.2f for query=%s", score_threshold, query[:60])
        return []

    results = []
    for match in relevant:
        snippet = (match["text"] or "").strip()
        if len(snippet) > _MAX_SNIPPET_CHARS:
            snippet = snippet[:_MAX_SNIPPET_CHARS] + " … [truncated]"
        results.append({
            "source":  match["metadata"].get("source") or match.get("id") or "unknown",
            "snippet": snippet,
            "score":   round(float(match["score"]), 4),
        })
    return results


def load_text_documents(dir_path: str | Path, ticker: Optional[str] = None) -> List[dict]:
    """
    Split every ``.txt`` / ``.md`` file under *dir_path* into paragraph chunks.

    Returns
    -------
    list[dict]
        Documents shaped for ``upsert_documents()``.
    """
    root = Path(dir_path)
    docs: List[dict] = []
    if not root.exists():
        logger.warning("Document directory does not exist: %s", root)
        return docs

    for path in sorted(p for p in root.rglob("*") if p.suffix.lower() in _DOC_SUFFIXES):
        text = path.read_text(encoding="utf-8")
        parts = [s.strip() for s in text.split("\n\n") if s.strip()]
        for i, part in enumerate(parts, start=1):
            metadata = {"source": str(path.relative_to(root)), "doc": path.stem}
            if ticker:
                metadata["ticker"] = ticker.upper()
            docs.append({"id": f"{path.stem}-{i}", "text": part, "metadata": metadata})

    logger.info("Loaded %d chunk(s) from %s", len(docs), root)
    return docs
