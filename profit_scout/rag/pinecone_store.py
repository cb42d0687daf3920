"""
Pinecone Document Store Wrapper

Handles:
  - Connecting to a Pinecone index
  - Generating OpenAI embeddings for filings / reports / transcripts
  - Upserting document chunks into the index
  - Querying for top-k relevant chunks

The index is expected to exist in Pinecone already.  Use
``upsert_documents()`` (or ``profit-scout ingest``) to populate it.

Environment variables required
-------------------------------
  PINECONE_API_KEY   — your Pinecone API key
  PINECONE_INDEX     — name of the Pinecone index (default: "profit-scout-docs")
  OPENAI_API_KEY     — used for generating embeddings

Errors
------
``query_similar`` raises on misconfiguration or transport failure; the
document tool turns that into a structured tool error.  ``upsert_documents``
logs and returns 0 instead.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from openai import OpenAI
from pinecone import Pinecone

from profit_scout.utils.logging import get_logger

logger = get_logger(__name__)

# ── Defaults ────────────────────────────────────────────────────────────────────
_DEFAULT_INDEX = "profit-scout-docs"
_EMBEDDING_MODEL = "text-embedding-3-small"
_TOP_K_DEFAULT = 3
_NAMESPACE = "company-docs"


# ── Lazy client factories ────────────────────────────────────────────────────────

@lru_cache(maxsize=1)
def _get_pinecone_index():
    """Return a connected Pinecone Index object (cached)."""
    api_key = os.getenv("PINECONE_API_KEY", "").strip()
    if not api_key:
        raise EnvironmentError(
            "PINECONE_API_KEY is not set. Add it to your .env file."
        )

    index_name = os.getenv("PINECONE_INDEX", _DEFAULT_INDEX).strip()
    index = Pinecone(api_key=api_key).Index(index_name)
    logger.info("Connected to Pinecone index: %s", index_name)
    return index


@lru_cache(maxsize=1)
def _get_embedding_client() -> OpenAI:
    """Return an OpenAI client for generating embeddings (cached)."""
    api_key = os.getenv("OPENAI_API_KEY", "").strip()
    if not api_key:
        raise EnvironmentError("OPENAI_API_KEY is not set.")
    return OpenAI(api_key=api_key)


# ── Embedding helper ─────────────────────────────────────────────────────────────

def embed_text(text: str) -> list[float]:
    """
    Generate an embedding vector for *text*.

    Text is truncated at 8 000 characters to stay under the model's token limit.
    """
    text = text.strip()[:8000]
    client = _get_embedding_client()
    response = client.embeddings.create(
        model=_EMBEDDING_MODEL,
        input=text,
    )
    return response.data[0].embedding


# ── Upsert ────────────────────────────────────────────────────────────────────────

def upsert_documents(
    documents: list[dict],
    namespace: str = _NAMESPACE,
) -> int:
    """
    Embed and upsert a list of documents into Pinecone.

    Parameters
    ----------
    documents : list[dict]
        Each dict must have:
          - ``id``      (str) — unique document / chunk ID
          - ``text``    (str) — text to embed
          - ``metadata`` (dict, optional) — e.g. ``{"source": "...", "ticker": "MSFT"}``

    namespace : str
        Pinecone namespace to use.

    Returns
    -------
    int
        Number of vectors upserted, or 0 on failure.
    """
    if not documents:
        return 0
    try:
        index = _get_pinecone_index()
        vectors = []
        for doc in documents:
            metadata = dict(doc.get("metadata", {}))
            metadata["text"] = doc["text"]          # store raw text for retrieval
            vectors.append({"id": doc["id"], "values": embed_text(doc["text"]), "metadata": metadata})

        index.upsert(vectors=vectors, namespace=namespace)
        logger.info("Pinecone: upserted %d vectors (namespace=%s)", len(vectors), namespace)
        return len(vectors)

    except EnvironmentError as exc:
        logger.warning("Pinecone not configured; skipping upsert (%s)", exc)
        return 0
    except Exception as exc:
        logger.warning("Pinecone upsert failed: %s", exc)
        return 0


# ── Query ─────────────────────────────────────────────────────────────────────────

def query_similar(
    query_text: str,
    top_k: int = _TOP_K_DEFAULT,
    namespace: str = _NAMESPACE,
    filter_metadata: Optional[dict] = None,
) -> list[dict]:
    """
    Query Pinecone for chunks most similar to *query_text*.

    Returns
    -------
    list[dict]
        Matches with keys ``id``, ``score``, ``text``, ``metadata``.
    """
    if not query_text or not query_text.strip():
        return []

    index = _get_pinecone_index()
    kwargs: dict = {
        "vector": embed_text(query_text),
        "top_k": top_k,
        "namespace": namespace,
        "include_metadata": True,
    }
    if filter_metadata:
        kwargs["filter"] = filter_metadata

    response = index.query(**kwargs)
    results = []
    for match in response.get("matches", []):
        metadata = match.get("metadata", {}) or {}
        results.append({
            "id":       match.get("id"),
            "score":    match.get("score", 0.0),
            "text":     metadata.get("text", ""),
            "metadata": metadata,
        })

    logger.info("Pinecone: retrieved %d matches for query=%s", len(results), query_text[:60])
    return results
