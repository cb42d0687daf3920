"""
LangChain @tool wrapper over the Pinecone document store (filings, earnings
call transcripts, analyst reports).
"""
from __future__ import annotations

import json
from typing import Optional

from langchain_core.tools import tool

from profit_scout.rag.retriever import retrieve_documents
from profit_scout.utils.logging import get_logger

logger = get_logger(__name__)


@tool
def search_documents(query: str, ticker: Optional[str] = None) -> str:
    """
    Search stored company documents (filings, earnings call transcripts,
    reports) for passages relevant to the query.

    Optionally restrict the search to one ticker (e.g. 'MSFT').
    Returns matching snippets with their source paths as JSON.
    """
    try:
        results = retrieve_documents(query, top_k=3, ticker=ticker)
    except Exception as e:
        logger.warning("search_documents failed [query=%s]: %s", query[:60], e)
        return json.dumps({"error": str(e), "query": query, "results": []})

    if not results:
        return json.dumps({"query": query, "results": [], "note": "No matching documents found."})
    return json.dumps({
        "query": query,
        "results": results,
        "sources": [r["source"] for r in results],
    })
