"""
Tavily Web Search Tool

Gives the answer engine a search index for current affairs: latest
earnings, news, guidance changes and anything newer than the model's
training data.

Usage
-----
    from profit_scout.tools.web_search import tavily_search

    results = tavily_search("MSFT latest quarterly revenue")

If TAVILY_API_KEY is not set, ``tavily_search`` raises EnvironmentError and
the ``search_web`` tool reports that as a structured error the model can
explain to the user.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache

from langchain_core.tools import tool
from tavily import TavilyClient

from profit_scout.utils.logging import get_logger

logger = get_logger(__name__)

# ── Configuration ──────────────────────────────────────────────────────────────
_MAX_RESULTS = 5
_SEARCH_DEPTH = "basic"      # "basic" (faster) | "advanced" (deeper, costs more)
_MAX_CONTENT_CHARS = 500     # truncate each result's content snippet


# ── Client factory (cached) ─────────────────────────────────────────────────────

@lru_cache(maxsize=1)
def _get_tavily_client() -> TavilyClient:
    """Return a cached TavilyClient.  Raises EnvironmentError when unconfigured."""
    api_key = os.getenv("TAVILY_API_KEY", "").strip()
    if not api_key:
        raise EnvironmentError(
            "TAVILY_API_KEY is not set. "
            "Add it to your .env file:  TAVILY_API_KEY=tvly-..."
        )
    return TavilyClient(api_key=api_key)


# ── Public helpers ──────────────────────────────────────────────────────────────

def tavily_search(
    query: str,
    max_results: int = _MAX_RESULTS,
    search_depth: str = _SEARCH_DEPTH,
) -> list[dict]:
    """
    Search the web using Tavily.

    Returns
    -------
    list[dict]
        ``{"title", "url", "snippet"}`` dicts; empty for a blank query or no hits.
    """
    if not query or not query.strip():
        return []

    response = _get_tavily_client().search(
        query=query.strip(),
        search_depth=search_depth,
        max_results=max_results,
    )

    results = []
    for r in response.get("results", []):
        content = (r.get("content") or "").strip()
        if len(content) > _MAX_CONTENT_CHARS:
            content = content[:_MAX_CONTENT_CHARS] + " … [truncated]"
        results.append({
            "title":   (r.get("title") or "No title").strip(),
            "url":     (r.get("url") or "").strip(),
            "snippet": content,
        })

    logger.info("Tavily: returned %d results for query=%s", len(results), query[:60])
    return results


@tool
def search_web(query: str) -> str:
    """
    Search the web for recent financial news and data (earnings releases,
    guidance, market-moving events).  Use this for anything time-sensitive.
    Returns result titles, URLs and snippets as JSON.
    """
    try:
        results = tavily_search(query)
    except Exception as e:
        logger.warning("Tavily search failed [query=%s]: %s", query[:60], e)
        return json.dumps({"error": str(e), "query": query, "results": []})

    if not results:
        return json.dumps({"query": query, "results": [], "note": "No web results found."})
    return json.dumps({
        "query": query,
        "results": results,
        "sources": [r["url"] for r in results if r["url"]],
    })
