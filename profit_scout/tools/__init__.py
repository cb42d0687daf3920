"""
Tools package — structured data lookups the answer engine may call.

    fetch_company_data   Company profile and financials (yfinance)
    search_documents     Filings / transcripts / reports (Pinecone)
    search_web           Recent news and data (Tavily)

Every tool returns a JSON string; failures come back as ``{"error": ...}``
payloads instead of exceptions.
"""

from .company_tools import fetch_company_data
from .document_tools import search_documents
from .web_search import search_web

ANSWER_TOOLS = [fetch_company_data, search_documents, search_web]

__all__ = ["fetch_company_data", "search_documents", "search_web", "ANSWER_TOOLS"]
