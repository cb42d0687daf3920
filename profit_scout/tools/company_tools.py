"""
LangChain @tool wrapper for company data via yfinance.

No API key required — uses Yahoo Finance directly.  The tool accepts either
a ticker ("MSFT") or a company name ("Microsoft"); names are resolved to a
ticker with Yahoo's search endpoint first.
"""
from __future__ import annotations

import json
import re
from typing import Optional

import yfinance as yf
from langchain_core.tools import tool

from profit_scout.utils.logging import get_logger

logger = get_logger(__name__)

_TICKER_SHAPE = re.compile(r"^[A-Za-z]{1,5}(?:[.\-][A-Za-z]{1,2})?$")


# ── helpers ───────────────────────────────────────────────────────────────────

def _safe_float(val) -> Optional[float]:
    """Coerce *val* to float, returning ``None`` for any non-numeric input."""
    try:
        return float(val)
    except (TypeError, ValueError):
        return None


def resolve_ticker(company: str) -> Optional[str]:
    """
    Map a company name or ticker to a Yahoo ticker symbol.

    Ticker-shaped upper-case input is used as-is; anything else goes through
    ``yf.Search``.  Returns ``None`` when nothing matches.
    """
    company = company.strip()
    if not company:
        return None
    if _TICKER_SHAPE.match(company) and company.isupper():
        return company
    quotes = yf.Search(company, max_results=1).quotes
    if quotes:
        return quotes[0].get("symbol")
    if _TICKER_SHAPE.match(company):
        return company.upper()
    return None


# ── tools ─────────────────────────────────────────────────────────────────────

@tool
def fetch_company_data(company: str) -> str:
    """
    Fetch profile and key financials for a company.

    Provide a ticker (e.g. 'MSFT') or a company name (e.g. 'Microsoft').
    Returns name, sector, industry, price, market cap, revenue, margins,
    earnings per share, P/E ratios and a short business summary as JSON.
    """
    try:
        ticker = resolve_ticker(company)
        if not ticker:
            return json.dumps({
                "company": company,
                "data_available": False,
                "note": f"No specific data found for {company}.",
            })

        info = yf.Ticker(ticker).info or {}
        if not info.get("longName") and not info.get("shortName"):
            return json.dumps({
                "company": company,
                "ticker": ticker,
                "data_available": False,
                "note": f"No specific data found for {company}.",
            })

        summary = (info.get("longBusinessSummary") or "").strip()
        if len(summary) > 600:
            summary = summary[:600] + " … [truncated]"

        return json.dumps({
            "company":          info.get("longName") or info.get("shortName"),
            "ticker":           ticker,
            "data_available":   True,
            "sector":           info.get("sector"),
            "industry":         info.get("industry"),
            "price":            _safe_float(info.get("currentPrice") or info.get("regularMarketPrice")),
            "market_cap":       info.get("marketCap"),
            "revenue":          info.get("totalRevenue"),
            "revenue_growth":   info.get("revenueGrowth"),
            "gross_margin":     info.get("grossMargins"),
            "profit_margin":    info.get("profitMargins"),
            "eps":              info.get("trailingEps"),
            "pe_ratio":         info.get("trailingPE"),
            "forward_pe":       info.get("forwardPE"),
            "business_summary": summary,
            "sources":          [f"https://finance.yahoo.com/quote/{ticker}"],
        })
    except Exception as e:
        logger.warning("fetch_company_data failed [company=%s]: %s", company, e)
        return json.dumps({"error": str(e), "company": company, "data_available": False})
