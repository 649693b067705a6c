"""
Maps instruments to provider symbols.

An explicitly configured symbol wins without any network call. Otherwise the
Yahoo search endpoint is queried and candidates are ranked deterministically:
funds and ETFs first, then closest name match, then symbol.

Resolutions are cached for the lifetime of the resolver only (one run);
providers rename symbols, so nothing is persisted.
"""

import re
import threading
from dataclasses import dataclass
from difflib import SequenceMatcher
from typing import Dict, List, Optional, Tuple

import requests
from loguru import logger

from fund_ingest.core.errors import FetchError, ParseError, ResolutionError
from fund_ingest.services.data.types import Instrument, SourceConfig


# Lower rank sorts first
QUOTE_TYPE_RANK = {
    "MUTUALFUND": 0,
    "ETF": 1,
}
OTHER_TYPE_RANK = 2

# Config entries like "0P0000XXXX.F" are unfilled placeholders
PLACEHOLDER_MARKER = "XXXX"


@dataclass(frozen=True)
class ProviderSymbol:
    """A provider-specific identifier for an instrument."""
    symbol: str
    name: Optional[str] = None
    quote_type: Optional[str] = None
    exchange: Optional[str] = None


def _normalize_name(name: str) -> str:
    return re.sub(r"\s+", " ", re.sub(r"[^\w\s]", " ", name or "")).strip().lower()


def name_similarity(a: str, b: str) -> float:
    """Similarity in [0, 1] between two fund names, ignoring case and punctuation."""
    return SequenceMatcher(None, _normalize_name(a), _normalize_name(b)).ratio()


def rank_candidates(instrument: Instrument, candidates: List[dict]) -> List[ProviderSymbol]:
    """
    Order raw search candidates best-first.

    Sort key: (quote type rank, -name similarity, symbol). Candidates without
    a symbol are dropped.
    """
    scored: List[Tuple[Tuple[int, float, str], ProviderSymbol]] = []
    for raw in candidates:
        symbol = raw.get("symbol")
        if not symbol:
            continue
        name = raw.get("longname") or raw.get("shortname") or ""
        quote_type = (raw.get("quoteType") or "").upper()
        key = (
            QUOTE_TYPE_RANK.get(quote_type, OTHER_TYPE_RANK),
            -name_similarity(instrument.name, name),
            symbol,
        )
        scored.append((key, ProviderSymbol(
            symbol=symbol,
            name=name or None,
            quote_type=quote_type or None,
            exchange=raw.get("exchange"),
        )))
    scored.sort(key=lambda pair: pair[0])
    return [symbol for _, symbol in scored]


class YahooSymbolResolver:
    """
    Resolves instruments to Yahoo Finance symbols.

    Thread-safe: one resolver is shared by all workers of a run.
    """

    SEARCH_URL = "https://query2.finance.yahoo.com/v1/finance/search"
    name = "yahoo-search"

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 15.0):
        """
        Initialize resolver.

        Args:
            session: Shared HTTP session (a private one is created if omitted)
            timeout: Request timeout in seconds
        """
        self.session = session or requests.Session()
        self.timeout = timeout
        self._cache: Dict[str, ProviderSymbol] = {}
        self._lock = threading.Lock()

    def resolve(self, instrument: Instrument, source: SourceConfig) -> ProviderSymbol:
        """
        Resolve the provider symbol for one configured source.

        Raises:
            FetchError: Search request failed
            ResolutionError: Search returned no usable candidates
        """
        if source.symbol:
            if PLACEHOLDER_MARKER in source.symbol.upper():
                raise ResolutionError(f"placeholder symbol {source.symbol!r}", source=self.name)
            return ProviderSymbol(symbol=source.symbol)

        query = source.search or instrument.isin or instrument.name
        with self._lock:
            cached = self._cache.get(query)
        if cached is not None:
            return cached

        candidates = self._search(query)
        ranked = rank_candidates(instrument, candidates)
        if not ranked:
            raise ResolutionError(f"no symbol candidates for {query!r}", source=self.name)

        best = ranked[0]
        logger.debug(
            f"Resolved {instrument.name!r} via {query!r} -> {best.symbol} "
            f"({best.quote_type}, {len(ranked)} candidates)"
        )
        with self._lock:
            self._cache[query] = best
        return best

    def _search(self, query: str) -> List[dict]:
        params = {"q": query, "quotesCount": 10, "newsCount": 0}
        try:
            response = self.session.get(self.SEARCH_URL, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise FetchError(f"symbol search failed for {query!r}: {e}", source=self.name) from e
        try:
            data = response.json()
        except ValueError as e:
            raise ParseError(f"symbol search returned invalid JSON: {e}", source=self.name) from e

        quotes = data.get("quotes") if isinstance(data, dict) else None
        if not isinstance(quotes, list):
            raise ParseError("symbol search response has no quotes list", source=self.name)
        return [q for q in quotes if isinstance(q, dict)]
