"""Unit tests for instrument -> provider symbol resolution."""
import pytest
from unittest.mock import Mock

import requests

from fund_ingest.core.errors import FetchError, ParseError, ResolutionError
from fund_ingest.services.data.symbol_resolver import (
    YahooSymbolResolver,
    name_similarity,
    rank_candidates,
)
from fund_ingest.services.data.types import Instrument, SourceConfig
from tests.fixtures.helpers import load_fixture


FUND = Instrument(name="Nordea Invest Global Enhanced KL 1", currency="DKK", isin="DK0060949881")


class TestRanking:
    """Test deterministic candidate ranking."""

    def test_name_similarity_ignores_case_and_punctuation(self):
        assert name_similarity("Nordea Invest, Global-Enhanced", "nordea invest global enhanced") == 1.0
        assert name_similarity("Nordea", "Danske") < 0.5

    def test_funds_rank_before_equities(self):
        """Test MUTUALFUND beats EQUITY regardless of response order."""
        # ARRANGE
        quotes = load_fixture("yahoo_search_response.json")["quotes"]

        # ACT
        ranked = rank_candidates(FUND, quotes)

        # ASSERT
        assert ranked[0].symbol == "0P0001A2B3.CO"
        assert ranked[0].quote_type == "MUTUALFUND"
        assert ranked[-1].symbol == "NGE.F"

    def test_ties_broken_by_symbol(self):
        quotes = [
            {"symbol": "B", "shortname": "Same", "quoteType": "ETF"},
            {"symbol": "A", "shortname": "Same", "quoteType": "ETF"},
        ]

        assert [s.symbol for s in rank_candidates(FUND, quotes)] == ["A", "B"]

    def test_candidates_without_symbol_dropped(self):
        assert rank_candidates(FUND, [{"shortname": "No symbol"}]) == []


class TestYahooSymbolResolver:
    """Test resolver lookups and caching."""

    def test_explicit_symbol_needs_no_network(self, mock_session):
        # ARRANGE
        resolver = YahooSymbolResolver(mock_session)

        # ACT
        result = resolver.resolve(FUND, SourceConfig(kind="yahoo_quote", symbol="DK0060949881.CO"))

        # ASSERT
        assert result.symbol == "DK0060949881.CO"
        mock_session.get.assert_not_called()

    def test_placeholder_symbol_is_unresolvable(self, mock_session):
        """Test unfilled "0P0000XXXX.F" style entries are skipped."""
        resolver = YahooSymbolResolver(mock_session)

        with pytest.raises(ResolutionError, match="placeholder"):
            resolver.resolve(FUND, SourceConfig(kind="yahoo_quote", symbol="0P0000XXXX.F"))
        mock_session.get.assert_not_called()

    def test_search_by_isin_and_cache(self, mock_session, response_factory):
        """Test search uses the ISIN and is queried once per run."""
        # ARRANGE
        mock_session.get.return_value = response_factory(load_fixture("yahoo_search_response.json"))
        resolver = YahooSymbolResolver(mock_session, timeout=3.0)
        source = SourceConfig(kind="yfinance")

        # ACT
        first = resolver.resolve(FUND, source)
        second = resolver.resolve(FUND, source)

        # ASSERT
        assert first.symbol == "0P0001A2B3.CO"
        assert second == first
        mock_session.get.assert_called_once()
        _, kwargs = mock_session.get.call_args
        assert kwargs["params"]["q"] == "DK0060949881"
        assert kwargs["timeout"] == 3.0

    def test_search_hint_overrides_isin(self, mock_session, response_factory):
        mock_session.get.return_value = response_factory(load_fixture("yahoo_search_response.json"))
        resolver = YahooSymbolResolver(mock_session)

        resolver.resolve(FUND, SourceConfig(kind="yfinance", search="Nordea Global"))

        assert mock_session.get.call_args[1]["params"]["q"] == "Nordea Global"

    def test_no_candidates_raises_resolution_error(self, mock_session, response_factory):
        mock_session.get.return_value = response_factory({"quotes": []})
        resolver = YahooSymbolResolver(mock_session)

        with pytest.raises(ResolutionError, match="no symbol candidates"):
            resolver.resolve(FUND, SourceConfig(kind="yfinance"))

    def test_network_error_raises_fetch_error(self, mock_session):
        mock_session.get.side_effect = requests.ConnectionError("connection reset")
        resolver = YahooSymbolResolver(mock_session)

        with pytest.raises(FetchError, match="symbol search failed"):
            resolver.resolve(FUND, SourceConfig(kind="yfinance"))

    def test_http_error_raises_fetch_error(self, mock_session, response_factory):
        mock_session.get.return_value = response_factory(status=429)
        resolver = YahooSymbolResolver(mock_session)

        with pytest.raises(FetchError):
            resolver.resolve(FUND, SourceConfig(kind="yfinance"))

    def test_invalid_json_raises_parse_error(self, mock_session):
        response = Mock()
        response.raise_for_status.return_value = None
        response.json.side_effect = ValueError("Expecting value")
        mock_session.get.return_value = response
        resolver = YahooSymbolResolver(mock_session)

        with pytest.raises(ParseError, match="invalid JSON"):
            resolver.resolve(FUND, SourceConfig(kind="yfinance"))
