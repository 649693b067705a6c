"""
Yahoo Finance quote endpoint adapter.

Plain HTTP against the v7 quote API (no key required). Returns the current
point only: regularMarketPrice, falling back to postMarketPrice, dated by
regularMarketTime.
"""

from loguru import logger

from fund_ingest.adapters.data_sources.base import SourceAdapter
from fund_ingest.core.errors import ParseError
from fund_ingest.services.data.parsing import to_decimal
from fund_ingest.services.data.types import FetchResult, Instrument, QuotePoint


class YahooQuoteSource(SourceAdapter):
    """Yahoo v7 quote adapter (current price only)."""

    QUOTE_URL = "https://query1.finance.yahoo.com/v7/finance/quote"
    name = "yahoo_quote"

    def _fetch(self, instrument: Instrument) -> FetchResult:
        symbol = self.context.resolver.resolve(instrument, self.config).symbol
        data = self._get_json(self.QUOTE_URL, params={"symbols": symbol})

        results = (data.get("quoteResponse") or {}).get("result") or []
        if not results:
            raise ParseError(f"no result for {symbol}", source=self.identifier)
        quote = results[0]

        raw_price = quote.get("regularMarketPrice")
        if raw_price is None:
            raw_price = quote.get("postMarketPrice")
        price = to_decimal(raw_price)

        currency = quote.get("currency") or self.config.currency or instrument.currency
        market_time = quote.get("regularMarketTime")
        quote_time = self._market_time(market_time)

        point = QuotePoint(
            date_key=self._market_date(market_time),
            price=price,
            currency=currency,
        )
        logger.debug(f"Yahoo quote {symbol}: {price} {currency} @ {point.date_key}")
        return FetchResult(
            points=(point,),
            source_id=f"{self.name}:{symbol}",
            currency=currency,
            quote_time=quote_time,
        )
