"""
Yahoo Finance time-series adapter (via yfinance).

Returns daily closes for a bounded window (default 3 months), keyed by the
exchange-local trading date, so history can be back-filled in one run.

Free, no API key required.
"""

from datetime import timezone
from typing import List, Optional

import yfinance as yf
from loguru import logger

from fund_ingest.adapters.data_sources.base import SourceAdapter, SourceContext
from fund_ingest.core.errors import FetchError, ParseError
from fund_ingest.services.data.parsing import to_decimal
from fund_ingest.services.data.types import (
    FetchResult,
    Instrument,
    QuotePoint,
    SourceConfig,
)


class YahooFinanceSource(SourceAdapter):
    """
    Yahoo Finance adapter backed by the yfinance library.

    Rows with missing or non-positive closes are skipped; funds often report
    gaps on non-trading days.
    """

    name = "yfinance"

    def __init__(
        self,
        config: SourceConfig,
        context: Optional[SourceContext] = None,
        period: str = "3mo"
    ):
        """
        Args:
            config: Source configuration (symbol or search hint)
            context: Shared run context
            period: yfinance history window (e.g. "1mo", "3mo")
        """
        super().__init__(config, context)
        self.period = period

    def _fetch(self, instrument: Instrument) -> FetchResult:
        symbol = self.context.resolver.resolve(instrument, self.config).symbol

        try:
            ticker = yf.Ticker(symbol)
            df = ticker.history(period=self.period, interval="1d", auto_adjust=False)
        except Exception as e:
            # yfinance surfaces transport and throttling failures as assorted types
            raise FetchError(f"yfinance history failed for {symbol}: {e}", source=self.identifier) from e

        if df is None or df.empty or "Close" not in df:
            raise ParseError(f"no history returned for {symbol}", source=self.identifier)

        meta = getattr(ticker, "history_metadata", None)
        meta = meta if isinstance(meta, dict) else {}
        currency = meta.get("currency") or self.config.currency or instrument.currency

        points: List[QuotePoint] = []
        skipped = 0
        for timestamp, close in df["Close"].items():
            try:
                price = to_decimal(close)
                points.append(QuotePoint(
                    date_key=timestamp.date(),
                    price=price,
                    currency=currency,
                ))
            except (ParseError, ValueError):
                skipped += 1

        if not points:
            raise ParseError(f"no valid closes for {symbol}", source=self.identifier)
        if skipped:
            logger.debug(f"Skipped {skipped} unusable rows for {symbol} from yfinance")

        quote_time = None
        market_time = meta.get("regularMarketTime")
        if isinstance(market_time, (int, float)):
            try:
                quote_time = self._market_time(market_time)
            except ParseError as e:
                logger.debug(f"Ignoring metadata time for {symbol}: {e}")
        if quote_time is None:
            quote_time = df.index[-1].to_pydatetime().astimezone(timezone.utc)

        logger.debug(f"Fetched {len(points)} closes for {symbol} from yfinance")
        return FetchResult(
            points=tuple(points),
            source_id=f"{self.name}:{symbol}",
            currency=currency,
            quote_time=quote_time,
        )
