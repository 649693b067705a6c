"""
Currency conversion for fetched quotes.

Some providers only list a fund in another currency (e.g. a DKK fund quoted
in EUR). Quotes are converted to the instrument's configured currency using
the Frankfurter API (ECB reference rates). Rates are cached per run.
"""

import threading
from dataclasses import replace
from decimal import Decimal
from typing import Dict, Optional, Tuple

import requests
from loguru import logger

from fund_ingest.core.errors import FetchError, ParseError
from fund_ingest.services.data.parsing import to_decimal
from fund_ingest.services.data.types import FetchResult, QuotePoint


PRICE_QUANTUM = Decimal("0.0001")


class FxConverter:
    """
    Frankfurter-backed FX converter.

    Note: the whole fetched window is converted at the latest rate; history
    is for display, not accounting.
    """

    DEFAULT_URL = "https://api.frankfurter.app/latest"
    name = "fx"

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        url: str = DEFAULT_URL,
        timeout: float = 15.0
    ):
        self.session = session or requests.Session()
        self.url = url
        self.timeout = timeout
        self._rates: Dict[Tuple[str, str], Decimal] = {}
        self._lock = threading.Lock()

    def rate(self, base: str, quote: str) -> Decimal:
        """
        Units of quote currency per one unit of base currency.

        Raises:
            FetchError: Rate request failed
            ParseError: Response lacks a usable rate
        """
        base, quote = base.upper(), quote.upper()
        if base == quote:
            return Decimal("1")

        with self._lock:
            cached = self._rates.get((base, quote))
        if cached is not None:
            return cached

        try:
            response = self.session.get(
                self.url,
                params={"from": base, "to": quote},
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise FetchError(f"rate {base}->{quote} unavailable: {e}", source=self.name) from e
        try:
            data = response.json()
        except ValueError as e:
            raise ParseError(f"invalid JSON for {base}->{quote}: {e}", source=self.name) from e

        rates = data.get("rates") if isinstance(data, dict) else None
        if not isinstance(rates, dict) or quote not in rates:
            raise ParseError(f"no {quote} rate in response for {base}", source=self.name)
        value = to_decimal(rates[quote])
        if value <= 0:
            raise ParseError(f"non-positive rate {base}->{quote}: {value}", source=self.name)

        logger.debug(f"FX rate {base}->{quote} = {value}")
        with self._lock:
            self._rates[(base, quote)] = value
        return value

    def convert(self, result: FetchResult, currency: str) -> FetchResult:
        """
        Return result with every point converted into currency.

        Raises:
            ParseError: A converted price rounds to zero
        """
        if result.currency.upper() == currency.upper():
            return result
        factor = self.rate(result.currency, currency)
        points = []
        for p in result.points:
            price = (p.price * factor).quantize(PRICE_QUANTUM)
            if price <= 0:
                raise ParseError(
                    f"{p.price} {result.currency} converts to {price} {currency}",
                    source=self.name
                )
            points.append(QuotePoint(date_key=p.date_key, price=price, currency=currency))
        return replace(result, points=tuple(points), currency=currency)
