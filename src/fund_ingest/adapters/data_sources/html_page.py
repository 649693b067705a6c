"""
Scraped web page adapter.

Pulls a single current price out of an HTML page: optionally narrow to a CSS
selector, then apply a regex. Pages that print "as of DD/MM" can supply an
as_of_pattern so the point is dated by the page instead of the run.

Inherently brittle to markup changes; a mismatch is a ParseError and the
fallback chain moves on.
"""

import re
from datetime import date, datetime
from typing import Optional

from bs4 import BeautifulSoup
from loguru import logger

from fund_ingest.adapters.data_sources.base import SourceAdapter
from fund_ingest.core.errors import ParseError
from fund_ingest.services.data.parsing import parse_as_of, parse_price
from fund_ingest.services.data.types import FetchResult, Instrument, QuotePoint


# First number-looking token: digits, optional 3-digit groups, optional decimals
DEFAULT_PRICE_PATTERN = r"(?P<price>\d+(?:[.,\s]\d{3})*(?:[.,]\d+)?)"


def _captured(match: re.Match, name: str) -> str:
    """Named group if present, else the first group, else the whole match."""
    if name in match.groupdict():
        return match.group(name)
    return match.group(1) if match.re.groups else match.group(0)


class HtmlPageSource(SourceAdapter):
    """HTML scraping adapter (current price only)."""

    name = "html"

    def _fetch(self, instrument: Instrument) -> FetchResult:
        if not self.config.url:
            raise ParseError("html source requires a url", source=self.identifier)

        response = self._get(self.config.url, headers={"Accept": "text/html"})
        soup = BeautifulSoup(response.text, "html.parser")
        text = self._extract_text(soup)

        price_pattern = self.config.price_pattern or DEFAULT_PRICE_PATTERN
        match = re.search(price_pattern, text)
        if not match:
            raise ParseError(
                f"price pattern {price_pattern!r} not found (markup drift?)",
                source=self.identifier,
            )
        price = parse_price(_captured(match, "price"))

        now = self.context.now()
        date_key = self._as_of_date(soup, now) or now.date()
        currency = self.config.currency or instrument.currency

        logger.debug(f"Scraped {price} {currency} @ {date_key} from {self.config.url}")
        return FetchResult(
            points=(QuotePoint(date_key=date_key, price=price, currency=currency),),
            source_id=self.identifier,
            currency=currency,
            quote_time=now,
        )

    def _extract_text(self, soup: BeautifulSoup) -> str:
        if not self.config.selector:
            return soup.get_text(" ", strip=True)
        element = soup.select_one(self.config.selector)
        if element is None:
            raise ParseError(
                f"selector {self.config.selector!r} matched nothing (markup drift?)",
                source=self.identifier,
            )
        return element.get_text(" ", strip=True)

    def _as_of_date(self, soup: BeautifulSoup, now: datetime) -> Optional[date]:
        """Page-reported date, or None to fall back to the run date."""
        if not self.config.as_of_pattern:
            return None
        match = re.search(self.config.as_of_pattern, soup.get_text(" ", strip=True))
        if not match:
            logger.warning(
                f"{self.identifier}: as-of pattern not found, dating point by run date"
            )
            return None
        return parse_as_of(_captured(match, "as_of"), now)
