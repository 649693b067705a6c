"""
Fixture helpers for ingestion tests.

Provider payloads captured from the live endpoints live next to this file
as JSON/HTML; the builders below keep test bodies short.
"""

import json
import time
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union
from unittest.mock import Mock

import requests

from fund_ingest.adapters.data_sources.base import SourceAdapter, SourceContext
from fund_ingest.services.data.types import (
    FetchResult,
    Instrument,
    QuotePoint,
    SourceConfig,
)


# Fixture directory
FIXTURES_DIR = Path(__file__).parent


def load_fixture(filename: str) -> Dict[str, Any]:
    """
    Load a JSON fixture file.

    Args:
        filename: Name of fixture file (e.g., "yahoo_quote_response.json")

    Raises:
        FileNotFoundError: If fixture file doesn't exist

    Example:
        >>> payload = load_fixture("yahoo_quote_response.json")
        >>> quote = payload["quoteResponse"]["result"][0]
    """
    fixture_path = FIXTURES_DIR / filename

    if not fixture_path.exists():
        raise FileNotFoundError(f"Fixture not found: {filename}")

    with open(fixture_path, encoding="utf-8") as f:
        return json.load(f)


def load_text_fixture(filename: str) -> str:
    """Load a raw text fixture (HTML pages)."""
    fixture_path = FIXTURES_DIR / filename
    if not fixture_path.exists():
        raise FileNotFoundError(f"Fixture not found: {filename}")
    return fixture_path.read_text(encoding="utf-8")


def make_response(json_data: Any = None, text: str = "", status: int = 200) -> Mock:
    """HTTP response double; status >= 400 makes raise_for_status() raise."""
    response = Mock()
    response.status_code = status
    response.text = text
    response.json.return_value = json_data
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status} Error")
    else:
        response.raise_for_status.return_value = None
    return response


def point(day: Union[int, date], price: Union[str, Decimal], currency: str = "DKK") -> QuotePoint:
    """QuotePoint for a January 2026 day (or an explicit date)."""
    date_key = day if isinstance(day, date) else date(2026, 1, day)
    return QuotePoint(date_key=date_key, price=Decimal(str(price)), currency=currency)


def fetch_result(
    points: Iterable[QuotePoint],
    source_id: str = "fake:primary",
    currency: str = "DKK",
    quote_time: Optional[datetime] = None
) -> FetchResult:
    return FetchResult(
        points=tuple(points),
        source_id=source_id,
        currency=currency,
        quote_time=quote_time,
    )


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class FakeAdapter(SourceAdapter):
    """
    Scripted adapter: returns outcome, or raises it when it is an exception.

    Goes through SourceAdapter.fetch, so error normalization is exercised.
    """

    name = "fake"

    def __init__(
        self,
        config: SourceConfig,
        outcome: Union[FetchResult, Exception],
        context: Optional[SourceContext] = None,
        delay: float = 0.0
    ):
        super().__init__(config, context)
        self.outcome = outcome
        self.delay = delay
        self.calls = 0

    def _fetch(self, instrument: Instrument) -> FetchResult:
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


def scripted_factory(outcomes: Dict[str, Union[FetchResult, Exception]], context=None, delays=None):
    """
    Adapter factory keyed by SourceConfig.symbol.

    The returned callable exposes .adapters (symbol -> FakeAdapter) so tests
    can check which sources were tried.
    """
    delays = delays or {}
    adapters: Dict[str, FakeAdapter] = {}

    def factory(config: SourceConfig) -> FakeAdapter:
        if config.symbol not in outcomes:
            raise ValueError(f"Unknown source kind: {config.kind}")
        adapter = FakeAdapter(
            config,
            outcomes[config.symbol],
            context=context,
            delay=delays.get(config.symbol, 0.0),
        )
        adapters[config.symbol] = adapter
        return adapter

    factory.adapters = adapters
    return factory


__all__ = [
    "FIXTURES_DIR",
    "load_fixture",
    "load_text_fixture",
    "make_response",
    "point",
    "fetch_result",
    "utc",
    "FakeAdapter",
    "scripted_factory",
]
