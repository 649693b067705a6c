"""Shared pytest fixtures and configuration."""
from datetime import datetime
from decimal import Decimal
from unittest.mock import Mock
from zoneinfo import ZoneInfo

import pytest
import requests
from loguru import logger

from fund_ingest.adapters.data_sources.base import SourceContext
from fund_ingest.services.data.symbol_resolver import ProviderSymbol
from fund_ingest.services.data.types import Instrument, SnapshotItem, SourceConfig
from tests.fixtures.helpers import make_response, point, utc


COPENHAGEN = ZoneInfo("Europe/Copenhagen")


@pytest.fixture
def run_time():
    """Fixed run clock: 9 January 2026, 10:00 Copenhagen."""
    return datetime(2026, 1, 9, 10, 0, tzinfo=COPENHAGEN)


@pytest.fixture
def mock_session():
    """requests.Session double; set .get.return_value / .side_effect per test."""
    return Mock(spec=requests.Session)


@pytest.fixture
def response_factory():
    """Build mock HTTP responses: response_factory(json_data=..., text=..., status=...)."""
    return make_response


@pytest.fixture
def source_context(mock_session, run_time):
    """SourceContext wired to the mock session and fixed clock."""
    resolver = Mock()
    resolver.resolve.side_effect = lambda instrument, source: ProviderSymbol(symbol=source.symbol)
    return SourceContext(
        session=mock_session,
        resolver=resolver,
        timeout=5.0,
        clock=lambda: run_time,
    )


@pytest.fixture
def global_fund():
    """DKK fund with two scripted sources."""
    return Instrument(
        name="Nordea Invest Global Enhanced KL 1",
        currency="DKK",
        isin="DK0060949881",
        sources=(
            SourceConfig(kind="fake", symbol="primary"),
            SourceConfig(kind="fake", symbol="secondary"),
        ),
    )


@pytest.fixture
def europe_fund():
    return Instrument(
        name="Nordea Invest Europe Enhanced KL 1",
        currency="DKK",
        isin="DK0060949964",
        sources=(SourceConfig(kind="fake", symbol="europe"),),
    )


@pytest.fixture
def previous_global_item():
    """Stored entry for global_fund from the previous run."""
    return SnapshotItem(
        name="Nordea Invest Global Enhanced KL 1",
        isin="DK0060949881",
        currency="DKK",
        price=Decimal("208.10"),
        history=(point(7, "207.90"), point(8, "208.10")),
        source="fake:primary",
        updated_at=utc(2026, 1, 8, 16, 0),
    )


@pytest.fixture
def captured_logs():
    """Collect loguru records (message + extra) emitted during a test."""
    records = []
    handler_id = logger.add(
        lambda message: records.append(message.record),
        level="DEBUG",
        format="{message}"
    )
    yield records
    logger.remove(handler_id)
