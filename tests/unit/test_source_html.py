"""Unit tests for the scraped HTML page adapter."""
import pytest
from datetime import date
from decimal import Decimal

import requests

from fund_ingest.adapters.data_sources.html_page import HtmlPageSource
from fund_ingest.core.errors import FetchError, ParseError
from fund_ingest.services.data.types import Instrument, SourceConfig
from tests.fixtures.helpers import load_text_fixture


FUND = Instrument(name="Nordea Invest Global Enhanced KL 1", currency="DKK", isin="DK0060949881")
URL = "https://funds.example.dk/nordea-invest-global-enhanced"


def page_source(context, **fields):
    config = SourceConfig(kind="html", url=URL, **fields)
    return HtmlPageSource(config, context)


class TestHtmlPageFetch:
    """Test price extraction from pages."""

    def test_selector_and_default_pattern(self, source_context, mock_session, response_factory):
        """Test Danish-formatted price inside a selected element."""
        # ARRANGE
        mock_session.get.return_value = response_factory(text=load_text_fixture("fund_page.html"))
        source = page_source(source_context, selector=".nav-price .value")

        # ACT
        result = source.fetch(FUND)

        # ASSERT
        assert result.latest.price == Decimal("1234.56")
        assert result.currency == "DKK"
        assert result.source_id == "html:funds.example.dk"

    def test_point_dated_by_run_date_without_as_of(self, source_context, mock_session, response_factory, run_time):
        mock_session.get.return_value = response_factory(text=load_text_fixture("fund_page.html"))
        source = page_source(source_context, selector=".nav-price .value")

        result = source.fetch(FUND)

        assert result.latest.date_key == run_time.date()
        assert result.quote_time == run_time

    def test_as_of_date_crosses_year_boundary(self, source_context, mock_session, response_factory):
        """Test "Kurs pr. 31/12" read on 9 January dates the point last year."""
        # ARRANGE
        mock_session.get.return_value = response_factory(text=load_text_fixture("fund_page.html"))
        source = page_source(
            source_context,
            selector=".nav-price .value",
            as_of_pattern=r"Kurs pr\. (?P<as_of>\d{1,2}/\d{1,2})",
        )

        # ACT
        result = source.fetch(FUND)

        # ASSERT
        assert result.latest.date_key == date(2025, 12, 31)

    def test_custom_price_pattern_over_whole_page(self, source_context, mock_session, response_factory):
        mock_session.get.return_value = response_factory(
            text="<html><body><p>Stiftet 2016. Indre værdi: 146,20 DKK</p></body></html>"
        )
        source = page_source(source_context, price_pattern=r"Indre værdi: (?P<price>[\d.,]+)")

        result = source.fetch(FUND)

        assert result.latest.price == Decimal("146.20")

    def test_unnamed_group_is_used(self, source_context, mock_session, response_factory):
        mock_session.get.return_value = response_factory(text="<p>NAV EUR 97,31</p>")
        source = page_source(source_context, price_pattern=r"NAV EUR ([\d,]+)", currency="EUR")

        result = source.fetch(FUND)

        assert result.latest.price == Decimal("97.31")
        assert result.currency == "EUR"

    def test_requests_html(self, source_context, mock_session, response_factory):
        mock_session.get.return_value = response_factory(text=load_text_fixture("fund_page.html"))
        source = page_source(source_context, selector=".nav-price .value")

        source.fetch(FUND)

        args, kwargs = mock_session.get.call_args
        assert args[0] == URL
        assert kwargs["headers"] == {"Accept": "text/html"}


class TestHtmlPageErrors:
    """Test markup drift and transport failures."""

    def test_selector_mismatch_is_parse_error(self, source_context, mock_session, response_factory):
        """Test a renamed element is reported as markup drift."""
        mock_session.get.return_value = response_factory(text=load_text_fixture("fund_page.html"))
        source = page_source(source_context, selector=".price-box")

        with pytest.raises(ParseError, match="markup drift"):
            source.fetch(FUND)

    def test_pattern_mismatch_is_parse_error(self, source_context, mock_session, response_factory):
        mock_session.get.return_value = response_factory(text="<p>Kurs ikke tilgængelig</p>")
        source = page_source(source_context)

        with pytest.raises(ParseError, match="not found"):
            source.fetch(FUND)

    def test_non_numeric_capture_is_parse_error(self, source_context, mock_session, response_factory):
        mock_session.get.return_value = response_factory(text="<p>Kurs: 1.2.3,4,5</p>")
        source = page_source(source_context, price_pattern=r"Kurs: (?P<price>\S+)")

        with pytest.raises(ParseError):
            source.fetch(FUND)

    def test_missing_as_of_falls_back_to_run_date(self, source_context, mock_session, response_factory, run_time):
        mock_session.get.return_value = response_factory(text="<p>146,20</p>")
        source = page_source(source_context, as_of_pattern=r"pr\. (\d{1,2}/\d{1,2})")

        result = source.fetch(FUND)

        assert result.latest.date_key == run_time.date()

    def test_missing_url_is_parse_error(self, source_context):
        source = HtmlPageSource(SourceConfig(kind="html"), source_context)

        with pytest.raises(ParseError, match="requires a url"):
            source.fetch(FUND)

    def test_connection_error_is_fetch_error(self, source_context, mock_session):
        mock_session.get.side_effect = requests.ConnectionError("Name or service not known")
        source = page_source(source_context)

        with pytest.raises(FetchError, match="Name or service not known"):
            source.fetch(FUND)

    def test_server_error_is_fetch_error(self, source_context, mock_session, response_factory):
        mock_session.get.return_value = response_factory(status=503)
        source = page_source(source_context)

        with pytest.raises(FetchError, match="503"):
            source.fetch(FUND)
