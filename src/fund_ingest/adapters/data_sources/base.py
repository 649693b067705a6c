"""Base source adapter interface.

Every provider implementation inherits from SourceAdapter. The public fetch()
guarantees that only FetchError, ParseError or ResolutionError escape, so the
fallback chain can treat all providers alike.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional
from zoneinfo import ZoneInfo

import requests

from fund_ingest.core.errors import FetchError, ParseError, ProviderError
from fund_ingest.services.data.symbol_resolver import YahooSymbolResolver
from fund_ingest.services.data.types import FetchResult, Instrument, SourceConfig


DEFAULT_TIMEZONE = "Europe/Copenhagen"


def _default_clock(tz: str = DEFAULT_TIMEZONE) -> Callable[[], datetime]:
    zone = ZoneInfo(tz)
    return lambda: datetime.now(zone)


@dataclass
class SourceContext:
    """Run-scoped collaborators shared by all adapters."""
    session: requests.Session = field(default_factory=requests.Session)
    resolver: Optional[YahooSymbolResolver] = None
    timeout: float = 15.0
    clock: Callable[[], datetime] = field(default_factory=_default_clock)

    def __post_init__(self):
        if self.resolver is None:
            self.resolver = YahooSymbolResolver(self.session, timeout=self.timeout)

    def now(self) -> datetime:
        return self.clock()

    def today(self) -> date:
        """Run date in the configured timezone."""
        return self.clock().date()


class SourceAdapter(ABC):
    """Base class for all source adapters.

    Subclasses implement _fetch() only; fetch() normalizes failures into the
    ingestion error taxonomy and validates the result.
    """

    name: str = "base"

    def __init__(self, config: SourceConfig, context: Optional[SourceContext] = None):
        """
        Args:
            config: The configured source this adapter serves
            context: Shared session, resolver, timeout and clock
        """
        self.config = config
        self.context = context or SourceContext()

    @property
    def identifier(self) -> str:
        """Stable adapter identity, used as provenance."""
        return f"{self.name}:{self.config.label}"

    def fetch(self, instrument: Instrument) -> FetchResult:
        """Fetch and normalize quote points for an instrument.

        Raises:
            FetchError: Network, timeout or non-success response
            ParseError: Unexpected payload, markup drift, bad price
            ResolutionError: No provider symbol found
        """
        try:
            result = self._fetch(instrument)
        except ProviderError:
            raise
        except requests.Timeout as e:
            raise FetchError(f"timed out: {e}", source=self.identifier) from e
        except requests.RequestException as e:
            raise FetchError(str(e), source=self.identifier) from e
        except (KeyError, IndexError, TypeError, ValueError, AttributeError, ArithmeticError) as e:
            raise ParseError(f"unexpected payload: {e!r}", source=self.identifier) from e

        if not result.points:
            raise ParseError("no price points returned", source=self.identifier)
        return result

    @abstractmethod
    def _fetch(self, instrument: Instrument) -> FetchResult:
        """Provider-specific fetch + normalization."""

    # ----------------- Helpers -----------------

    def _get(self, url: str, params: Optional[dict] = None, headers: Optional[dict] = None) -> requests.Response:
        """GET with the shared session and timeout; non-2xx raises FetchError."""
        try:
            response = self.context.session.get(
                url,
                params=params,
                headers=headers,
                timeout=self.context.timeout
            )
            response.raise_for_status()
        except requests.Timeout as e:
            raise FetchError(f"timed out: {e}", source=self.identifier) from e
        except requests.RequestException as e:
            raise FetchError(str(e), source=self.identifier) from e
        return response

    def _get_json(self, url: str, params: Optional[dict] = None, headers: Optional[dict] = None) -> Any:
        response = self._get(url, params=params, headers=headers)
        try:
            return response.json()
        except ValueError as e:
            raise ParseError(f"invalid JSON: {e}", source=self.identifier) from e

    def _market_time(self, epoch_seconds: Any) -> Optional[datetime]:
        """
        UTC datetime of a market timestamp (None if absent).

        Raises:
            ParseError: Not a finite timestamp the platform can represent
        """
        if epoch_seconds is None:
            return None
        try:
            seconds = float(epoch_seconds)
            if not math.isfinite(seconds):
                raise ValueError("not finite")
            return datetime.fromtimestamp(seconds, timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError) as e:
            raise ParseError(f"bad market timestamp {epoch_seconds!r}: {e}", source=self.identifier) from e

    def _market_date(self, epoch_seconds: Any) -> date:
        """Calendar date of a market timestamp in the run timezone (run date if absent)."""
        moment = self._market_time(epoch_seconds)
        if moment is None:
            return self.context.today()
        return moment.astimezone(self.context.now().tzinfo).date()
