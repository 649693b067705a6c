"""Error taxonomy for the price-ingestion pipeline.

Recoverable errors (ProviderError and its subclasses) are raised by a single
adapter attempt and never travel past the fallback chain. FatalIngestError is
the only error that aborts a run.
"""

from typing import Optional, Sequence


class IngestError(Exception):
    """Base class for all ingestion errors."""


class ProviderError(IngestError):
    """A single provider attempt failed."""

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(f"[{source}] {message}" if source else message)
        self.source = source
        self.message = message


class FetchError(ProviderError):
    """Transport failure: network, timeout, non-success response."""


class ParseError(ProviderError):
    """Response did not match the expected shape or numeric grammar."""


class ResolutionError(ProviderError):
    """No provider symbol could be found for an instrument."""


class ConfigError(IngestError):
    """Invalid settings or instruments file."""


class FatalIngestError(IngestError):
    """No live value and no previous value for an instrument.

    Aborts the whole run; nothing is written.
    """

    def __init__(self, instrument: str, failures: Sequence[str] = ()):
        self.instrument = instrument
        self.failures = list(failures)
        detail = "; ".join(self.failures) if self.failures else "no sources configured"
        super().__init__(
            f"No live price and no previous price for {instrument!r}: {detail}"
        )
