"""
Priority-ordered provider fallback for a single instrument.

Adapters are tried in configuration order; the first success wins. Each
attempt is bounded by a timeout on its own worker thread, so a hung provider
counts as failed instead of stalling the run. If every adapter fails, the
previous stored value is reused with provenance "previous"; without one the
run is aborted with FatalIngestError.
"""

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from typing import Callable, List, Optional

from loguru import logger

from fund_ingest.adapters.data_sources.base import SourceAdapter
from fund_ingest.core.errors import FatalIngestError, FetchError, ProviderError
from fund_ingest.core.logging_config import IngestLogger
from fund_ingest.services.data.fx import FxConverter
from fund_ingest.services.data.types import (
    PREVIOUS,
    AttemptRecord,
    FetchResult,
    Instrument,
    ResolvedValue,
    SnapshotItem,
    SourceConfig,
)


AdapterFactory = Callable[[SourceConfig], SourceAdapter]

DEFAULT_ATTEMPT_TIMEOUT = 20.0


class FallbackChain:
    """
    Resolves one instrument's current value across its configured sources.

    Stateless between instruments; safe to share across worker threads.
    """

    def __init__(
        self,
        adapter_factory: AdapterFactory,
        attempt_timeout: float = DEFAULT_ATTEMPT_TIMEOUT,
        fx: Optional[FxConverter] = None,
        events: Optional[IngestLogger] = None
    ):
        """
        Args:
            adapter_factory: Builds an adapter for a SourceConfig
            attempt_timeout: Seconds allowed per adapter attempt
            fx: Converter for quotes in a foreign currency (None = keep as fetched)
            events: Structured event logger
        """
        self.adapter_factory = adapter_factory
        self.attempt_timeout = attempt_timeout
        self.fx = fx
        self.events = events or IngestLogger()

    def resolve_instrument_value(
        self,
        instrument: Instrument,
        previous_item: Optional[SnapshotItem] = None
    ) -> ResolvedValue:
        """
        Try each source in priority order.

        Returns:
            ResolvedValue from the first successful source, or the previous
            value with provenance "previous"

        Raises:
            FatalIngestError: All sources failed and no previous value exists
        """
        attempts: List[AttemptRecord] = []

        for source in instrument.sources:
            try:
                adapter = self.adapter_factory(source)
            except ValueError as e:
                self._record_failure(instrument, source.identifier, str(e), attempts)
                continue

            try:
                result = self._attempt(adapter, instrument)
                if self.fx is not None and result.currency.upper() != instrument.currency.upper():
                    result = self.fx.convert(result, instrument.currency)
            except ProviderError as e:
                self._record_failure(instrument, adapter.identifier, str(e), attempts)
                continue

            attempts.append(AttemptRecord(source=result.source_id, ok=True))
            latest = result.latest
            self.events.instrument_resolved(
                instrument=instrument.name,
                source=result.source_id,
                price=latest.price,
                currency=result.currency,
                points=len(result.points),
            )
            return ResolvedValue(
                instrument=instrument,
                price=latest.price,
                currency=result.currency,
                provenance=result.source_id,
                points=list(result.points),
                quote_time=result.quote_time,
                attempts=attempts,
            )

        return self.fall_back(instrument, previous_item, attempts)

    def fall_back(
        self,
        instrument: Instrument,
        previous_item: Optional[SnapshotItem],
        attempts: List[AttemptRecord]
    ) -> ResolvedValue:
        """
        Reuse the previous value after every live source failed.

        Raises:
            FatalIngestError: No previous finite price to fall back to
        """
        failures = [f"{a.source}: {a.error}" for a in attempts if not a.ok]

        if previous_item is None or not previous_item.price.is_finite():
            raise FatalIngestError(instrument.name, failures)

        self.events.fallback_used(
            instrument=instrument.name,
            price=previous_item.price,
            currency=previous_item.currency,
            failures=failures,
        )
        return ResolvedValue(
            instrument=instrument,
            price=previous_item.price,
            currency=previous_item.currency,
            provenance=PREVIOUS,
            points=[],
            quote_time=None,
            attempts=list(attempts),
        )

    def _attempt(self, adapter: SourceAdapter, instrument: Instrument) -> FetchResult:
        """Run one adapter fetch, giving up after attempt_timeout seconds."""
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"fetch-{adapter.name}")
        try:
            future = executor.submit(adapter.fetch, instrument)
            try:
                return future.result(timeout=self.attempt_timeout)
            except FuturesTimeout as e:
                future.cancel()
                raise FetchError(
                    f"no response within {self.attempt_timeout:g}s",
                    source=adapter.identifier,
                ) from e
        finally:
            # Never wait on a hung provider; its request timeout reaps the thread
            executor.shutdown(wait=False, cancel_futures=True)

    def _record_failure(
        self,
        instrument: Instrument,
        source: str,
        error: str,
        attempts: List[AttemptRecord]
    ) -> None:
        attempts.append(AttemptRecord(source=source, ok=False, error=error))
        self.events.attempt_failed(instrument=instrument.name, source=source, error=error)
        logger.debug(f"{instrument.name}: trying next source after {source} failed")
