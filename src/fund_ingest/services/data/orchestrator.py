"""
Per-run ingestion orchestrator.

Resolves every configured instrument through the fallback chain on a small
worker pool, merges histories, and assembles the new Snapshot in
configuration order regardless of completion order.
"""

from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

from loguru import logger

from fund_ingest.core.errors import FatalIngestError
from fund_ingest.services.data.fallback_chain import FallbackChain
from fund_ingest.services.data.history import DEFAULT_MAX_HISTORY, merge
from fund_ingest.services.data.types import (
    AttemptRecord,
    Instrument,
    ResolvedValue,
    Snapshot,
    SnapshotItem,
)


DEFAULT_MAX_WORKERS = 3
DEFAULT_RUN_TIMEOUT = 300.0


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class IngestOrchestrator:
    """
    Drives FallbackChain + history merge for all instruments of one run.

    Holds no state between runs; build a new one per invocation.
    """

    def __init__(
        self,
        instruments: Sequence[Instrument],
        chain: FallbackChain,
        max_history: int = DEFAULT_MAX_HISTORY,
        max_workers: int = DEFAULT_MAX_WORKERS,
        run_timeout: Optional[float] = DEFAULT_RUN_TIMEOUT,
        clock: Callable[[], datetime] = _utc_now
    ):
        """
        Args:
            instruments: Configured instruments, in output order
            chain: Fallback chain used for every instrument
            max_history: History cap per instrument
            max_workers: Concurrent instrument resolutions
            run_timeout: Seconds before unfinished instruments fall back (None = no limit)
            clock: Run clock (aware datetime)
        """
        self.instruments = list(instruments)
        self.chain = chain
        self.max_history = max_history
        self.max_workers = max(1, max_workers)
        self.run_timeout = run_timeout
        self.clock = clock

    def run(self, previous: Snapshot) -> Snapshot:
        """
        Build the next snapshot from the previous one.

        Raises:
            FatalIngestError: Some instrument has neither a live nor a previous value
        """
        started = self.clock()
        resolved = self._resolve_all(previous)

        items = [
            self._build_item(value, previous.find(value.instrument))
            for value in resolved
        ]
        updated_at = self._updated_at(resolved, previous, started)

        live = sum(1 for v in resolved if not v.is_fallback)
        stamp = updated_at.isoformat() if updated_at else "unset"
        logger.info(
            f"Resolved {len(resolved)} instruments: {live} live, "
            f"{len(resolved) - live} from previous; updatedAt={stamp}"
        )
        return Snapshot(updated_at=updated_at, items=tuple(items))

    def _resolve_all(self, previous: Snapshot) -> List[ResolvedValue]:
        results: Dict[int, ResolvedValue] = {}
        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="instrument")
        try:
            futures: Dict[Future, int] = {
                executor.submit(
                    self.chain.resolve_instrument_value,
                    instrument,
                    previous.find(instrument),
                ): index
                for index, instrument in enumerate(self.instruments)
            }

            done, pending = wait(futures, timeout=self.run_timeout, return_when=FIRST_EXCEPTION)
            for future in done:
                error = future.exception()
                if error is not None:
                    # FatalIngestError (or a bug) aborts the run
                    raise error
                results[futures[future]] = future.result()

            for future in pending:
                future.cancel()
                index = futures[future]
                instrument = self.instruments[index]
                logger.warning(f"{instrument.name}: run timeout reached before resolution")
                results[index] = self.chain.fall_back(
                    instrument,
                    previous.find(instrument),
                    [AttemptRecord(source="run", ok=False, error=f"run timeout after {self.run_timeout:g}s")],
                )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return [results[i] for i in range(len(self.instruments))]

    def _build_item(self, value: ResolvedValue, previous_item: Optional[SnapshotItem]) -> SnapshotItem:
        existing = previous_item.history if previous_item else ()
        # A history longer than the cap (cap lowered since the last run) loses
        # one entry per run, not everything above the cap at once
        cap = max(self.max_history, len(existing) - 1)
        if value.is_fallback:
            history = merge(existing, (), cap)
            updated_at = previous_item.updated_at if previous_item else None
        else:
            history = merge(existing, value.points, cap)
            updated_at = value.quote_time

        return SnapshotItem(
            name=value.instrument.name,
            isin=value.instrument.isin,
            currency=value.currency,
            price=value.price,
            history=history,
            source=value.provenance,
            updated_at=updated_at,
            attempts=tuple(value.attempts),
        )

    def _updated_at(
        self,
        resolved: Sequence[ResolvedValue],
        previous: Snapshot,
        started: datetime
    ) -> Optional[datetime]:
        """
        Latest quote time across live instruments, never earlier than the
        previous snapshot's. All-fallback runs keep the previous value so
        staleness stays visible; with no previous value it stays None.
        """
        live_times = [v.quote_time or started for v in resolved if not v.is_fallback]
        if not live_times:
            return previous.updated_at

        candidate = max(live_times)
        if previous.updated_at is not None and previous.updated_at > candidate:
            return previous.updated_at
        return candidate
