"""
Command-line entry point: one ingestion run per invocation.

Intended to be triggered by an external scheduler (cron, CI schedule).

Usage:
    fund-ingest --prices data/prices.json --instruments config/instruments.yaml
    python -m fund_ingest --dry-run

Exit status:
    0  snapshot written (possibly with "previous" fallbacks)
    1  FatalIngestError; the existing price file is untouched
    2  invalid configuration
"""

import argparse
import json
import sys
import uuid
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import List, Optional
from zoneinfo import ZoneInfo

import requests

from fund_ingest.adapters.data_sources import build_adapter
from fund_ingest.adapters.data_sources.base import SourceContext
from fund_ingest.core.config import IngestSettings, load_instruments
from fund_ingest.core.errors import ConfigError, FatalIngestError
from fund_ingest.core.logging_config import IngestLogger, configure_logging, get_logger
from fund_ingest.services.data.fallback_chain import FallbackChain
from fund_ingest.services.data.fx import FxConverter
from fund_ingest.services.data.orchestrator import IngestOrchestrator
from fund_ingest.services.data.snapshot_store import SnapshotEncoder, SnapshotWriter, read_snapshot
from fund_ingest.services.data.symbol_resolver import YahooSymbolResolver
from fund_ingest.services.data.types import Instrument, Snapshot


logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="fund-ingest",
        description="Fetch current fund prices and update the persisted price file"
    )
    ap.add_argument("--prices", type=Path, help="Price file to read and replace")
    ap.add_argument("--instruments", type=Path, help="Instruments YAML file")
    ap.add_argument("--max-history", type=int, help="History entries kept per fund")
    ap.add_argument("--workers", type=int, help="Concurrent instrument resolutions")
    ap.add_argument("--log-level", help="DEBUG, INFO, WARNING, ERROR")
    ap.add_argument("--json-logs", action="store_true", default=None, help="Emit JSON log records")
    ap.add_argument("--no-fx", action="store_true", help="Keep quotes in the provider's currency")
    ap.add_argument("--dry-run", action="store_true", help="Print the snapshot instead of writing it")
    return ap


def run_ingest(
    settings: IngestSettings,
    instruments: List[Instrument],
    session: Optional[requests.Session] = None
) -> Snapshot:
    """
    Execute one run and return the new snapshot (not yet written).

    Raises:
        FatalIngestError: An instrument has no live and no previous value
    """
    previous = read_snapshot(settings.prices_path)
    zone = ZoneInfo(settings.timezone)
    events = IngestLogger(run_id=uuid.uuid4().hex[:8])

    own_session = session is None
    session = session or requests.Session()
    session.headers.update({"User-Agent": settings.user_agent})
    try:
        context = SourceContext(
            session=session,
            resolver=YahooSymbolResolver(session, timeout=settings.request_timeout),
            timeout=settings.request_timeout,
            clock=lambda: _now(zone),
        )
        fx = (
            FxConverter(session, url=settings.fx_url, timeout=settings.request_timeout)
            if settings.fx_enabled else None
        )
        chain = FallbackChain(
            adapter_factory=partial(build_adapter, context=context),
            attempt_timeout=settings.attempt_timeout,
            fx=fx,
            events=events,
        )
        orchestrator = IngestOrchestrator(
            instruments,
            chain,
            max_history=settings.max_history,
            max_workers=settings.max_workers,
            run_timeout=settings.run_timeout,
        )
        return orchestrator.run(previous)
    finally:
        if own_session:
            session.close()


def _now(zone: ZoneInfo) -> datetime:
    return datetime.now(zone)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point; returns the process exit status."""
    args = build_parser().parse_args(argv)

    try:
        settings = IngestSettings.from_env().with_overrides(
            prices_path=args.prices,
            instruments_path=args.instruments,
            max_history=args.max_history,
            max_workers=args.workers,
            log_level=args.log_level,
            log_json=args.json_logs,
            fx_enabled=False if args.no_fx else None,
        )
    except ConfigError as e:
        print(f"fund-ingest: {e}", file=sys.stderr)
        return 2

    configure_logging(
        level=settings.log_level.upper(),
        log_dir=settings.log_dir,
        enable_file=settings.log_dir is not None,
        serialize=settings.log_json,
    )

    try:
        instruments = load_instruments(settings.instruments_path)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 2

    logger.info(f"Ingesting {len(instruments)} instruments into {settings.prices_path}")
    try:
        snapshot = run_ingest(settings, instruments)
    except FatalIngestError as e:
        logger.error(f"Aborting without writing {settings.prices_path}: {e}")
        return 1

    if args.dry_run:
        print(json.dumps(snapshot.to_dict(), cls=SnapshotEncoder, indent=2, ensure_ascii=False))
        return 0

    SnapshotWriter(settings.prices_path).write(snapshot)
    IngestLogger().snapshot_written(
        path=str(settings.prices_path),
        updated_at=snapshot.updated_at.isoformat() if snapshot.updated_at else None,
        items=len(snapshot.items),
    )
    for item in snapshot.items:
        logger.info(f"- {item.name}: {item.price} {item.currency} ({item.source})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
