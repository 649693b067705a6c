"""
Ingestion pipeline services.

- parsing: locale-tolerant price and as-of date parsing
- symbol_resolver: ISIN / name to provider symbol lookup
- fx: currency conversion of fetched quotes
- fallback_chain: priority-ordered provider attempts per instrument
- history: bounded, date-deduplicated price history
- orchestrator: one ingestion run over all instruments
- snapshot_store: reading and atomically writing the price file
"""
