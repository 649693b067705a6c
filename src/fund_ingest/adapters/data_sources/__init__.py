"""
Provider adapters.

Adding a provider means adding a SourceAdapter subclass and registering its
kind here; the fallback chain never branches on provider type.

Usage:
    from fund_ingest.adapters.data_sources import build_adapter

    adapter = build_adapter(SourceConfig(kind="yahoo_quote", symbol="DK0060949881.CO"), context)
    result = adapter.fetch(instrument)
"""

from typing import Dict, Optional, Type

from fund_ingest.adapters.data_sources.base import SourceAdapter, SourceContext
from fund_ingest.adapters.data_sources.html_page import HtmlPageSource
from fund_ingest.adapters.data_sources.yahoo import YahooFinanceSource
from fund_ingest.adapters.data_sources.yahoo_quote import YahooQuoteSource
from fund_ingest.services.data.types import SourceConfig


ADAPTERS: Dict[str, Type[SourceAdapter]] = {
    YahooFinanceSource.name: YahooFinanceSource,
    YahooQuoteSource.name: YahooQuoteSource,
    HtmlPageSource.name: HtmlPageSource,
}


def build_adapter(config: SourceConfig, context: Optional[SourceContext] = None) -> SourceAdapter:
    """Instantiate the adapter registered for config.kind."""
    try:
        adapter_cls = ADAPTERS[config.kind]
    except KeyError:
        raise ValueError(
            f"Unknown source kind: {config.kind}. Supported: {sorted(ADAPTERS)}"
        ) from None
    return adapter_cls(config, context)


__all__ = [
    "ADAPTERS",
    "SourceAdapter",
    "SourceContext",
    "HtmlPageSource",
    "YahooFinanceSource",
    "YahooQuoteSource",
    "build_adapter",
]
