"""
Domain types for the price-ingestion pipeline.

Instruments and quote points are immutable. A Snapshot is rebuilt from
scratch on every run and is the only thing ever persisted.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Tuple
from urllib.parse import urlparse


PREVIOUS = "previous"


@dataclass(frozen=True)
class SourceConfig:
    """
    One configured provider for an instrument.

    kind selects the adapter implementation; the remaining fields are read
    by the adapters that need them.
    """
    kind: str
    symbol: Optional[str] = None
    search: Optional[str] = None
    url: Optional[str] = None
    selector: Optional[str] = None
    price_pattern: Optional[str] = None
    as_of_pattern: Optional[str] = None
    currency: Optional[str] = None

    @property
    def label(self) -> str:
        """Human-readable part of the adapter identifier."""
        if self.symbol:
            return self.symbol
        if self.search:
            return self.search
        if self.url:
            return urlparse(self.url).netloc or self.url
        return "auto"

    @property
    def identifier(self) -> str:
        return f"{self.kind}:{self.label}"


@dataclass(frozen=True)
class Instrument:
    """A tracked fund with its ordered provider list."""
    name: str
    currency: str
    isin: Optional[str] = None
    sources: Tuple[SourceConfig, ...] = ()


@dataclass(frozen=True)
class QuotePoint:
    """One (date, price) observation. Price must be positive and finite."""
    date_key: date
    price: Decimal
    currency: str

    def __post_init__(self):
        if not isinstance(self.price, Decimal):
            raise ValueError(f"price must be Decimal, got {type(self.price).__name__}")
        if not self.price.is_finite() or self.price <= 0:
            raise ValueError(f"price must be positive and finite, got {self.price}")

    def to_dict(self) -> dict:
        return {"date": self.date_key.isoformat(), "price": float(self.price)}


@dataclass(frozen=True)
class FetchResult:
    """Normalized output of one successful adapter fetch."""
    points: Tuple[QuotePoint, ...]
    source_id: str
    currency: str
    quote_time: Optional[datetime] = None

    @property
    def latest(self) -> QuotePoint:
        return max(self.points, key=lambda p: p.date_key)


@dataclass(frozen=True)
class AttemptRecord:
    """Outcome of one adapter attempt, kept for diagnostics."""
    source: str
    ok: bool
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"source": self.source, "ok": self.ok}
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class ResolvedValue:
    """Result of running the fallback chain for one instrument."""
    instrument: Instrument
    price: Decimal
    currency: str
    provenance: str
    points: List[QuotePoint] = field(default_factory=list)
    quote_time: Optional[datetime] = None
    attempts: List[AttemptRecord] = field(default_factory=list)

    @property
    def is_fallback(self) -> bool:
        return self.provenance == PREVIOUS


@dataclass(frozen=True)
class SnapshotItem:
    """One instrument's entry in the persisted price file."""
    name: str
    currency: str
    price: Decimal
    history: Tuple[QuotePoint, ...] = ()
    source: Optional[str] = None
    isin: Optional[str] = None
    updated_at: Optional[datetime] = None
    attempts: Tuple[AttemptRecord, ...] = ()

    def to_dict(self) -> dict:
        data = {"name": self.name}
        if self.isin:
            data["isin"] = self.isin
        data.update({
            "currency": self.currency,
            "price": float(self.price),
            "source": self.source,
            "history": [p.to_dict() for p in self.history],
        })
        if self.updated_at is not None:
            data["updatedAt"] = self.updated_at.isoformat()
        if self.attempts:
            data["attempts"] = [a.to_dict() for a in self.attempts]
        return data


@dataclass(frozen=True)
class Snapshot:
    """The complete output of one ingestion run."""
    updated_at: Optional[datetime] = None
    items: Tuple[SnapshotItem, ...] = ()

    def to_dict(self) -> dict:
        return {
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
            "items": [item.to_dict() for item in self.items],
        }

    def find(self, instrument: Instrument) -> Optional[SnapshotItem]:
        """Previous entry for an instrument, matched by name, then ISIN."""
        for item in self.items:
            if item.name == instrument.name:
                return item
        if instrument.isin:
            for item in self.items:
                if item.isin and item.isin == instrument.isin:
                    return item
        return None
