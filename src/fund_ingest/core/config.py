"""
Settings and instrument configuration.

Settings come from FUND_INGEST_* environment variables (a local .env file is
honoured via python-dotenv); instruments come from a YAML file.

Example instruments.yaml:

    instruments:
      - name: Nordea Invest Global Enhanced KL 1
        isin: DK0060949881
        currency: DKK
        sources:
          - {kind: yahoo_quote, symbol: DK0060949881.CO}
          - {kind: yfinance, search: DK0060949881}
"""

import os
import re
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from dotenv import find_dotenv, load_dotenv

from fund_ingest.adapters.data_sources import ADAPTERS
from fund_ingest.core.errors import ConfigError
from fund_ingest.services.data.types import Instrument, SourceConfig


ENV_PREFIX = "FUND_INGEST_"


@dataclass(frozen=True)
class IngestSettings:
    """Run settings. Every field maps to FUND_INGEST_<FIELD_NAME>."""
    prices_path: Path = Path("data/prices.json")
    instruments_path: Path = Path("config/instruments.yaml")
    max_history: int = 120
    attempt_timeout: float = 20.0
    request_timeout: float = 15.0
    run_timeout: float = 300.0
    max_workers: int = 3
    timezone: str = "Europe/Copenhagen"
    fx_enabled: bool = True
    fx_url: str = "https://api.frankfurter.app/latest"
    user_agent: str = "Mozilla/5.0 (compatible; fund-ingest/1.0)"
    log_level: str = "INFO"
    log_json: bool = False
    log_dir: Optional[Path] = None

    def __post_init__(self):
        if self.max_history < 1:
            raise ConfigError(f"max_history must be >= 1, got {self.max_history}")
        if self.max_workers < 1:
            raise ConfigError(f"max_workers must be >= 1, got {self.max_workers}")
        for name in ("attempt_timeout", "request_timeout", "run_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive, got {getattr(self, name)}")
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigError(f"unknown timezone {self.timezone!r}") from e

    @classmethod
    def from_env(cls, env: Optional[Dict[str, str]] = None, dotenv: bool = True) -> "IngestSettings":
        """
        Build settings from the environment.

        Args:
            env: Mapping to read instead of os.environ (tests)
            dotenv: Load a .env file first (ignored when env is given)
        """
        if env is None:
            if dotenv:
                load_dotenv(find_dotenv(usecwd=True))
            env = dict(os.environ)

        overrides: Dict[str, Any] = {}
        for f in fields(cls):
            raw = env.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            overrides[f.name] = _coerce(f.name, raw, getattr(cls, f.name))
        return cls(**overrides)

    def with_overrides(self, **kwargs) -> "IngestSettings":
        """Copy with non-None keyword overrides applied (CLI flags)."""
        return replace(self, **{k: v for k, v in kwargs.items() if v is not None})


def _coerce(name: str, raw: str, default: Any) -> Any:
    try:
        if isinstance(default, bool):
            if raw.lower() in ("1", "true", "yes", "on"):
                return True
            if raw.lower() in ("0", "false", "no", "off"):
                return False
            raise ValueError(raw)
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
        if isinstance(default, Path) or name.endswith(("_path", "_dir")):
            return Path(raw)
        return raw
    except ValueError as e:
        raise ConfigError(f"invalid value for {ENV_PREFIX}{name.upper()}: {raw!r}") from e


# ========== Instruments ==========

_SOURCE_FIELDS = {f.name for f in fields(SourceConfig)}
_PATTERN_FIELDS = ("price_pattern", "as_of_pattern")


def _parse_source(raw: Any, where: str) -> SourceConfig:
    if isinstance(raw, str):
        raw = {"kind": "yahoo_quote", "symbol": raw}
    if not isinstance(raw, dict):
        raise ConfigError(f"{where}: source must be a mapping, got {raw!r}")
    unknown = set(raw) - _SOURCE_FIELDS
    if unknown:
        raise ConfigError(f"{where}: unknown source keys {sorted(unknown)}")
    if raw.get("kind") not in ADAPTERS:
        raise ConfigError(
            f"{where}: unknown source kind {raw.get('kind')!r}, expected one of {sorted(ADAPTERS)}"
        )

    for key in _PATTERN_FIELDS:
        if raw.get(key):
            try:
                re.compile(raw[key])
            except re.error as e:
                raise ConfigError(f"{where}: invalid {key}: {e}") from e

    values = {k: (str(v) if v is not None else None) for k, v in raw.items()}
    return SourceConfig(**values)


def _parse_instrument(raw: Any, index: int) -> Instrument:
    where = f"instruments[{index}]"
    if not isinstance(raw, dict):
        raise ConfigError(f"{where}: must be a mapping")
    name = raw.get("name")
    currency = raw.get("currency")
    if not isinstance(name, str) or not name.strip():
        raise ConfigError(f"{where}: 'name' is required")
    if not isinstance(currency, str) or not currency.strip():
        raise ConfigError(f"{where} ({name}): 'currency' is required")

    sources = raw.get("sources") or []
    if not isinstance(sources, list) or not sources:
        raise ConfigError(f"{where} ({name}): at least one source is required")

    return Instrument(
        name=name.strip(),
        currency=currency.strip().upper(),
        isin=str(raw["isin"]).strip() if raw.get("isin") else None,
        sources=tuple(
            _parse_source(s, f"{where}.sources[{i}]") for i, s in enumerate(sources)
        ),
    )


def parse_instruments(data: Any) -> List[Instrument]:
    """Validate a loaded YAML document into instruments (names must be unique)."""
    if isinstance(data, dict):
        data = data.get("instruments")
    if not isinstance(data, list) or not data:
        raise ConfigError("instruments file must define a non-empty 'instruments' list")

    instruments = [_parse_instrument(raw, i) for i, raw in enumerate(data)]
    seen = set()
    for instrument in instruments:
        if instrument.name in seen:
            raise ConfigError(f"duplicate instrument name {instrument.name!r}")
        seen.add(instrument.name)
    return instruments


def load_instruments(path: Union[str, Path]) -> List[Instrument]:
    """Load and validate the instruments YAML file."""
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"instruments file not found: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"instruments file {path} is not valid YAML: {e}") from e
    return parse_instruments(data)
