"""
Reading and atomically writing the persisted price file.

Reading is forgiving: a missing or corrupt file is an empty snapshot, and
malformed entries are skipped. Writing goes through a temp file in the
target directory plus os.replace, so readers only ever see the old file or
the complete new one.
"""

import json
import os
import tempfile
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, List, Optional, Union

from loguru import logger

from fund_ingest.core.errors import ParseError
from fund_ingest.services.data.parsing import to_decimal
from fund_ingest.services.data.types import QuotePoint, Snapshot, SnapshotItem


class SnapshotEncoder(json.JSONEncoder):
    """JSON encoder writing Decimal prices as plain numbers."""

    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        return super().default(obj)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        # fromisoformat only accepts a trailing "Z" from Python 3.11
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Ignoring unparseable timestamp {value!r} in price file")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_history(raw: Any, currency: str, name: str) -> List[QuotePoint]:
    points: List[QuotePoint] = []
    if not isinstance(raw, list):
        return points
    for entry in raw:
        try:
            points.append(QuotePoint(
                date_key=date.fromisoformat(entry["date"]),
                price=to_decimal(entry["price"]),
                currency=currency,
            ))
        except (KeyError, TypeError, ValueError, ParseError) as e:
            logger.warning(f"Skipping malformed history entry for {name!r}: {entry!r} ({e})")
    points.sort(key=lambda p: p.date_key)
    return points


def _parse_item(raw: Any) -> Optional[SnapshotItem]:
    if not isinstance(raw, dict) or not isinstance(raw.get("name"), str):
        logger.warning(f"Skipping malformed item in price file: {raw!r}")
        return None
    name = raw["name"]
    currency = raw.get("currency")
    if not isinstance(currency, str) or not currency:
        logger.warning(f"Skipping item {name!r} without currency")
        return None
    try:
        price = to_decimal(raw.get("price"))
    except ParseError as e:
        logger.warning(f"Skipping item {name!r} with unusable price: {e}")
        return None
    if price <= 0:
        logger.warning(f"Skipping item {name!r} with non-positive price {price}")
        return None

    return SnapshotItem(
        name=name,
        currency=currency,
        price=price,
        history=tuple(_parse_history(raw.get("history"), currency, name)),
        source=raw.get("source") if isinstance(raw.get("source"), str) else None,
        isin=raw.get("isin") if isinstance(raw.get("isin"), str) else None,
        updated_at=_parse_timestamp(raw.get("updatedAt")),
    )


def read_snapshot(path: Union[str, Path]) -> Snapshot:
    """
    Load the previous snapshot.

    Absence, unreadable content or a wrong top-level shape all yield an
    empty Snapshot; they never abort the run.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.info(f"No previous price file at {path}, starting empty")
        return Snapshot()
    except OSError as e:
        logger.warning(f"Cannot read previous price file {path}: {e}")
        return Snapshot()

    try:
        data = json.loads(text)
    except ValueError as e:
        logger.warning(f"Previous price file {path} is not valid JSON, ignoring it: {e}")
        return Snapshot()

    if not isinstance(data, dict):
        logger.warning(f"Previous price file {path} has unexpected shape, ignoring it")
        return Snapshot()

    raw_items = data.get("items") if isinstance(data.get("items"), list) else []
    items = [item for item in (_parse_item(raw) for raw in raw_items) if item is not None]
    return Snapshot(updated_at=_parse_timestamp(data.get("updatedAt")), items=tuple(items))


class SnapshotWriter:
    """
    Atomic JSON writer for the price file.

    The destination is replaced in one os.replace call; on any failure the
    temp file is removed and the previous file is left untouched.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def write(self, snapshot: Snapshot) -> Path:
        """Serialize snapshot and atomically replace the destination file."""
        payload = json.dumps(snapshot.to_dict(), cls=SnapshotEncoder, indent=2, ensure_ascii=False) + "\n"

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=str(self.path.parent),
            prefix=f".{self.path.name}.",
            suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            # mkstemp creates 0600; the file is served to browsers
            os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

        logger.debug(f"Wrote {len(payload)} bytes to {self.path}")
        return self.path
