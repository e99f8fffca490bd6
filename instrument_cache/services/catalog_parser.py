# instrument_cache/services/catalog_parser.py
"""
Parse the decompressed instruments payload into a Catalog.

The payload is one JSON array of instrument objects, e.g.
    [{"asset_symbol": "NIFTY", "instrument_type": "PE", "strike_price": 23300,
      "expiry": 1735842600000, "instrument_key": "NSE_FO|...", ...}, ...]
It is not record-delimited, so the whole buffer is decoded in one go.
"""
import json
import logging
from datetime import date, datetime, timezone
from types import MappingProxyType
from typing import Any, Optional

from ..errors import ParseError
from .catalog import Catalog, InstrumentRecord

logger = logging.getLogger(__name__)


def parse_expiry(value: Any) -> Optional[datetime]:
    """
    Normalize an upstream expiry to an aware UTC datetime.

    Accepts epoch milliseconds (the Upstox encoding), ISO dates and ISO
    datetimes. Naive values are read as UTC. Anything else gives None.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        if isinstance(value, str):
            text = value.strip()
            if not text:
                return None
            if len(text) == 10:
                d = date.fromisoformat(text)
                return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError, OSError):
        return None
    return None


def _record(item: dict) -> InstrumentRecord:
    symbol = item.get("asset_symbol")
    itype = item.get("instrument_type")
    strike = item.get("strike_price")
    return InstrumentRecord(
        asset_symbol=symbol if isinstance(symbol, str) else None,
        instrument_type=itype if isinstance(itype, str) else None,
        strike_price=strike if isinstance(strike, (int, float)) and not isinstance(strike, bool) else None,
        expiry=parse_expiry(item.get("expiry")),
        raw=MappingProxyType(item),
    )


def parse_catalog(
    buffer: bytes,
    source_url: Optional[str] = None,
    built_at: Optional[datetime] = None,
) -> Catalog:
    """
    Build a Catalog from the complete decompressed payload.

    All-or-nothing: either every element is turned into a record or
    ParseError is raised and nothing is returned.

    Raises:
        ParseError: invalid UTF-8, malformed JSON, a top-level value that is
            not an array, or an array element that is not an object.
    """
    try:
        text = buffer.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ParseError(f"Instruments payload is not valid UTF-8: {e}") from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(f"Malformed instruments JSON: {e}") from e

    if not isinstance(data, list):
        raise ParseError(f"Expected a JSON array of instruments, got {type(data).__name__}")

    records = []
    unparsed_expiry = 0
    for i, item in enumerate(data):
        if not isinstance(item, dict):
            raise ParseError(f"Instrument at index {i} is {type(item).__name__}, expected an object")
        record = _record(item)
        if record.expiry is None and item.get("expiry") is not None:
            unparsed_expiry += 1
        records.append(record)

    if unparsed_expiry:
        logger.warning(f"{unparsed_expiry} instruments have an unrecognised expiry; they rank after dated contracts")

    logger.info(f"Parsed {len(records)} instruments ({len(buffer)} bytes)")
    return Catalog(records, built_at=built_at, source_url=source_url)
