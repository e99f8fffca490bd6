# instrument_cache/services/catalog.py
"""
Immutable in-memory snapshot of the instruments catalog.

A Catalog is built once per refresh and never mutated afterwards, which is
what lets lookups read it from any thread or task without locking.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from numbers import Real
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple


def fold(value: Optional[str]) -> Optional[str]:
    """Case-insensitive compare key for symbol/type fields."""
    return value.casefold() if isinstance(value, str) else None


def strike_key(value: Any) -> Optional[float]:
    """Exact numeric compare key for strike prices (23300 == 23300.0 == Decimal("23300"))."""
    if isinstance(value, bool) or not isinstance(value, (Real, Decimal)):
        return None
    if isinstance(value, Decimal) and value.is_nan():
        return None
    strike = float(value)
    if strike != strike:  # NaN never matches anything
        return None
    return strike


@dataclass(frozen=True, eq=False)
class InstrumentRecord:
    """One instrument from the upstream payload.

    The four compare fields are kept exactly as received. ``raw`` is the
    whole upstream object, exposed read-only and otherwise untouched.
    Records compare and hash by identity.
    """
    asset_symbol: Optional[str]
    instrument_type: Optional[str]
    strike_price: Optional[float]
    expiry: Optional[datetime]
    raw: Mapping[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.raw)


_ContractKey = Tuple[Optional[str], Optional[float], Optional[str]]


class Catalog(Sequence[InstrumentRecord]):
    """Ordered, immutable sequence of InstrumentRecord."""

    def __init__(
        self,
        records: Sequence[InstrumentRecord],
        built_at: Optional[datetime] = None,
        source_url: Optional[str] = None,
    ):
        self._records: Tuple[InstrumentRecord, ...] = tuple(records)
        self.built_at = built_at
        self.source_url = source_url

        # Group records by folded (symbol, strike, type), keeping catalog order
        index: Dict[_ContractKey, List[InstrumentRecord]] = {}
        for record in self._records:
            key = (fold(record.asset_symbol), strike_key(record.strike_price), fold(record.instrument_type))
            if None in key:
                continue
            index.setdefault(key, []).append(record)
        self._index: Mapping[_ContractKey, Tuple[InstrumentRecord, ...]] = MappingProxyType(
            {key: tuple(group) for key, group in index.items()}
        )

    def __len__(self) -> int:
        return len(self._records)

    def __getitem__(self, item):
        return self._records[item]

    def __iter__(self) -> Iterator[InstrumentRecord]:
        return iter(self._records)

    def __repr__(self) -> str:
        return f"Catalog(records={len(self._records)}, built_at={self.built_at!r})"

    def candidates(self, asset_symbol: str, strike_price: Any, instrument_type: str) -> Tuple[InstrumentRecord, ...]:
        """
        Records matching asset symbol and instrument type (case-insensitive)
        and strike price (exact numeric equality), in catalog order.
        """
        key = (fold(asset_symbol), strike_key(strike_price), fold(instrument_type))
        if None in key:
            return ()
        return self._index.get(key, ())
