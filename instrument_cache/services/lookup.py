# instrument_cache/services/lookup.py
"""
Nearest-expiry option lookup against the instruments catalog.
"""
from typing import Optional

from ..errors import CatalogNotReadyError
from .catalog import Catalog, InstrumentRecord
from .catalog_store import CatalogStore


def find_immediate_option(
    catalog: Catalog,
    asset_symbol: str,
    strike_price: float,
    option_type: str,
) -> Optional[InstrumentRecord]:
    """
    Find the contract with the earliest expiry for an asset/strike/type.

    Args:
        catalog: Catalog snapshot to search
        asset_symbol: Underlying symbol, e.g. "NIFTY" (case-insensitive)
        strike_price: Strike price, matched exactly
        option_type: "CE" / "PE" or any other instrument type (case-insensitive)

    Returns:
        The matching record with the minimum expiry, or None if nothing
        matches. When several records share the minimum expiry the first one
        in catalog order wins.
    """
    matches = catalog.candidates(asset_symbol, strike_price, option_type)
    if not matches:
        return None
    if len(matches) == 1:
        return matches[0]
    # Undated records only win when nothing in the group has an expiry
    dated = [r for r in matches if r.expiry is not None]
    if not dated:
        return matches[0]
    # min() keeps the first of equal elements, which gives the catalog-order tie-break
    return min(dated, key=lambda r: r.expiry)


def lookup_immediate_option(
    store: CatalogStore,
    asset_symbol: str,
    strike_price: float,
    option_type: str,
) -> Optional[InstrumentRecord]:
    """
    Same as find_immediate_option, against the store's active catalog.

    Raises:
        CatalogNotReadyError: no catalog has been loaded yet.
    """
    catalog = store.current()
    if catalog is None:
        raise CatalogNotReadyError("Instrument catalog is not populated yet")
    return find_immediate_option(catalog, asset_symbol, strike_price, option_type)
