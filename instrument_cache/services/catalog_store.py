# instrument_cache/services/catalog_store.py
import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from .catalog import Catalog

logger = logging.getLogger(__name__)


class CatalogStore:
    """
    Holder for the active Catalog.

    Readers call current() and keep using the Catalog they got for as long as
    they need it; a later swap() rebinds the reference without touching that
    object. The rebind is a single attribute assignment, so a reader sees
    either the old catalog or the new one, never anything in between.
    Writers are serialized with a lock; readers never take it.
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self._clock = clock
        self._catalog: Optional[Catalog] = None
        self._last_update: Optional[datetime] = None
        self._write_lock = threading.Lock()

    def swap(self, catalog: Catalog) -> Optional[Catalog]:
        """Make catalog the active one. Returns the catalog it replaced."""
        if not isinstance(catalog, Catalog):
            raise TypeError(f"swap() expects a Catalog, got {type(catalog).__name__}")
        with self._write_lock:
            previous = self._catalog
            self._catalog = catalog
            self._last_update = self._clock()
        logger.info(
            f"Active catalog replaced: {len(catalog)} instruments "
            f"(previous: {len(previous) if previous is not None else 'none'})"
        )
        return previous

    def current(self) -> Optional[Catalog]:
        """The active catalog, or None before the first successful refresh."""
        return self._catalog

    def is_populated(self) -> bool:
        return self._catalog is not None

    @property
    def last_update(self) -> Optional[datetime]:
        """When the active catalog was swapped in."""
        return self._last_update

    def count(self) -> int:
        catalog = self._catalog
        return len(catalog) if catalog is not None else 0
