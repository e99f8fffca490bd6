# instrument_cache/services/refresher.py
"""
Refresh cycle for the instruments catalog: fetch -> gunzip -> parse -> swap.

At most one cycle runs at a time. A trigger that arrives while a cycle is
running is dropped. A failed cycle leaves the store's previous catalog in
place; the next scheduled trigger is the retry.
"""
import asyncio
import logging
from contextlib import aclosing
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, Callable, Dict, Optional

from ..config import INSTRUMENTS_URL, REFRESH_MAX_ATTEMPTS, REFRESH_RETRY_DELAY_SEC
from ..errors import NetworkError, RefreshError
from ..vendors.instruments_feed import stream_instruments
from .catalog import Catalog
from .catalog_parser import parse_catalog
from .catalog_store import CatalogStore
from .decompress import gunzip_stream

logger = logging.getLogger(__name__)


class RefreshState(str, Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"


class CatalogRefresher:
    """Runs refresh cycles against a CatalogStore."""

    def __init__(
        self,
        store: CatalogStore,
        url: str = INSTRUMENTS_URL,
        fetch: Optional[Callable[[str], AsyncIterator[bytes]]] = None,
        clock: Callable[[], datetime] = datetime.now,
        max_attempts: int = REFRESH_MAX_ATTEMPTS,
        retry_delay: float = REFRESH_RETRY_DELAY_SEC,
    ):
        """
        Args:
            store: Store that receives each successfully parsed catalog
            url: Location of the gzip-compressed instruments JSON
            fetch: Callable returning an async iterator of raw bytes for a URL
                (defaults to an httpx streaming GET)
            clock: Wall-clock source for timestamps
            max_attempts: Pipeline attempts per cycle; only network failures are retried
            retry_delay: Seconds to wait between attempts
        """
        self.store = store
        self.url = url
        self._fetch = fetch or stream_instruments
        self._clock = clock
        self._max_attempts = max(1, max_attempts)
        self._retry_delay = retry_delay

        self.state = RefreshState.IDLE
        self.first_attempt = asyncio.Event()

        self.last_attempt: Optional[datetime] = None
        self.last_success: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.consecutive_failures = 0
        self.refresh_count = 0

    @property
    def is_refreshing(self) -> bool:
        return self.state is RefreshState.REFRESHING

    async def refresh(self, raise_on_error: bool = False) -> bool:
        """
        Run one refresh cycle unless one is already running.

        Args:
            raise_on_error: If True, re-raise the failure after recording it.
                If False, log it and keep the existing catalog.

        Returns:
            True if a new catalog was swapped in, False if the cycle failed
            or was skipped because another one was in progress.
        """
        # Checked and set before the first await, so two triggers cannot both get past here
        if self.state is RefreshState.REFRESHING:
            logger.warning("Instruments refresh already in progress - ignoring trigger")
            return False
        self.state = RefreshState.REFRESHING
        self.last_attempt = self._clock()
        logger.info(f"Starting instruments refresh from {self.url}")

        try:
            catalog = await self._run_with_retries()
            self.store.swap(catalog)
        except RefreshError as e:
            self._record_failure(e)
            logger.error(f"Instruments refresh failed ({type(e).__name__}): {e} - keeping previous catalog")
            if raise_on_error:
                raise
            return False
        except Exception as e:
            self._record_failure(e)
            logger.error(f"Unexpected error during instruments refresh: {e} - keeping previous catalog", exc_info=True)
            if raise_on_error:
                raise
            return False
        finally:
            self.state = RefreshState.IDLE
            self.first_attempt.set()

        self.last_success = self._clock()
        self.last_error = None
        self.consecutive_failures = 0
        self.refresh_count += 1
        logger.info(f"Instruments refresh complete: {len(catalog)} instruments active")
        return True

    async def _run_with_retries(self) -> Catalog:
        for attempt in range(1, self._max_attempts):
            try:
                return await self._run_pipeline()
            except NetworkError as e:
                logger.warning(
                    f"Instruments download failed: {e}. "
                    f"Retrying in {self._retry_delay}s ({attempt}/{self._max_attempts})"
                )
                await asyncio.sleep(self._retry_delay)
        return await self._run_pipeline()

    async def _run_pipeline(self) -> Catalog:
        buffer = bytearray()
        async with aclosing(self._fetch(self.url)) as raw:
            async for chunk in gunzip_stream(raw):
                buffer.extend(chunk)
        logger.info(f"Decompressed instruments payload: {len(buffer)} bytes")

        # JSON decoding of the full payload is CPU-bound; keep it off the event loop
        return await asyncio.to_thread(
            parse_catalog, buffer, source_url=self.url, built_at=self._clock()
        )

    def _record_failure(self, error: BaseException) -> None:
        self.last_error = f"{type(error).__name__}: {error}"
        self.consecutive_failures += 1

    async def wait_for_first_attempt(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until the first refresh cycle has finished, successfully or not.

        Returns:
            False if the timeout expired first, True otherwise.
        """
        try:
            await asyncio.wait_for(self.first_attempt.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def status(self) -> Dict:
        """Snapshot of refresh bookkeeping for diagnostics."""
        return {
            "state": self.state.value,
            "populated": self.store.is_populated(),
            "count": self.store.count(),
            "source_url": self.url,
            "first_attempt_done": self.first_attempt.is_set(),
            "last_attempt": self.last_attempt.isoformat() if self.last_attempt else None,
            "last_success": self.last_success.isoformat() if self.last_success else None,
            "last_update": self.store.last_update.isoformat() if self.store.last_update else None,
            "last_error": self.last_error,
            "consecutive_failures": self.consecutive_failures,
            "refresh_count": self.refresh_count,
        }
