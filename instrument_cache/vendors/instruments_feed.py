# instrument_cache/vendors/instruments_feed.py
"""
Streaming download of the instruments catalog file.

The payload is served as a static .json.gz asset, so the body is read raw
(no transfer decoding) and handed to the decompressor chunk by chunk.
"""
import logging
from typing import AsyncIterator

import httpx

from ..config import FETCH_TIMEOUT_SEC, FETCH_CHUNK_SIZE
from ..errors import NetworkError

logger = logging.getLogger(__name__)

_headers = {"User-Agent": "Mozilla/5.0", "Accept": "*/*"}


async def stream_instruments(
    url: str,
    timeout: float = FETCH_TIMEOUT_SEC,
    chunk_size: int = FETCH_CHUNK_SIZE,
) -> AsyncIterator[bytes]:
    """
    Open a streaming GET on url and yield raw body chunks as they arrive.

    Raises:
        NetworkError: on connection failure, timeout, non-2xx status or a
            broken stream. The httpx exception is chained as the cause.
    """
    received = 0
    try:
        async with httpx.AsyncClient(timeout=timeout, headers=_headers) as client:
            logger.info(f"Downloading instruments from {url}")
            async with client.stream("GET", url) as response:
                response.raise_for_status()
                async for chunk in response.aiter_raw(chunk_size):
                    received += len(chunk)
                    yield chunk
    except httpx.TimeoutException as e:
        raise NetworkError(f"Timed out fetching {url} after {received} bytes: {e}") from e
    except httpx.HTTPStatusError as e:
        raise NetworkError(f"HTTP {e.response.status_code} fetching {url}") from e
    except (httpx.HTTPError, httpx.StreamError) as e:
        raise NetworkError(f"Error fetching {url}: {e}") from e

    logger.info(f"Downloaded {received} compressed bytes from {url}")
