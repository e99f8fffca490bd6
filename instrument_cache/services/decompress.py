# instrument_cache/services/decompress.py
import logging
import zlib
from typing import AsyncIterable, AsyncIterator

from ..errors import DecompressionError

logger = logging.getLogger(__name__)

# 16 + MAX_WBITS: expect a gzip header and trailer
_GZIP_WBITS = 16 + zlib.MAX_WBITS


async def gunzip_stream(chunks: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
    """
    Inflate a gzip byte stream incrementally.

    Input chunks may be any size. Concatenated gzip members are decoded one
    after another and zero bytes padding a finished member are ignored. A stream that ends before the final member's trailer, or
    that contains no data at all, is reported as truncated.

    Raises:
        DecompressionError: corrupt or truncated input.
    """
    inflater = zlib.decompressobj(_GZIP_WBITS)
    seen_input = False

    try:
        async for chunk in chunks:
            if not chunk:
                continue
            seen_input = True
            data = chunk
            while data:
                if inflater.eof:
                    # Member finished: zero padding is skipped, anything else starts the next member
                    data = data.lstrip(b"\x00")
                    if not data:
                        break
                    inflater = zlib.decompressobj(_GZIP_WBITS)
                out = inflater.decompress(data)
                if out:
                    yield out
                data = inflater.unused_data if inflater.eof else b""
        tail = inflater.flush()
    except zlib.error as e:
        raise DecompressionError(f"Corrupt gzip stream: {e}") from e

    if tail:
        yield tail

    if not seen_input:
        raise DecompressionError("Compressed stream was empty")
    if not inflater.eof:
        raise DecompressionError("Compressed stream ended before the gzip trailer (truncated)")
