"""Exceptions raised by the instrument cache."""


class InstrumentCacheError(Exception):
    """Base exception for all instrument cache errors."""


class RefreshError(InstrumentCacheError):
    """A refresh cycle failed. Only aborts the current attempt."""


class NetworkError(RefreshError):
    """Connection, HTTP status or stream failure while fetching the catalog."""


class DecompressionError(RefreshError):
    """The compressed catalog stream was corrupt or truncated."""


class ParseError(RefreshError):
    """The decompressed payload is not a JSON array of instrument objects."""


class CatalogNotReadyError(InstrumentCacheError):
    """No catalog has been loaded yet, so lookups cannot be answered."""
