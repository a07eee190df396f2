"""
Error taxonomy.

Errors are raised where they are detected (HTTP layer, state store) and
handled at the fail-soft boundaries (fetch job runner, scanner).
"""

from typing import Optional


class SharpScanError(Exception):
    """Base class for all scanner errors."""


class ConfigError(SharpScanError):
    """Missing credential, disabled provider or unknown profile."""


class ProviderError(SharpScanError):
    """Non-success response from the odds provider."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body[:300]


class RateLimitedError(ProviderError):
    """Provider answered 429 / too many requests."""


class UnsupportedMarketError(ProviderError):
    """Provider rejected the market for this sport (422 / INVALID_MARKET)."""


class MalformedPayloadError(SharpScanError):
    """Response or record could not be parsed into the expected shape."""


class PersistenceError(SharpScanError):
    """Alert state could not be written or read."""
