"""
MarketDash — Exceptions

Provider-level failures stay inside the fallback chains. Only the errors
below can reach the HTTP layer, where error_handlers maps them to statuses.
"""

from __future__ import annotations


class MarketDataError(Exception):
    """Base class for all MarketDash errors."""


class ProviderError(MarketDataError):
    """A single provider failed to deliver data."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(message)


class ProviderNotConfiguredError(ProviderError):
    """Raised when a provider is called without its credentials.

    Chains treat this as a failed attempt. Direct callers surface it as 401.
    """

    def __init__(self, provider: str):
        super().__init__(provider, f"{provider} API credentials not configured")


class UnknownEngineError(MarketDataError):
    """Raised for an outlook engine name that is not registered."""

    def __init__(self, engine: str):
        self.engine = engine
        super().__init__(f"Invalid engine parameter: '{engine}'")


class InvalidRequestError(MarketDataError, ValueError):
    """Malformed symbol, query, or timeframe."""
