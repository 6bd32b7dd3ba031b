"""
Error taxonomy for the signal decision engine.

Everything raised above the ``decide`` boundary (bad payloads, bad config)
reaches the caller as one of these types. ProviderFailure is raised by
market data providers and absorbed by the fetcher into fallback values.
"""

from typing import Iterable, Optional

from .types import ProviderErrorType


class SignalEngineError(Exception):
    """Base class for all engine errors."""
    pass


class ClassificationFailure(SignalEngineError):
    """Payload does not match any known producer fingerprint."""

    def __init__(self, hint: str):
        self.hint = hint
        super().__init__(f"Unrecognized payload: {hint}")


class NormalizationFailure(SignalEngineError):
    """Mandatory fields could not be resolved for a classified payload."""

    def __init__(self, source: str, missing_fields: Iterable[str]):
        self.source = source
        self.missing_fields = tuple(missing_fields)
        super().__init__(
            f"Cannot normalize {source} payload, missing: {', '.join(self.missing_fields)}"
        )


class ProviderFailure(SignalEngineError):
    """A single market data provider call failed or timed out."""

    def __init__(
        self,
        provider: str,
        error_type: ProviderErrorType,
        message: str,
        status_code: Optional[int] = None,
    ):
        self.provider = provider
        self.error_type = error_type
        self.status_code = status_code
        self.message = message
        super().__init__(f"{provider}: {error_type.value} {message}")

    @property
    def retryable(self) -> bool:
        return self.error_type.retryable


class ConfigurationError(SignalEngineError):
    """Rule or application configuration is invalid."""
    pass


class UnknownSymbolError(SignalEngineError):
    """No fragments have been merged for the requested symbol."""

    def __init__(self, symbol: str):
        self.symbol = symbol
        super().__init__(f"No context available for symbol '{symbol}'")


class InvalidContextError(SignalEngineError):
    """Aggregated context is structurally invalid (e.g. no instrument identity)."""
    pass
