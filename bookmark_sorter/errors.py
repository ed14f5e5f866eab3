"""Error types raised across the classification pipeline."""

from __future__ import annotations


class SorterError(Exception):
    """Base class for all pipeline errors."""


class ProviderError(SorterError):
    """A remote classification backend could not produce a completion."""

    kind = "provider"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ProviderTimeout(ProviderError):
    kind = "timeout"


class ProviderHttpError(ProviderError):
    kind = "http"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        if self.status_code is None:
            return True
        return self.status_code >= 500 or self.status_code in (408, 429)


class MalformedResponse(ProviderError):
    kind = "malformed"


class ConfigurationError(ProviderError):
    kind = "configuration"


class ExtractionFailure(SorterError):
    """Page content could not be read; always recovered as an empty digest."""


class ParseFailure(SorterError):
    """Model output held no usable JSON; always recovered from the raw text."""


class PlacementFailure(SorterError):
    """The bookmark store rejected a folder or bookmark operation."""


class PersistenceFailure(SorterError):
    """A history write failed; logged and never surfaced."""
