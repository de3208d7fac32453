# src/core/exceptions.py

"""Error taxonomy for source connectors and the search aggregator."""


class SourcingError(Exception):
    """Base class for every error raised by the sourcing engine."""

    def __init__(self, message: str, source: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.source = source

    def __str__(self) -> str:
        if self.source:
            return f"[{self.source}] {self.message}"
        return self.message


class ConfigurationError(SourcingError):
    """Credentials or endpoints for a source are not set."""


class AuthenticationError(SourcingError):
    """The token exchange with a source failed."""


class SourceError(SourcingError):
    """Upstream answered with a non-success status or an error payload."""

    def __init__(
        self,
        message: str,
        source: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, source)
        self.status_code = status_code


class SourceTimeoutError(SourceError):
    """The upstream call exceeded its deadline."""


class InvalidRequestError(SourcingError):
    """The caller's search request is unusable (no sources, bad limit)."""
