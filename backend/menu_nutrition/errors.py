"""
Error taxonomy for nutrition sources. Adapters raise these; the resolver absorbs them.
"""
from typing import Optional


class ResolutionError(Exception):
    """Base class; `source` names the adapter that raised (empty for engine-level errors)."""

    def __init__(self, message: str = "", source: str = ""):
        super().__init__(message)
        self.source = source


class InvalidInput(ResolutionError):
    """Query empty or nothing usable left after normalization."""


class SourceUnavailable(ResolutionError):
    """Network failure, timeout, 5xx, or source not configured."""


class AuthError(ResolutionError):
    """HTTP 401/403: credentials missing or rejected. The tier is disabled for the session."""


class RateLimited(ResolutionError):
    """HTTP 429 from a source."""

    def __init__(self, message: str = "", source: str = "", retry_after: Optional[float] = None):
        super().__init__(message, source)
        self.retry_after = retry_after


class NoMatch(ResolutionError):
    """Source answered but had nothing usable for the query."""
