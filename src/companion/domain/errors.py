from __future__ import annotations

from typing import Optional


class CompanionError(Exception):
    """Base class for errors raised by the companion core."""


class ExtractionError(CompanionError):
    def __init__(self, filename: str, reason: str) -> None:
        super().__init__(f"Could not extract text from {filename or 'upload'}: {reason}")
        self.filename = filename
        self.reason = reason


class ContextStoreError(CompanionError):
    """The context store backend could not be reached or returned bad data."""


class UpstreamError(CompanionError):
    """The generation backend failed before, or part way through, a stream.

    ``fragments`` counts the fragments already handed to the consumer; those
    are never retracted.
    """

    def __init__(self, message: str, *, status_code: Optional[int] = None, fragments: int = 0) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.fragments = fragments


class ClientDisconnect(CompanionError):
    """The downstream client went away while we were receiving or sending."""
