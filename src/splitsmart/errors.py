"""Exceptions raised by the bill engine and conversation session."""


class SplitSmartError(Exception):
    """Base exception for all SplitSmart errors."""


class ExtractionFailedError(SplitSmartError):
    """Raised when a receipt could not be turned into a valid bill."""


class MalformedUpdateError(SplitSmartError):
    """Raised when a candidate bill update fails structural validation."""


class SessionStateError(SplitSmartError):
    """Raised when an operation is not allowed in the session's current state."""


class SessionBusyError(SessionStateError):
    """Raised when a session already has an external call in flight."""
