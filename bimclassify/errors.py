"""Exception hierarchy for BIMClassify.

Cache misses are not errors: lookups return ``None``. The exceptions below are
raised for conditions callers must handle explicitly.
"""

from __future__ import annotations


class BIMClassifyError(Exception):
    """Base class for all BIMClassify errors."""


class ValidationError(BIMClassifyError, ValueError):
    """Input rejected immediately (blank reason, malformed pattern tuple).

    Never retried.
    """


class SuggestionNotFoundError(BIMClassifyError, LookupError):
    """Suggestion id absent from the durable suggestion store."""

    def __init__(self, suggestion_id: object):
        super().__init__(f"Classification suggestion {suggestion_id} not found")
        self.suggestion_id = suggestion_id


class InvalidStateTransitionError(BIMClassifyError):
    """Review transition attempted on a suggestion that is no longer pending."""

    def __init__(self, suggestion_id: object, current_status: str, action: str):
        super().__init__(
            f"Cannot {action} suggestion {suggestion_id}: status is {current_status!r}, "
            "expected 'pending'"
        )
        self.suggestion_id = suggestion_id
        self.current_status = current_status
        self.action = action


class StoreUnavailableError(BIMClassifyError):
    """Backing cache store unreachable, timed out or failed.

    Classification callers treat this as a cache miss.
    """

    def __init__(self, operation: str, cause: BaseException | None = None):
        message = f"Cache store unavailable during {operation}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
        self.operation = operation
        self.__cause__ = cause
