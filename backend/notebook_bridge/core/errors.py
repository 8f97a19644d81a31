import re


PAGE_CLOSED_PATTERN = re.compile(
    r"has been closed|Target .* closed|Browser has been closed|Context .* closed",
    re.IGNORECASE,
)


def is_page_closed_error(error: BaseException) -> bool:
    """Return True when an exception means the page or its context is gone."""
    return bool(PAGE_CLOSED_PATTERN.search(str(error)))


class BridgeError(Exception):
    """Base class for bridge errors surfaced to callers."""

    code = "bridge_error"


class AuthenticationError(BridgeError):
    """Raised when the interactive login fails or does not finish in time."""

    code = "authentication_failed"

    def __init__(self, message: str, suggest_cleanup: bool = False):
        super().__init__(message)
        self.suggest_cleanup = suggest_cleanup


class CapacityExceededError(BridgeError):
    """Raised when the session registry is full and nothing can be evicted."""

    code = "capacity_exceeded"


class SessionDisconnectedError(BridgeError):
    """Raised when a session's page or browser context is no longer usable."""

    code = "session_disconnected"


class RateLimitError(BridgeError):
    """Raised when NotebookLM reports that the query quota is exhausted."""

    code = "rate_limited"

    def __init__(self, message: str = "NotebookLM rate limit reached (50 queries/day for free accounts)"):
        super().__init__(message)


class SessionNotFoundError(BridgeError):
    code = "session_not_found"


class SessionTargetMismatchError(BridgeError):
    """Raised when an existing session is asked to switch notebooks."""

    code = "session_target_mismatch"


class NotebookNotFoundError(BridgeError):
    code = "notebook_not_found"


class PageInteractionError(BridgeError):
    """Raised when the notebook page cannot be loaded or driven."""

    code = "page_error"
