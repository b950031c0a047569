"""
goaltimer error types.

Nothing here is fatal to the engine: validation errors are raised before any
request is sent, network errors end in a reload from the server.
"""

from typing import Any, Optional


class GoalTimerError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class ValidationError(GoalTimerError):
    """Rejected locally; shown to the user as-is and never retried."""

    def __init__(self, message: str, code: str = "validation_error", details: Optional[dict[str, Any]] = None):
        super().__init__(code, message, details)


class NetworkError(GoalTimerError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__("network_error", message, {"status_code": status_code} if status_code else None)
        self.status_code = status_code


class InconsistentStateError(GoalTimerError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("inconsistent_state", message, details)


class ConnectionError(GoalTimerError):
    def __init__(self, message: str):
        super().__init__("connection_error", message)
