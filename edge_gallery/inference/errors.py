"""Custom exceptions for the inference module."""

TRACE_MARKER = "=== Source Location Trace"


def clean_error_message(message: str) -> str:
    """Drop the native stack trace engines append after the trace marker."""
    index = message.find(TRACE_MARKER)
    if index >= 0:
        message = message[:index]
    return message.strip()


class InferenceError(Exception):
    """Base exception for inference errors."""

    pass


# --- Construction errors ---


class EngineConstructionError(InferenceError):
    """
    Raised when an engine or its first session cannot be created.

    This can happen when:
    - Model artifact is missing or truncated
    - Requested accelerator is unavailable
    - Engine runs out of memory while loading weights
    """

    pass


class SessionResetError(InferenceError):
    """
    Raised when a fresh session cannot be opened on an existing engine.

    The previous session is already closed when this is raised; the
    caller has to create the engine again.
    """

    pass


# --- Runtime errors ---


class SessionCloseError(InferenceError):
    """
    Raised (and logged, never propagated) when closing a session or engine fails.

    This can happen when:
    - Native resources were already released
    - Generation is still running on the session
    """

    pass


class QueryError(InferenceError):
    """
    Raised when a query cannot be submitted.

    This can happen when:
    - Session was closed by a concurrent cleanup
    - Engine rejects an image or audio clip
    """

    pass
