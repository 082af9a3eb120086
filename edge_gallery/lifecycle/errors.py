"""Custom exceptions for the lifecycle module."""


class LifecycleError(Exception):
    """Base exception for model lifecycle errors."""

    pass


class ModelNotInitializedError(LifecycleError):
    """
    Raised when an operation needs a live engine the model doesn't have.

    This can happen when:
    - initialize() was never called or failed
    - Model was cleaned up or deleted
    - Initialization is still in progress
    """

    pass
