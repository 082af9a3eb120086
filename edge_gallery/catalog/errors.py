"""Custom exceptions for the model catalog module."""


class CatalogError(Exception):
    """Base exception for catalog-related errors."""

    pass


# --- Allow-list errors ---


class AllowlistLoadError(CatalogError):
    """
    Raised when no model allow-list could be obtained.

    This can happen when:
    - Remote allow-list fetch failed after retries
    - No cached allow-list exists on disk
    - Cached allow-list is corrupted
    """

    pass


class AllowlistFormatError(CatalogError):
    """
    Raised when an allow-list document cannot be parsed.

    This can happen when:
    - Document is not valid JSON
    - "models" key is missing
    - A model entry lacks a required field
    """

    pass


# --- Lookup errors ---


class UnknownModelError(CatalogError):
    """
    Raised when a model name is not present in the registry.

    This can happen when:
    - Model was removed from the allow-list
    - Imported model was deleted
    - Registry has not been refreshed yet
    """

    pass
