"""Catalog-specific exceptions.

Per IMPLEMENTATION_PHILOSOPHY: Clear, actionable error messages.
"""


class CatalogError(Exception):
    """Base exception for extension catalog operations."""

    def __init__(self, message: str, context: dict | None = None):
        """Initialize with message and optional context.

        Args:
            message: Human-readable error message
            context: Optional dict with additional context (extension id, url, etc.)
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}


class RegistryError(CatalogError):
    """Registry transport failed (network error or non-2xx response)."""

    def __init__(self, message: str, status_code: int | None = None, context: dict | None = None):
        super().__init__(message, context)
        self.status_code = status_code


class RegistryNotFoundError(RegistryError):
    """Registry answered 404 for the requested resource."""

    def __init__(self, message: str, context: dict | None = None):
        super().__init__(message, status_code=404, context=context)


class ExtensionResolveError(CatalogError):
    """Extension could not be resolved from the registry."""


class ExtensionInstallError(CatalogError):
    """Extension archive download or extraction failed."""
