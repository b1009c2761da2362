"""
Error taxonomy for the Catalog Taxonomy Admin.

Transport and API errors come from the Catalog API client and are surfaced
to whoever issued the request. Precondition errors are raised before any
request is made. Malformed records never raise; the normalizer drops them.
"""

GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again."


class CatalogError(Exception):
    """Base exception for catalog-related errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TransportError(CatalogError):
    """Raised when the Catalog API could not be reached or did not respond."""


class ApiError(CatalogError):
    """Raised when the Catalog API answers with a non-2xx status."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status

    def __str__(self) -> str:
        return f"HTTP {self.status}: {self.message}"


class PreconditionError(CatalogError):
    """Raised when a mutation is attempted without a required id."""


class ConfigurationError(CatalogError):
    """Raised when the Catalog API settings are missing or unusable."""


def user_message(error, fallback: str = GENERIC_ERROR_MESSAGE) -> str:
    """Text to show the user for a failed operation."""
    if isinstance(error, ApiError):
        return error.message.strip() if error.message and error.message.strip() else fallback
    if isinstance(error, (PreconditionError, ConfigurationError)):
        return error.message
    return fallback
