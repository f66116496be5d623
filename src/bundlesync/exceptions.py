"""
Custom exceptions for bundlesync.

Most operations in bundlesync report failures as structured results
(see bundlesync.result) rather than raising. The exceptions defined here are
reserved for configuration problems, programmer errors and the CLI boundary,
where a failed Result is converted into an exception with useful context.
"""


class BundleSyncError(Exception):
    """
    Base exception for all bundlesync errors.

    All custom exceptions in bundlesync inherit from this class so callers can
    catch every application-specific error in one place.
    """

    def __init__(self, message: str, details: str | None = None) -> None:
        """
        Initialize the exception.

        Args:
            message: The primary error message.
            details: Optional additional context about the error.
        """
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(BundleSyncError):
    """
    Exception raised when configuration is invalid or missing.

    This includes:
    - Unreadable or unparsable configuration files
    - Unknown configuration keys
    - Values of the wrong type or out of range
    """

    pass


# =============================================================================
# Manifest Errors
# =============================================================================


class ManifestError(BundleSyncError):
    """
    Exception raised when a manifest cannot be used.

    Validation itself never raises; this is used where a caller requires a
    clean manifest and wants the accumulated errors as an exception.

    Attributes:
        field: The manifest field that failed, if a single one is responsible.
        value: The offending value.
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: object = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.field = field
        self.value = value


class VersionError(ManifestError):
    """Exception raised when a semantic version string cannot be parsed."""

    pass
