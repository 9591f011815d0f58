"""Custom exception hierarchy for Liberator.

This module provides a structured exception hierarchy so the job controller
and the HTTP layer can tell input errors, archive errors and storage errors
apart instead of catching broad `Exception`.
"""


class LiberatorError(Exception):
    """Base exception for all Liberator errors.

    All custom exceptions should inherit from this class to allow
    callers to catch all Liberator-specific errors with a single
    except clause when appropriate.
    """
    pass


# =============================================================================
# Validation Errors
# =============================================================================

class ValidationError(LiberatorError):
    """Base exception for input validation errors."""
    pass


class InvalidInputError(ValidationError):
    """Invalid input provided at submission time."""
    pass


# =============================================================================
# Archive Errors
# =============================================================================

class ArchiveError(LiberatorError):
    """Base exception for archive codec errors."""
    pass


class ArchiveDecodeError(ArchiveError):
    """Uploaded bytes are not a readable zip container."""
    pass


class ZipSecurityError(ArchiveDecodeError):
    """Zip container violates a safety limit (bomb, traversal, size)."""
    pass


class ArchiveEncodeError(ArchiveError):
    """Output archive could not be produced."""
    pass


# =============================================================================
# Job Errors
# =============================================================================

class JobError(LiberatorError):
    """Base exception for job lifecycle errors."""
    pass


class InvalidTransitionError(JobError):
    """A job state change would violate the phase ordering."""

    def __init__(self, message: str, current: str | None = None, target: str | None = None):
        super().__init__(message)
        self.current = current
        self.target = target


# =============================================================================
# Storage Errors
# =============================================================================

class StorageError(LiberatorError):
    """Job or archive store operation failed."""
    pass


class PersistenceError(StorageError):
    """Durable job record could not be written or read."""

    def __init__(self, message: str, status_code: int | None = None, response_body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(LiberatorError):
    """Base exception for configuration errors."""
    pass


class InvalidConfigError(ConfigurationError):
    """Configuration value is invalid or malformed."""
    pass


class MissingConfigError(ConfigurationError):
    """Required configuration is missing."""
    pass


# =============================================================================
# Rate Limiting
# =============================================================================

class RateLimitError(LiberatorError):
    """Submission rate limit exceeded."""

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after
