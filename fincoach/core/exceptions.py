"""
Custom exception hierarchy for the coaching notebook.

All application exceptions inherit from FinCoachError.
"""


class FinCoachError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(FinCoachError):
    """Invalid or missing configuration."""

    pass


# =============================================================================
# Storage Errors
# =============================================================================


class StorageError(FinCoachError):
    """Storage backend failed for a reason other than a missing key.

    A missing key is never an error: adapters return None for it.
    """

    pass


# =============================================================================
# Notebook Errors
# =============================================================================


class NotebookError(FinCoachError):
    """Notebook-related error."""

    pass


class NotebookNotFoundError(NotebookError):
    """Notebook does not exist."""

    pass


class NotebookTerminalError(NotebookError):
    """Attempted to mutate a completed or abandoned notebook."""

    pass


class NoActiveNotebookError(NotebookError):
    """Operation needs a current notebook but none is held."""

    pass


# =============================================================================
# LLM Errors
# =============================================================================


class LLMError(FinCoachError):
    """Base for text-generation errors."""

    pass


class LLMTimeoutError(LLMError):
    """LLM call timed out."""

    pass


class LLMRateLimitError(LLMError):
    """LLM rate limit exceeded."""

    pass


class LLMResponseParseError(LLMError):
    """Failed to parse LLM response."""

    pass


# =============================================================================
# Retry Errors
# =============================================================================


class RetryCancelledError(FinCoachError):
    """A retry wait was interrupted because its owning session stopped."""

    pass
