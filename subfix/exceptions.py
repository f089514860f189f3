"""Custom Exceptions for the SubFix application."""

from typing import Optional


class SubFixError(Exception):
    """Base class for exceptions in this module."""
    pass

class ConfigurationError(SubFixError):
    """Exception raised for missing or invalid configuration (credential, inputs, settings)."""
    pass

class EmptyInputError(SubFixError):
    """Exception raised when the subtitle source decodes to zero entries."""
    pass

class SubtitleFormatError(SubFixError):
    """Exception raised when subtitle text cannot be decoded or encoded."""
    pass

class FileSystemError(SubFixError):
    """Exception raised for file system related errors (permissions, not found etc)."""
    pass


class InvocationError(SubFixError):
    """Base class for terminal failures of the remote model invocation."""
    pass

class RateLimitExhausted(InvocationError):
    """Exception raised when the final attempt is still rate-limited."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Rate limit retries exhausted after {attempts} attempt(s)")

class RemoteError(InvocationError):
    """Exception raised when the remote service keeps answering with an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)

class InvalidResponse(InvocationError):
    """Exception raised when a successful response carries no usable generated text."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"API refused to generate (reason: {reason})")

class ExhaustedRetries(InvocationError):
    """Exception raised when the attempt budget runs out without a more specific cause."""

    def __init__(self, attempts: int, last_reason: Optional[str] = None):
        self.attempts = attempts
        self.last_reason = last_reason
        message = f"Request retries exhausted after {attempts} attempt(s)"
        if last_reason:
            message += f" (last failure: {last_reason})"
        super().__init__(message)
