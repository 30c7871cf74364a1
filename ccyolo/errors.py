"""Error taxonomy for ccyolo.

Every error here is caught at the hook boundary and turned into a defer
(empty response), so none of them ever reaches Claude Code as a crash or
as an active block.
"""


class CcyoloError(Exception):
    """Base class for all ccyolo errors."""


class ConfigurationError(CcyoloError):
    """Required configuration (usually the API key) is missing or unreadable."""


class TransportError(CcyoloError):
    """Network failure, timeout, or non-success status from the evaluator call."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ProtocolError(CcyoloError):
    """The evaluator answered, but no parse strategy could read a verdict.

    ``excerpt`` holds the first 100 characters of the answer for the log.
    """

    def __init__(self, message: str, excerpt: str = ""):
        super().__init__(message)
        self.excerpt = excerpt


class LocalStateError(CcyoloError):
    """A corrupt cache entry or custom preset file."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path


class CredentialError(CcyoloError):
    """API key validation failed."""


class InvalidCredentialError(CredentialError):
    """The API key was rejected (HTTP 401)."""


class CredentialPermissionError(CredentialError):
    """The API key is valid but lacks permission (HTTP 403)."""
