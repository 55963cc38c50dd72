"""
Error taxonomy for Health Companion.

Every provider or transport failure is converted into one of these at the
component boundary. Each carries the HTTP status and machine-readable
code the API answers with.
"""


class CompanionError(Exception):
    """Base class for user-facing failures."""

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ConfigurationError(CompanionError):
    """A required environment value is missing."""

    error_code = "CONFIGURATION_ERROR"


class AuthError(CompanionError):
    """The identity provider rejected a sign-in, sign-out or token."""

    status_code = 401
    error_code = "AUTH_ERROR"


class UploadError(CompanionError):
    """The object store failed or no file was supplied."""

    error_code = "UPLOAD_ERROR"


class WriteError(CompanionError):
    """The document database rejected a write."""

    error_code = "WRITE_ERROR"


class ReadError(CompanionError):
    """The document database rejected a query."""

    error_code = "READ_ERROR"


class AIError(CompanionError):
    """The language model call (or a write around it) failed."""

    status_code = 502
    error_code = "AI_ERROR"


class ParseError(CompanionError):
    """
    The model reply is not a valid structured reply.

    Always recovered locally by falling back to the raw text; it never
    reaches the API as a failure.
    """

    status_code = 200
    error_code = "PARSE_ERROR"
