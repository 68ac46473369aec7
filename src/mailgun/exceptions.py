"""Mailgun SDK exceptions."""


class MailgunError(Exception):
    """Base exception for the Mailgun SDK."""

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class ConfigurationError(MailgunError):
    """Raised when the client cannot be configured (e.g. missing env vars)."""


class RecipientLimitExceeded(MailgunError):
    """Raised when adding a recipient would exceed the per-message limit."""

    def __init__(self, limit: int = 1000):
        super().__init__(f"recipient limit exceeded (max {limit})")
        self.limit = limit


class NoRecipientsError(MailgunError):
    """Raised when a resend is requested without any recipient."""

    def __init__(self, message: str = "must provide at least one recipient"):
        super().__init__(message)


class InvalidMessageError(MailgunError):
    """Raised when a message fails client-side validation before sending."""

    def __init__(self, message: str = "message not valid"):
        super().__init__(message)


class TransportError(MailgunError):
    """Raised when the connection to the API fails."""


class RequestCancelledError(MailgunError):
    """Raised when a request is aborted because its deadline expired."""


class MalformedSignatureError(MailgunError, ValueError):
    """Raised when webhook signature fields are missing or unparseable."""


class APIError(MailgunError):
    """Raised when the API answers with a non-2xx status.

    The message is the server-provided text, unmodified.
    """

    def __init__(self, message: str, status_code: int):
        super().__init__(message, status_code=status_code)


class AuthenticationError(APIError):
    """Raised when authentication fails (401)."""

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, status_code=401)


class NotFoundError(APIError):
    """Raised when a resource is not found (404)."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=404)


class RateLimitError(APIError):
    """Raised when rate limit is exceeded (429)."""

    def __init__(self, message: str = "Rate limit exceeded", retry_after: int | None = None):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after
