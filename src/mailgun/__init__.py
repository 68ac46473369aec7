"""Mailgun Python SDK - Transactional email sending and webhook verification."""

from .client import MailgunClient, SendResult, StoredMessage
from .config import Config
from .events import Event, EventIterator
from .message import MAX_NUMBER_OF_RECIPIENTS, BuiltMessage, Message, MIMEMessage
from .webhook import Signature, WebhookKind, WebhookVerifier
from .exceptions import (
    MailgunError,
    ConfigurationError,
    RecipientLimitExceeded,
    NoRecipientsError,
    InvalidMessageError,
    TransportError,
    RequestCancelledError,
    MalformedSignatureError,
    APIError,
    AuthenticationError,
    NotFoundError,
    RateLimitError,
)

__version__ = "0.1.0"
__all__ = [
    "MailgunClient",
    "Config",
    "Message",
    "MIMEMessage",
    "BuiltMessage",
    "MAX_NUMBER_OF_RECIPIENTS",
    "SendResult",
    "StoredMessage",
    "Event",
    "EventIterator",
    "Signature",
    "WebhookKind",
    "WebhookVerifier",
    "MailgunError",
    "ConfigurationError",
    "RecipientLimitExceeded",
    "NoRecipientsError",
    "InvalidMessageError",
    "TransportError",
    "RequestCancelledError",
    "MalformedSignatureError",
    "APIError",
    "AuthenticationError",
    "NotFoundError",
    "RateLimitError",
]
