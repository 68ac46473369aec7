"""Mailgun API client."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, BinaryIO, NamedTuple

import httpx

from .config import DEFAULT_API_BASE, DEFAULT_TIMEOUT, Config
from .events import EventsResource
from .exceptions import (
    APIError,
    AuthenticationError,
    MailgunError,
    NoRecipientsError,
    NotFoundError,
    RateLimitError,
    RequestCancelledError,
    TransportError,
)
from .message import Message, MIMEMessage, BaseMessage
from .webhook import Signature, WebhookKind, WebhookVerifier

logger = logging.getLogger(__name__)

USER_AGENT = "mailgun-python/0.1.0"


class SendResult(NamedTuple):
    """Outcome of an accepted send: the server's message and the message ID."""

    message: str
    id: str


@dataclass(frozen=True)
class StoredMessage:
    """A message retained server-side, as returned by its storage URL."""

    recipients: str
    sender: str
    from_: str
    subject: str
    body_plain: str
    stripped_text: str
    body_html: str
    attachments: list[dict[str, Any]]
    message_headers: list[tuple[str, str]]
    raw: dict[str, Any] = field(repr=False)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> StoredMessage:
        return cls(
            recipients=data.get("recipients", ""),
            sender=data.get("sender", ""),
            from_=data.get("from", ""),
            subject=data.get("subject", ""),
            body_plain=data.get("body-plain", ""),
            stripped_text=data.get("stripped-text", ""),
            body_html=data.get("body-html", ""),
            attachments=list(data.get("attachments") or []),
            message_headers=[tuple(h) for h in data.get("message-headers") or []],
            raw=data,
        )


class MailgunClient:
    """Client for interacting with the Mailgun API.

    Example:
        ```python
        from mailgun import MailgunClient

        client = MailgunClient(domain="mg.example.com", api_key="key-...")

        # Send a message
        msg = client.new_message("Me <me@mg.example.com>", "Hi", "Hello!", "you@example.com")
        msg.add_tag("welcome")
        result = client.messages.send(msg)

        # Register a webhook
        client.webhooks.create("deliver", ["https://my-app.com/hooks/deliver"])

        # Walk stored events
        it = client.events.list(filters={"event": "stored"})
        for page in it:
            ...
        if it.error:
            raise it.error
        ```
    """

    def __init__(
        self,
        domain: str,
        api_key: str,
        api_base: str = DEFAULT_API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the Mailgun client.

        Args:
            domain: Routing domain used in request paths.
            api_key: Your private Mailgun API key.
            api_base: Base URL for the Mailgun API.
            timeout: Default request timeout in seconds.
            transport: Optional httpx transport, e.g. ``httpx.MockTransport``.
        """
        self.config = Config(domain=domain, api_key=api_key, api_base=api_base, timeout=timeout)

        self._client = httpx.Client(
            base_url=self.config.api_base,
            auth=("api", self.config.api_key),
            headers={"User-Agent": USER_AGENT},
            timeout=self.config.timeout,
            transport=transport,
        )
        self._verifier = WebhookVerifier(self.config.api_key)

        # Resource endpoints
        self.messages = MessagesResource(self)
        self.webhooks = WebhooksResource(self)
        self.events = EventsResource(self)

    @classmethod
    def from_config(
        cls, config: Config, transport: httpx.BaseTransport | None = None
    ) -> MailgunClient:
        return cls(
            domain=config.domain,
            api_key=config.api_key,
            api_base=config.api_base,
            timeout=config.timeout,
            transport=transport,
        )

    @classmethod
    def from_env(cls) -> MailgunClient:
        """Create a client from ``MG_DOMAIN``, ``MG_API_KEY`` and ``MG_URL``."""
        return cls.from_config(Config.from_env())

    @property
    def domain(self) -> str:
        return self.config.domain

    @property
    def api_base(self) -> str:
        return self.config.api_base

    def new_message(self, sender: str, subject: str, text: str, *to: str) -> Message:
        """Create a plain message. Recipients may be added later."""
        return Message(sender, subject, text, *to)

    def new_mime_message(self, body: bytes | str | BinaryIO, *to: str) -> MIMEMessage:
        """Create a message from a complete MIME document."""
        return MIMEMessage(body, *to)

    def verify_webhook_signature(self, sig: Signature) -> bool:
        """Check a webhook signature against this client's API key."""
        return self._verifier.verify_signature(sig)

    def verify_webhook_request(self, body: bytes | str, content_type: str) -> bool:
        """Check the signature fields of a raw webhook request body."""
        return self._verifier.verify_request(body, content_type)

    def _request(
        self,
        method: str,
        path: str,
        data: dict[str, Any] | None = None,
        files: list[tuple[str, tuple[str, bytes]]] | None = None,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Make an API request."""
        request = self._client.build_request(
            method=method,
            url=path,
            data=data,
            files=files or None,
            params=params,
            timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
        )
        logger.debug("%s %s", method, request.url)
        deadline = time.monotonic() + (timeout if timeout is not None else self.config.timeout)

        try:
            streamed = self._client.send(request, stream=True)
            try:
                response = _read_until(streamed, deadline)
            finally:
                streamed.close()
        except httpx.TimeoutException as e:
            logger.warning("Request cancelled: %s %s: %s", method, request.url, e)
            raise RequestCancelledError(
                f"request cancelled, deadline exceeded: {method} {request.url}: {e}"
            ) from e
        except (httpx.RemoteProtocolError, httpx.ReadError) as e:
            logger.warning("Connection closed by server: %s %s: %s", method, request.url, e)
            raise TransportError(
                f"remote server prematurely closed connection: {method} {request.url}: {e}"
            ) from e
        except (httpx.TransportError, httpx.DecodingError) as e:
            logger.warning("Transport failure: %s %s: %s", method, request.url, e)
            raise TransportError(f"{method} {request.url}: {e}") from e

        return self._handle_response(response)

    def _handle_response(self, response: httpx.Response) -> dict[str, Any]:
        """Handle API response and raise appropriate exceptions."""
        if response.status_code >= 300:
            message = _error_message(response)
            logger.warning("Mailgun API error %s: %s", response.status_code, message)
            if response.status_code == 401:
                raise AuthenticationError(message)
            if response.status_code == 404:
                raise NotFoundError(message)
            if response.status_code == 429:
                retry_after = response.headers.get("Retry-After")
                raise RateLimitError(
                    message,
                    retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                )
            raise APIError(message, status_code=response.status_code)

        if response.status_code == 204 or not response.content:
            return {}

        try:
            return response.json()
        except ValueError as e:
            raise MailgunError(
                f"failed to decode response body: {e}", status_code=response.status_code
            ) from e

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> MailgunClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


def _read_until(response: httpx.Response, deadline: float) -> httpx.Response:
    """Read a streamed response fully, giving up once ``deadline`` passes.

    httpx timeouts apply per network operation, so a server trickling its
    body would otherwise never time out.
    """
    _check_deadline(deadline)
    chunks = []
    for chunk in response.iter_raw():
        chunks.append(chunk)
        _check_deadline(deadline)
    return httpx.Response(
        response.status_code,
        headers=response.headers,
        content=b"".join(chunks),
        request=response.request,
    )


def _check_deadline(deadline: float) -> None:
    if time.monotonic() > deadline:
        raise httpx.TimeoutException("deadline exceeded while reading response")


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or f"Request failed with status {response.status_code}"
    if isinstance(data, dict) and isinstance(data.get("message"), str):
        return data["message"]
    return response.text


class MessagesResource:
    """Messages API resource."""

    def __init__(self, client: MailgunClient):
        self._client = client

    def send(self, message: BaseMessage, *, timeout: float | None = None) -> SendResult:
        """Send a message.

        The message is validated and rendered first; nothing is sent if it
        is invalid. Sending does not consume the message.

        Args:
            message: A :class:`Message` or :class:`MIMEMessage`.
            timeout: Deadline in seconds for the whole call, covering connect,
                upload and reading the full response. Overrides the client
                default.

        Returns:
            The server's acknowledgement and the queued message ID.

        Raises:
            InvalidMessageError: If the message fails client-side validation.
            RequestCancelledError: If the deadline expires.
            TransportError: If the connection fails.
            APIError: If the API rejects the message.
        """
        message.validate()
        built = message.build()
        domain = message.domain or self._client.domain

        data = self._client._request(
            "POST",
            f"/{domain}/{built.endpoint}",
            data=built.form_data(),
            files=built.files,
            timeout=timeout,
        )
        return SendResult(message=data.get("message", ""), id=data.get("id", ""))

    def resend(self, url: str, *recipients: str, timeout: float | None = None) -> SendResult:
        """Deliver a stored message again.

        Args:
            url: Storage key/URL of the stored message.
            *recipients: Addresses to deliver to; at least one is required.
            timeout: Deadline for this call in seconds.

        Raises:
            NoRecipientsError: If no recipient is given. No request is made.
        """
        if not recipients:
            raise NoRecipientsError()

        data = self._client._request(
            "POST",
            f"/domains/{self._client.domain}/messages/{url}",
            data={"to": list(recipients)},
            timeout=timeout,
        )
        return SendResult(message=data.get("message", ""), id=data.get("id", ""))

    def get_stored(self, url: str) -> StoredMessage:
        """Fetch a stored message.

        Args:
            url: Storage URL, absolute or relative to the API base.
        """
        return StoredMessage.from_json(self._client._request("GET", url))

    def delete_stored(self, url: str) -> None:
        """Delete a stored message."""
        self._client._request("DELETE", url)


class WebhooksResource:
    """Webhooks API resource.

    Webhooks map an event kind (``deliver``, ``bounce``, ...) to a callback
    URL. Nothing is cached client-side; the last write wins.
    """

    def __init__(self, client: MailgunClient):
        self._client = client

    @property
    def _path(self) -> str:
        return f"/domains/{self._client.domain}/webhooks"

    def list(self) -> dict[str, str]:
        """List webhooks.

        Returns:
            Mapping of event kind to callback URL.
        """
        data = self._client._request("GET", self._path)
        hooks = data.get("webhooks") or {}
        return {kind: _webhook_url(hook) for kind, hook in hooks.items()}

    def get(self, kind: WebhookKind | str) -> str:
        """Get the callback URL registered for an event kind."""
        data = self._client._request("GET", f"{self._path}/{kind}")
        return _webhook_url(data.get("webhook") or {})

    def create(self, kind: WebhookKind | str, urls: list[str]) -> None:
        """Register callback URLs for an event kind.

        Args:
            kind: Event kind, e.g. ``deliver``.
            urls: Callback URLs.
        """
        self._client._request("POST", self._path, data={"id": kind, "url": list(urls)})

    def update(self, kind: WebhookKind | str, urls: list[str]) -> None:
        """Replace the callback URLs for an event kind."""
        self._client._request("PUT", f"{self._path}/{kind}", data={"url": list(urls)})

    def delete(self, kind: WebhookKind | str) -> None:
        """Remove the webhook for an event kind."""
        self._client._request("DELETE", f"{self._path}/{kind}")


def _webhook_url(hook: dict[str, Any]) -> str:
    if hook.get("url"):
        return hook["url"]
    urls = hook.get("urls") or []
    return urls[0] if urls else ""
