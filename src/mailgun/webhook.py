"""Webhook signature verification and form parsing utilities."""

from __future__ import annotations

import hashlib
import hmac
import re
from collections.abc import Mapping
from dataclasses import dataclass
from email.parser import BytesParser
from email.policy import HTTP
from typing import Literal
from urllib.parse import parse_qs

from .exceptions import MalformedSignatureError


WebhookKind = Literal[
    "bounce",
    "click",
    "deliver",
    "drop",
    "open",
    "spam",
    "unsubscribe",
]

SIGNATURE_FIELDS = ("timestamp", "token", "signature")

_HEX_RE = re.compile(r"(?:[0-9a-fA-F]{2})*")


@dataclass(frozen=True)
class Signature:
    """Authenticity claim carried by an inbound webhook callback."""

    timestamp: str
    token: str
    signature: str

    @classmethod
    def from_form(cls, form: Mapping[str, str]) -> Signature:
        """Build a signature from decoded form fields.

        Raises:
            MalformedSignatureError: If a field is missing.
        """
        missing = [name for name in SIGNATURE_FIELDS if not form.get(name)]
        if missing:
            raise MalformedSignatureError(f"missing webhook field(s): {', '.join(missing)}")
        return cls(
            timestamp=form["timestamp"],
            token=form["token"],
            signature=form["signature"],
        )


class WebhookVerifier:
    """Verify that webhook callbacks were signed with your API key.

    Example:
        ```python
        from mailgun import WebhookVerifier

        verifier = WebhookVerifier(api_key="key-...")

        # In your webhook handler (e.g., Flask)
        @app.post("/webhooks/mailgun")
        def handle_webhook():
            try:
                ok = verifier.verify_request(request.get_data(), request.content_type)
            except ValueError as e:
                return {"error": str(e)}, 400
            if not ok:
                return {"error": "bad signature"}, 406
            return {"status": "ok"}
        ```
    """

    def __init__(self, api_key: str):
        """Initialize webhook verifier.

        Args:
            api_key: Private API key the callbacks are signed with.
        """
        self.api_key = api_key

    def sign(self, timestamp: str, token: str) -> str:
        """Return the hex HMAC-SHA256 of ``timestamp + token``."""
        return hmac.new(
            self.api_key.encode(),
            (timestamp + token).encode(),
            hashlib.sha256,
        ).hexdigest()

    def verify_signature(self, sig: Signature) -> bool:
        """Verify a webhook signature.

        Args:
            sig: Timestamp, token and hex signature from the callback.

        Returns:
            True if the signature matches, False otherwise.

        Raises:
            MalformedSignatureError: If a field is empty or the signature
                is not valid hex.
        """
        if not sig.timestamp or not sig.token or not sig.signature:
            raise MalformedSignatureError("webhook signature fields must not be empty")

        # bytes.fromhex would skip whitespace
        if not _HEX_RE.fullmatch(sig.signature):
            raise MalformedSignatureError(f"signature is not valid hex: {sig.signature!r}")
        provided = bytes.fromhex(sig.signature)

        expected = bytes.fromhex(self.sign(sig.timestamp, sig.token))
        return hmac.compare_digest(expected, provided)

    def verify_request(self, body: bytes | str, content_type: str) -> bool:
        """Verify a raw webhook request body.

        Args:
            body: Raw request body.
            content_type: Value of the request's Content-Type header.

        Returns:
            True if the signature matches, False otherwise.

        Raises:
            MalformedSignatureError: If the body cannot be parsed or lacks
                the signature fields.
        """
        return self.verify_signature(self.extract_signature(body, content_type))

    @staticmethod
    def extract_signature(body: bytes | str, content_type: str) -> Signature:
        """Extract the signature fields from a webhook request body."""
        return Signature.from_form(parse_form(body, content_type))


def parse_form(body: bytes | str, content_type: str) -> dict[str, str]:
    """Decode a url-encoded or multipart form body into first-value fields.

    Raises:
        MalformedSignatureError: For any other content type, or a body that
            cannot be parsed or decoded.
    """
    try:
        return _parse_form(body, content_type)
    except (UnicodeError, LookupError) as e:
        raise MalformedSignatureError(f"cannot decode webhook form: {e}") from e


def _parse_form(body: bytes | str, content_type: str) -> dict[str, str]:
    if isinstance(body, str):
        body = body.encode("utf-8")

    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type == "application/x-www-form-urlencoded":
        parsed = parse_qs(body.decode("utf-8"), keep_blank_values=True, errors="strict")
        return {name: values[0] for name, values in parsed.items()}
    if media_type == "multipart/form-data":
        return _parse_multipart(body, content_type)

    raise MalformedSignatureError(f"unsupported webhook content type: {content_type!r}")


def _parse_multipart(body: bytes, content_type: str) -> dict[str, str]:
    document = b"Content-Type: " + content_type.encode("latin-1") + b"\r\n\r\n" + body
    message = BytesParser(policy=HTTP).parsebytes(document)
    if not message.is_multipart():
        raise MalformedSignatureError("multipart body has no parts")

    form: dict[str, str] = {}
    for part in message.iter_parts():
        name = part.get_param("name", header="content-disposition")
        if not name or name in form:
            continue
        payload = part.get_payload(decode=True) or b""
        charset = part.get_content_charset() or "utf-8"
        form[str(name)] = payload.decode(charset)
    return form
