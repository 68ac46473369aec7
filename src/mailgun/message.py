"""Outgoing message builders.

Two variants exist: :class:`Message` carries structured fields (from, subject,
text/html bodies, attachments) and :class:`MIMEMessage` carries a pre-rendered
MIME document. Both share recipients, variables and delivery options, and both
render through :meth:`build` into the flat field list the messages endpoint
expects::

    msg = Message("Excited User <me@example.com>", "Hello", "Testing!", "bob@example.com")
    msg.add_variable("order", {"id": 42})
    msg.set_tracking(False)
    msg.build().fields
    # [("from", ...), ("subject", "Hello"), ("text", "Testing!"),
    #  ("to", "bob@example.com"), ("v:order", '{"id":42}'), ("o:tracking", "no")]
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime
from pathlib import Path
from typing import Any, BinaryIO, Union

from .exceptions import InvalidMessageError, RecipientLimitExceeded

MAX_NUMBER_OF_RECIPIENTS = 1000
MAX_NUMBER_OF_CAMPAIGNS = 3

VariableValue = Union[str, bool, int, float, Mapping[str, Any]]


def serialize_variable(value: VariableValue) -> str:
    """Render a message variable to its wire form.

    Strings are sent as-is, booleans as ``true``/``false``, numbers as JSON
    numbers and mappings as compact JSON objects with sorted keys.

    Raises:
        TypeError: If the value is not one of the supported kinds.
    """
    # bool first: it is a subclass of int
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return json.dumps(value)
    if isinstance(value, Mapping):
        return _compact_json(dict(value))
    raise TypeError(
        f"unsupported variable type {type(value).__name__!r}; "
        "expected str, bool, int, float or a mapping"
    )


def _compact_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), sort_keys=True)


def _yes_no(flag: bool) -> str:
    return "yes" if flag else "no"


def _has_empty(values: list[str]) -> bool:
    return any(not v for v in values)


@dataclass(frozen=True)
class Attachment:
    """A file sent with a message, either attached or inlined."""

    filename: str
    data: bytes | None = None
    path: Path | None = None

    def read(self) -> bytes:
        if self.data is not None:
            return self.data
        if self.path is None:
            raise ValueError(f"attachment {self.filename!r} has neither data nor a path")
        return self.path.read_bytes()


@dataclass(frozen=True)
class BuiltMessage:
    """Transport-ready rendering of a message.

    Attributes:
        endpoint: Path segment under the domain (``messages`` or ``messages.mime``).
        fields: Ordered ``(name, value)`` form fields; names may repeat.
        files: Multipart file parts as ``(field, (filename, content))``.
    """

    endpoint: str
    fields: list[tuple[str, str]]
    files: list[tuple[str, tuple[str, bytes]]] = field(default_factory=list)

    def values(self, name: str) -> list[str]:
        """Return every value emitted for ``name``, in order."""
        return [v for k, v in self.fields if k == name]

    def get(self, name: str) -> str | None:
        """Return the first value emitted for ``name``, or None."""
        values = self.values(name)
        return values[0] if values else None

    def form_data(self) -> dict[str, list[str]]:
        """Group fields by name for httpx's ``data`` argument."""
        grouped: dict[str, list[str]] = {}
        for name, value in self.fields:
            grouped.setdefault(name, []).append(value)
        return grouped


class BaseMessage(ABC):
    """State and options shared by plain and MIME messages."""

    endpoint = "messages"

    def __init__(self, *to: str):
        self._to: list[str] = []
        self._recipient_variables: dict[str, dict[str, Any]] = {}
        self._variables: dict[str, str] = {}
        self._tags: list[str] = []
        self._campaigns: list[str] = []
        self._headers: dict[str, str] = {}
        self._domain: str | None = None
        self._delivery_time: datetime | None = None
        self._tracking: bool | None = None
        self._tracking_clicks: bool | None = None
        self._tracking_opens: bool | None = None
        self._dkim: bool | None = None
        self._test_mode = False
        self._require_tls = False
        self._skip_verification = False

        for address in to:
            self.add_recipient(address)

    # Recipients

    def recipient_count(self) -> int:
        """Number of recipients counted against the per-message limit."""
        return len(self._to)

    def _ensure_capacity(self) -> None:
        if self.recipient_count() >= MAX_NUMBER_OF_RECIPIENTS:
            raise RecipientLimitExceeded(MAX_NUMBER_OF_RECIPIENTS)

    def add_recipient(self, address: str) -> None:
        """Append a To recipient.

        Raises:
            RecipientLimitExceeded: If the message already holds the maximum
                number of recipients. The message is left unchanged.
        """
        self._ensure_capacity()
        self._to.append(address)

    def add_recipient_and_variables(
        self, address: str, variables: Mapping[str, Any] | None
    ) -> None:
        """Append a To recipient with its own template variables.

        The variables resolve ``%recipient.<name>%`` placeholders server-side.

        Raises:
            RecipientLimitExceeded: If the limit is reached. Nothing is added.
            TypeError: If the variables are not JSON-serializable.
        """
        self._ensure_capacity()
        table = dict(variables or {})
        _compact_json(table)
        self._to.append(address)
        self._recipient_variables[address] = table

    @property
    def to(self) -> list[str]:
        return list(self._to)

    # Metadata

    def add_variable(self, key: str, value: VariableValue) -> None:
        """Attach a message-level variable, sent as ``v:<key>``."""
        self._variables[key] = serialize_variable(value)

    def add_tag(self, *tags: str) -> None:
        self._tags.extend(tags)

    def add_campaign(self, campaign: str) -> None:
        self._campaigns.append(campaign)

    def add_header(self, name: str, value: str) -> None:
        """Add a custom MIME header, sent as ``h:<name>``."""
        self._headers[name] = value

    def add_domain(self, domain: str) -> None:
        """Send through ``domain`` instead of the client's routing domain."""
        self._domain = domain

    @property
    def domain(self) -> str | None:
        return self._domain

    # Options

    def set_delivery_time(self, when: datetime) -> None:
        """Schedule delivery. Naive datetimes are interpreted as UTC."""
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        self._delivery_time = when

    def set_tracking(self, enabled: bool) -> None:
        self._tracking = enabled

    def set_tracking_clicks(self, enabled: bool) -> None:
        self._tracking_clicks = enabled

    def set_tracking_opens(self, enabled: bool) -> None:
        self._tracking_opens = enabled

    def set_dkim(self, enabled: bool) -> None:
        self._dkim = enabled

    def enable_test_mode(self) -> None:
        """Ask the API to accept the message without delivering it."""
        self._test_mode = True

    def set_require_tls(self, enabled: bool) -> None:
        self._require_tls = enabled

    def set_skip_verification(self, enabled: bool) -> None:
        self._skip_verification = enabled

    # Rendering

    def is_valid(self) -> bool:
        if self.recipient_count() == 0:
            return False
        if _has_empty(self._tags):
            return False
        if _has_empty(self._campaigns) or len(self._campaigns) > MAX_NUMBER_OF_CAMPAIGNS:
            return False
        return True

    def validate(self) -> None:
        """Raise :class:`InvalidMessageError` if the message cannot be sent."""
        if not self.is_valid():
            raise InvalidMessageError()

    def _recipient_fields(self) -> list[tuple[str, str]]:
        fields = [("to", address) for address in self._to]
        if self._recipient_variables:
            fields.append(("recipient-variables", _compact_json(self._recipient_variables)))
        return fields

    def _option_fields(self) -> list[tuple[str, str]]:
        fields: list[tuple[str, str]] = []
        fields.extend(("o:tag", tag) for tag in self._tags)
        fields.extend(("o:campaign", campaign) for campaign in self._campaigns)
        fields.extend((f"h:{name}", value) for name, value in self._headers.items())
        fields.extend((f"v:{key}", value) for key, value in self._variables.items())

        if self._dkim is not None:
            fields.append(("o:dkim", _yes_no(self._dkim)))
        if self._delivery_time is not None:
            fields.append(("o:deliverytime", format_datetime(self._delivery_time)))
        if self._test_mode:
            fields.append(("o:testmode", "yes"))
        if self._tracking is not None:
            fields.append(("o:tracking", _yes_no(self._tracking)))
        if self._tracking_clicks is not None:
            fields.append(("o:tracking-clicks", _yes_no(self._tracking_clicks)))
        if self._tracking_opens is not None:
            fields.append(("o:tracking-opens", _yes_no(self._tracking_opens)))
        if self._require_tls:
            fields.append(("o:require-tls", "true"))
        if self._skip_verification:
            fields.append(("o:skip-verification", "true"))
        return fields

    @abstractmethod
    def build(self) -> BuiltMessage:
        """Render the message. Does not modify it and may be called repeatedly."""


class Message(BaseMessage):
    """A message assembled from structured fields.

    Args:
        sender: The ``From`` address, e.g. ``"Joe <joe@example.com>"``.
        subject: Subject line.
        text: Plain-text body.
        *to: Initial To recipients.
    """

    def __init__(self, sender: str, subject: str, text: str, *to: str):
        self.sender = sender
        self.subject = subject
        self.text = text
        self.html: str | None = None
        self.template: str | None = None
        self._cc: list[str] = []
        self._bcc: list[str] = []
        self._attachments: list[Attachment] = []
        self._inlines: list[Attachment] = []
        super().__init__(*to)

    def recipient_count(self) -> int:
        return len(self._to) + len(self._cc) + len(self._bcc)

    def add_cc(self, address: str) -> None:
        self._ensure_capacity()
        self._cc.append(address)

    def add_bcc(self, address: str) -> None:
        self._ensure_capacity()
        self._bcc.append(address)

    @property
    def cc(self) -> list[str]:
        return list(self._cc)

    @property
    def bcc(self) -> list[str]:
        return list(self._bcc)

    def set_html(self, html: str) -> None:
        self.html = html

    def set_template(self, name: str) -> None:
        """Render the body from a template stored on the server."""
        self.template = name

    def add_attachment(self, path: str | Path) -> None:
        """Attach a file from disk. The file is read when the message is built."""
        path = Path(path)
        self._attachments.append(Attachment(filename=path.name, path=path))

    def add_buffer_attachment(self, filename: str, data: bytes) -> None:
        self._attachments.append(Attachment(filename=filename, data=data))

    def add_inline(self, path: str | Path) -> None:
        """Inline an image from disk, referenced as ``cid:<filename>``."""
        path = Path(path)
        self._inlines.append(Attachment(filename=path.name, path=path))

    def add_reader_inline(self, filename: str, data: bytes) -> None:
        self._inlines.append(Attachment(filename=filename, data=data))

    def is_valid(self) -> bool:
        if not self.sender:
            return False
        if _has_empty(self._cc) or _has_empty(self._bcc):
            return False
        if not self.template and not self.text and not self.html:
            return False
        return super().is_valid()

    def build(self) -> BuiltMessage:
        fields: list[tuple[str, str]] = [("from", self.sender)]
        if self.subject:
            fields.append(("subject", self.subject))
        if self.text:
            fields.append(("text", self.text))
        if self.html:
            fields.append(("html", self.html))
        if self.template:
            fields.append(("template", self.template))

        fields.extend(self._recipient_fields())
        fields.extend(("cc", address) for address in self._cc)
        fields.extend(("bcc", address) for address in self._bcc)
        fields.extend(self._option_fields())

        files = [("attachment", (a.filename, a.read())) for a in self._attachments]
        files.extend(("inline", (i.filename, i.read())) for i in self._inlines)

        return BuiltMessage(endpoint=self.endpoint, fields=fields, files=files)


class MIMEMessage(BaseMessage):
    """A message whose body is a complete MIME document.

    Args:
        body: The MIME document as bytes, text, or a readable binary stream.
            Streams are read once, at construction.
        *to: Initial To recipients.
    """

    endpoint = "messages.mime"

    def __init__(self, body: bytes | str | BinaryIO, *to: str):
        if isinstance(body, str):
            body = body.encode("utf-8")
        elif not isinstance(body, (bytes, bytearray)):
            body = body.read()
        self.body = bytes(body)
        super().__init__(*to)

    def is_valid(self) -> bool:
        if not self.body:
            return False
        return super().is_valid()

    def build(self) -> BuiltMessage:
        fields = self._recipient_fields() + self._option_fields()
        return BuiltMessage(
            endpoint=self.endpoint,
            fields=fields,
            files=[("message", ("message.mime", self.body))],
        )
