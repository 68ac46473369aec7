"""Shared fixtures for the Mailgun SDK tests."""

from email.parser import BytesParser
from email.policy import HTTP
from urllib.parse import parse_qs

import httpx
import pytest

from mailgun import MailgunClient

EXAMPLE_DOMAIN = "testDomain"
EXAMPLE_API_KEY = "testAPIKey"
EXAMPLE_MESSAGE = "Queue. Thank you"
EXAMPLE_ID = "<20111114174239.25659.5817@samples.mailgun.org>"


def form_fields(request: httpx.Request) -> dict[str, list[str]]:
    """Decode every form field of a captured request, keeping repeats."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        document = b"Content-Type: " + content_type.encode() + b"\r\n\r\n" + request.content
        message = BytesParser(policy=HTTP).parsebytes(document)
        fields: dict[str, list[str]] = {}
        for part in message.iter_parts():
            if part.get_param("filename", header="content-disposition"):
                continue
            name = str(part.get_param("name", header="content-disposition"))
            fields.setdefault(name, []).append(part.get_payload(decode=True).decode())
        return fields
    return parse_qs(request.content.decode(), keep_blank_values=True)


def multipart_files(request: httpx.Request) -> list[tuple[str, str, bytes]]:
    """Return ``(field, filename, content)`` for each file part of a request."""
    content_type = request.headers["content-type"]
    document = b"Content-Type: " + content_type.encode() + b"\r\n\r\n" + request.content
    message = BytesParser(policy=HTTP).parsebytes(document)
    files = []
    for part in message.iter_parts():
        filename = part.get_param("filename", header="content-disposition")
        if filename:
            name = part.get_param("name", header="content-disposition")
            files.append((str(name), str(filename), part.get_payload(decode=True)))
    return files


def accepted(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"message": EXAMPLE_MESSAGE, "id": EXAMPLE_ID})


@pytest.fixture
def requests_seen():
    return []


@pytest.fixture
def make_client(requests_seen):
    """Build a client whose network is the given handler.

    Every request reaching the handler is recorded in ``requests_seen``.
    """
    clients = []

    def factory(handler=accepted, **kwargs) -> MailgunClient:
        def record(request: httpx.Request) -> httpx.Response:
            requests_seen.append(request)
            return handler(request)

        client = MailgunClient(
            domain=kwargs.pop("domain", EXAMPLE_DOMAIN),
            api_key=kwargs.pop("api_key", EXAMPLE_API_KEY),
            api_base=kwargs.pop("api_base", "https://api.test/v3"),
            transport=httpx.MockTransport(record),
            **kwargs,
        )
        clients.append(client)
        return client

    yield factory

    for client in clients:
        client.close()
