"""Tests for the webhook registry resource."""

from typing import get_args

import httpx
import pytest

from mailgun import NotFoundError
from mailgun.webhook import WebhookKind

from conftest import EXAMPLE_DOMAIN, form_fields

HOOKS_PATH = f"/v3/domains/{EXAMPLE_DOMAIN}/webhooks"


class FakeRegistry:
    """In-memory stand-in for the webhooks endpoint."""

    def __init__(self):
        self.hooks: dict[str, list[str]] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        assert path.startswith(HOOKS_PATH)
        kind = path[len(HOOKS_PATH) + 1:]

        if request.method == "GET" and not kind:
            return httpx.Response(
                200, json={"webhooks": {k: {"url": urls[0]} for k, urls in self.hooks.items()}}
            )
        if request.method == "POST" and not kind:
            fields = form_fields(request)
            self.hooks[fields["id"][0]] = fields["url"]
            return httpx.Response(200, json={"message": "Webhook has been created"})
        if kind not in self.hooks:
            return httpx.Response(404, json={"message": "webhook not found"})
        if request.method == "GET":
            return httpx.Response(200, json={"webhook": {"urls": self.hooks[kind]}})
        if request.method == "PUT":
            self.hooks[kind] = form_fields(request)["url"]
            return httpx.Response(200, json={"message": "Webhook has been updated"})
        if request.method == "DELETE":
            del self.hooks[kind]
            return httpx.Response(200, json={"message": "Webhook has been deleted"})
        return httpx.Response(405, json={"message": "method not allowed"})


class TestWebhooksResource:
    def test_webhook_crud(self, make_client):
        client = make_client(FakeRegistry())
        domain_url = "http://api.mailgun.net"

        assert client.webhooks.list() == {}

        client.webhooks.create("deliver", [domain_url])
        assert len(client.webhooks.list()) == 1
        assert client.webhooks.get("deliver") == domain_url

        updated_url = "http://api.mailgun.net/messages"
        client.webhooks.update("deliver", [updated_url])
        assert client.webhooks.list()["deliver"] == updated_url

        client.webhooks.delete("deliver")
        assert client.webhooks.list() == {}

    def test_create_sends_each_url(self, make_client, requests_seen):
        client = make_client(FakeRegistry())

        client.webhooks.create("bounce", ["https://a.test/hook", "https://b.test/hook"])

        fields = form_fields(requests_seen[0])
        assert requests_seen[0].method == "POST"
        assert fields == {"id": ["bounce"], "url": ["https://a.test/hook", "https://b.test/hook"]}

    def test_every_kind_round_trips(self, make_client):
        client = make_client(FakeRegistry())
        kinds = get_args(WebhookKind)

        for kind in kinds:
            client.webhooks.create(kind, [f"https://hooks.test/{kind}"])

        assert client.webhooks.list() == {kind: f"https://hooks.test/{kind}" for kind in kinds}

    def test_get_unknown_webhook(self, make_client):
        client = make_client(FakeRegistry())

        with pytest.raises(NotFoundError, match="^webhook not found$"):
            client.webhooks.get("spam")

    def test_list_reads_urls_form(self, make_client):
        payload = {
            "webhooks": {
                "deliver": {"urls": ["https://a.test/hook", "https://b.test/hook"]},
                "open": {"url": "https://c.test/hook"},
                "click": {},
            }
        }
        client = make_client(lambda request: httpx.Response(200, json=payload))

        assert client.webhooks.list() == {
            "deliver": "https://a.test/hook",
            "open": "https://c.test/hook",
            "click": "",
        }

    def test_no_client_side_cache(self, make_client, requests_seen):
        client = make_client(FakeRegistry())
        client.webhooks.create("deliver", ["https://a.test/hook"])

        client.webhooks.get("deliver")
        client.webhooks.get("deliver")

        assert [r.method for r in requests_seen] == ["POST", "GET", "GET"]
