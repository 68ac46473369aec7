"""Tests for event listing."""

from datetime import datetime, timezone

import httpx

from mailgun import APIError, Event, MailgunError

from conftest import EXAMPLE_DOMAIN

NEXT_1 = "https://api.test/v3/testDomain/events/page-2"
NEXT_2 = "https://api.test/v3/testDomain/events/page-3"


def _item(n, event="delivered"):
    return {"id": f"id-{n}", "event": event, "timestamp": 1705312800.5 + n}


def paged(pages):
    """Serve ``pages`` in order, each linking to the next."""
    urls = {}

    def handler(request: httpx.Request) -> httpx.Response:
        index = urls.get(str(request.url).split("?")[0], 0)
        items = pages[index] if index < len(pages) else []
        next_url = f"https://api.test/v3/testDomain/events/page-{index + 2}"
        urls[next_url] = index + 1
        return httpx.Response(200, json={"items": items, "paging": {"next": next_url}})

    return handler


class TestEventIterator:
    def test_iterates_until_empty_page(self, make_client, requests_seen):
        client = make_client(paged([[_item(1), _item(2)], [_item(3)]]))

        it = client.events.list()
        pages = list(it)

        assert [[e.id for e in page] for page in pages] == [["id-1", "id-2"], ["id-3"]]
        assert it.error is None
        assert [str(r.url) for r in requests_seen] == [
            f"https://api.test/v3/{EXAMPLE_DOMAIN}/events",
            NEXT_1,
            NEXT_2,
        ]

    def test_lazy(self, make_client, requests_seen):
        client = make_client(paged([[_item(1)]]))

        client.events.list()

        assert requests_seen == []

    def test_query_parameters_on_first_page_only(self, make_client, requests_seen):
        client = make_client(paged([[_item(1)]]))

        it = client.events.list(
            begin=datetime(2024, 1, 15, 10, 0, 0, tzinfo=timezone.utc),
            ascending=True,
            limit=25,
            filters={"event": "stored"},
        )
        list(it)

        params = requests_seen[0].url.params
        assert params["begin"] == "Mon, 15 Jan 2024 10:00:00 +0000"
        assert params["ascending"] == "yes"
        assert params["limit"] == "25"
        assert params["event"] == "stored"
        assert not requests_seen[1].url.params

    def test_error_is_kept_not_raised(self, make_client):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(200, json={"items": [_item(1)], "paging": {"next": NEXT_1}})
            return httpx.Response(500, json={"message": "internal error"})

        client = make_client(handler)

        it = client.events.list()
        pages = list(it)

        assert len(pages) == 1
        assert isinstance(it.error, APIError)
        assert str(it.error) == "internal error"
        assert it.next_page() is False
        assert len(calls) == 2

    def test_undecodable_page_is_kept_as_error(self, make_client):
        bad = {"id": "id-2", "event": "delivered", "timestamp": "nope"}
        client = make_client(paged([[_item(1)], [bad]]))

        it = client.events.list()
        pages = list(it)

        assert [[e.id for e in page] for page in pages] == [["id-1"]]
        assert isinstance(it.error, MailgunError)
        assert "failed to decode events page" in str(it.error)
        assert it.page == []

    def test_next_page(self, make_client):
        client = make_client(paged([[_item(1)]]))

        it = client.events.list()

        assert it.next_page() is True
        assert [e.id for e in it.page] == ["id-1"]
        assert it.next_page() is False
        assert it.page == []
        assert it.next_page() is False

    def test_each_list_restarts(self, make_client, requests_seen):
        client = make_client(paged([[_item(1)]]))

        first = list(client.events.list())
        second = list(client.events.list())

        assert [[e.id for e in p] for p in first] == [[e.id for e in p] for p in second]


class TestEvent:
    def test_from_json(self):
        event = Event.from_json(
            {
                "id": "abc",
                "event": "stored",
                "timestamp": 1705312800.0,
                "storage": {"url": "https://storage.test/messages/KEY", "key": "KEY"},
            }
        )

        assert event.event == "stored"
        assert event.timestamp == datetime(2024, 1, 15, 10, 0, 0, tzinfo=timezone.utc)
        assert event.storage_url == "https://storage.test/messages/KEY"
        assert event.storage_key == "KEY"

    def test_missing_storage(self):
        event = Event.from_json({"id": "abc", "event": "delivered"})

        assert event.timestamp is None
        assert event.storage_url is None
