"""Stored event listing."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import TYPE_CHECKING, Any

from .exceptions import MailgunError

if TYPE_CHECKING:
    from .client import MailgunClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    """A single entry from the events log."""

    id: str
    event: str
    timestamp: datetime | None
    raw: dict[str, Any] = field(repr=False, default_factory=dict)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> Event:
        ts = data.get("timestamp")
        return cls(
            id=data.get("id", ""),
            event=data.get("event", ""),
            timestamp=datetime.fromtimestamp(float(ts), tz=timezone.utc) if ts is not None else None,
            raw=data,
        )

    @property
    def storage_url(self) -> str | None:
        """URL of the stored message, for ``stored`` events."""
        return (self.raw.get("storage") or {}).get("url")

    @property
    def storage_key(self) -> str | None:
        return (self.raw.get("storage") or {}).get("key")


class EventIterator:
    """Lazy walk over pages of events.

    Pages are fetched on demand. Iteration ends on the first empty page or
    on an error; the error is kept in :attr:`error` rather than raised, so
    check it once the loop is done::

        it = client.events.list()
        for page in it:
            ...
        if it.error:
            raise it.error
    """

    def __init__(self, client: MailgunClient, path: str, params: dict[str, Any] | None = None):
        self._client = client
        self._next_url: str | None = path
        self._params = params
        self.page: list[Event] = []
        self.error: MailgunError | None = None

    def next_page(self) -> bool:
        """Fetch the next page into :attr:`page`.

        Returns:
            True if a non-empty page was fetched, False when the sequence is
            exhausted or failed.
        """
        if self._next_url is None or self.error is not None:
            return False

        try:
            data = self._client._request("GET", self._next_url, params=self._params)
            page = _decode_page(data)
        except MailgunError as e:
            logger.warning("Listing events failed: %s", e)
            self.error = e
            self._next_url = None
            self.page = []
            return False

        # the paging URLs already carry the query
        self._params = None
        self.page = page
        logger.debug("Fetched %d events", len(self.page))
        if not self.page:
            self._next_url = None
            return False

        self._next_url = (data.get("paging") or {}).get("next")
        return True

    def __iter__(self) -> Iterator[list[Event]]:
        while self.next_page():
            yield self.page


def _decode_page(data: dict[str, Any]) -> list[Event]:
    try:
        return [Event.from_json(item) for item in data.get("items") or []]
    except (TypeError, ValueError, AttributeError, OverflowError, OSError) as e:
        raise MailgunError(f"failed to decode events page: {e}") from e


class EventsResource:
    """Events API resource."""

    def __init__(self, client: MailgunClient):
        self._client = client

    def list(
        self,
        begin: datetime | None = None,
        end: datetime | None = None,
        ascending: bool | None = None,
        limit: int | None = None,
        filters: dict[str, str] | None = None,
    ) -> EventIterator:
        """List events.

        Nothing is fetched until the returned iterator is consumed. Each call
        starts an independent walk from the first page.

        Args:
            begin: Start of the time range.
            end: End of the time range.
            ascending: Sort order of the results.
            limit: Page size (max 300).
            filters: Field filters, e.g. ``{"event": "stored"}``.

        Returns:
            Iterator over event pages.
        """
        params: dict[str, Any] = {}
        if begin is not None:
            params["begin"] = format_datetime(_as_utc(begin))
        if end is not None:
            params["end"] = format_datetime(_as_utc(end))
        if ascending is not None:
            params["ascending"] = "yes" if ascending else "no"
        if limit is not None:
            params["limit"] = limit
        if filters:
            params.update(filters)

        return EventIterator(self._client, f"/{self._client.domain}/events", params or None)


def _as_utc(when: datetime) -> datetime:
    return when.replace(tzinfo=timezone.utc) if when.tzinfo is None else when
