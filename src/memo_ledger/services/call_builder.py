"""Fluent request builder for Horizon-style ledger query endpoints.

A ``CallBuilder`` accumulates path segments, at most one filter, and the
paging query parameters (``cursor``, ``limit``, ``order``, ``join``), then
issues a single GET and normalises the JSON document into either a record
or a ``CollectionPage``.

Records are plain dicts. Each ``_links`` entry is reified in place as a
``Relation`` under the link name; following a relation is an explicit
``await builder.resolve(record["ledger"])``. Relations for side-loaded
resources (see ``JOINABLE``) carry their embedded record and resolve
without a network round trip.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Self

import httpx
import uritemplate

from memo_ledger.services.errors import (
    BadResponseError,
    ConfigurationError,
    NetworkError,
    check_response,
)
from memo_ledger.services.stream import Subscription

# Configure logger for this module
logger = logging.getLogger(__name__)

# Resources which can be included in a response via the `join` query-param.
JOINABLE = ("transaction",)
JOIN_VALUES = ("transactions",)
ORDER_VALUES = ("asc", "desc")

DEFAULT_RECONNECT_TIMEOUT = 15.0


@dataclass(frozen=True)
class Relation:
    """A link from a record to a related resource.

    Attributes:
        href: Target URI, possibly an RFC 6570 template.
        templated: True when ``href`` must be expanded before use.
        embedded: Parsed side-loaded record, or None when the relation
            has to be fetched.
    """

    href: str
    templated: bool = False
    embedded: dict[str, Any] | None = None

    @property
    def is_embedded(self) -> bool:
        return self.embedded is not None


@dataclass
class CollectionPage:
    """One page of a paginated collection.

    ``next()`` and ``prev()`` follow this page's own paging links and
    return a new page; nothing is cached between pages.
    """

    records: list[dict[str, Any]]
    links: Mapping[str, Any]
    builder: CallBuilder = field(repr=False, compare=False)

    async def next(self) -> CollectionPage:
        return await self.builder.follow_page(self._page_href("next"))

    async def prev(self) -> CollectionPage:
        return await self.builder.follow_page(self._page_href("prev"))

    def _page_href(self, name: str) -> str:
        link = self.links.get(name)
        if not isinstance(link, Mapping) or not link.get("href"):
            raise BadResponseError(f"Collection page has no '{name}' link", response=dict(self.links))
        return str(link["href"])


def _split_segments(path: str) -> list[str]:
    return [segment for segment in path.split("/") if segment]


class CallBuilder:
    """Base request builder; concrete builders add the resource path and filters."""

    def __init__(self, server_url: str | httpx.URL, client: httpx.AsyncClient) -> None:
        self.url = httpx.URL(str(server_url))
        self.client = client
        self.filter: list[list[str]] = []
        self.original_segments: list[str] = _split_segments(self.url.path)
        self.segments: list[str] = list(self.original_segments)
        self.query: dict[str, str] = {}

    def add_segments(self, *segments: str | int) -> Self:
        """Append resource path segments after the server's own path."""
        self.segments.extend(str(segment) for segment in segments)
        return self

    def add_filter(self, *segments: str | int) -> Self:
        """Push a candidate filter path; cardinality is checked at execution."""
        self.filter.append([str(segment) for segment in segments])
        return self

    def cursor(self, cursor: str) -> Self:
        self.query["cursor"] = str(cursor)
        return self

    def limit(self, records_number: int) -> Self:
        if records_number < 1:
            raise ConfigurationError("Limit must be a positive number", records_number)
        self.query["limit"] = str(records_number)
        return self

    def order(self, direction: str) -> Self:
        if direction not in ORDER_VALUES:
            raise ConfigurationError(f"Order must be one of {ORDER_VALUES}", direction)
        self.query["order"] = direction
        return self

    def join(self, include: str) -> Self:
        if include not in JOIN_VALUES:
            raise ConfigurationError(f"Join must be one of {JOIN_VALUES}", include)
        self.query["join"] = include
        return self

    def _check_filter(self) -> list[str]:
        if len(self.filter) >= 2:
            raise ConfigurationError("Too many filters specified", self.filter)
        if len(self.filter) == 1:
            return self.original_segments + self.filter[0]
        return self.segments

    def build_url(self) -> httpx.URL:
        """Freeze the builder state into the URL that ``call()`` will GET.

        Raises:
            ConfigurationError: If more than one filter has been added.
        """
        segments = self._check_filter()
        path = "/" + "/".join(segments)
        return self.url.copy_with(path=path, params=self.query)

    async def call(self) -> dict[str, Any] | CollectionPage:
        """Trigger a HTTP request using this builder's current configuration."""
        url = self.build_url()
        body = await self._send_normal_request(url)
        return self._parse_response(body)

    def stream(
        self,
        on_message: Callable[[dict[str, Any]], Awaitable[None] | None],
        on_error: Callable[[Exception], Awaitable[None] | None] | None = None,
        reconnect_timeout: float = DEFAULT_RECONNECT_TIMEOUT,
    ) -> Subscription:
        """Open a reconnecting server-sent-event subscription for this request.

        Must be called from a running event loop. Returns the subscription;
        call ``close()`` on it to stop listening.
        """
        self._check_filter()
        subscription = Subscription(self, on_message, on_error, reconnect_timeout)
        subscription.start()
        return subscription

    async def resolve(
        self,
        relation: Relation,
        params: Mapping[str, Any] | None = None,
    ) -> dict[str, Any] | CollectionPage:
        """Follow a relation, returning the embedded record when it was side-loaded."""
        if relation.embedded is not None:
            return relation.embedded

        if relation.templated:
            href = uritemplate.expand(relation.href, dict(params or {}))
        else:
            href = relation.href
        body = await self._send_normal_request(httpx.URL(href))
        return self._parse_response(body)

    async def follow_page(self, href: str) -> CollectionPage:
        body = await self._send_normal_request(httpx.URL(href))
        return self._to_collection_page(body)

    def parse_record(self, json: dict[str, Any]) -> dict[str, Any]:
        """Replace each ``_links`` entry with a ``Relation`` under the link name."""
        links = json.get("_links")
        if not isinstance(links, Mapping):
            return json

        for key, link in links.items():
            if not isinstance(link, Mapping) or "href" not in link:
                continue
            href = str(link["href"])
            templated = bool(link.get("templated", False))

            included = key in json
            # If the key with the link name already exists, keep a copy
            if included:
                json[f"{key}_attr"] = json[key]

            # Only allow-listed keys are real side-loads; fields such as
            # `ledger` share a link name without being the linked resource.
            if included and key in JOINABLE and isinstance(json[key], dict):
                embedded = self.parse_record(dict(json[key]))
                json[key] = Relation(href=href, templated=templated, embedded=embedded)
            else:
                json[key] = Relation(href=href, templated=templated)
        return json

    def _parse_response(self, json: Any) -> dict[str, Any] | CollectionPage:
        if not isinstance(json, dict):
            raise BadResponseError("Expected a JSON document", response=json)
        embedded = json.get("_embedded")
        if isinstance(embedded, Mapping) and "records" in embedded:
            return self._to_collection_page(json)
        return self.parse_record(json)

    def _to_collection_page(self, json: Any) -> CollectionPage:
        if not isinstance(json, dict):
            raise BadResponseError("Expected a JSON document", response=json)
        embedded = json.get("_embedded")
        if not isinstance(embedded, Mapping) or not isinstance(embedded.get("records"), list):
            raise BadResponseError("Response is not a collection page", response=json)
        records = [self.parse_record(record) for record in embedded["records"]]
        links = json.get("_links")
        return CollectionPage(
            records=records,
            links=links if isinstance(links, Mapping) else {},
            builder=self,
        )

    async def _send_normal_request(self, url: httpx.URL) -> Any:
        # Relative links inherit scheme and host from the server URL.
        target = self.url.join(url)
        logger.debug("GET %s", target)
        try:
            response = await self.client.get(target)
        except httpx.HTTPError as exc:
            raise NetworkError(f"Request to {target} failed: {exc}") from exc
        return check_response(response)
