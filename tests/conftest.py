# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from typing import Any
from urllib.parse import parse_qs

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from stellar_sdk import Keypair

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("SERVER_SECRET_SEED", Keypair.random().secret)

from memo_ledger.core.settings import settings
from memo_ledger.main import app as fastapi_app
from memo_ledger.services.horizon import HorizonServer

HORIZON_URL = "https://horizon.test"

Responder = Callable[[httpx.Request], httpx.Response]


class HorizonStub:
    """In-memory Horizon served through ``httpx.MockTransport``.

    Routes match on method, path and a subset of query params; the route
    with the most matching params wins. Unmatched requests get a 404.
    """

    def __init__(self, base_url: str = HORIZON_URL) -> None:
        self.base_url = base_url
        self.requests: list[httpx.Request] = []
        self._routes: list[tuple[str, str, dict[str, str], int, Any]] = []

    def add(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        status: int = 200,
        params: dict[str, str] | None = None,
    ) -> HorizonStub:
        self._routes.append((method.upper(), path, dict(params or {}), status, body))
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        candidates = [
            route
            for route in self._routes
            if route[0] == request.method
            and route[1] == request.url.path
            and all(request.url.params.get(key) == value for key, value in route[2].items())
        ]
        if not candidates:
            return httpx.Response(404, json={"title": "Resource Missing", "status": 404})

        _, _, _, status, body = max(candidates, key=lambda route: len(route[2]))
        if callable(body):
            return body(request)
        return httpx.Response(status, json=body)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def server(self) -> HorizonServer:
        return HorizonServer(self.base_url, client=self.client())

    def form(self, index: int = -1) -> dict[str, str]:
        """Decode the form body of a recorded request."""
        fields = parse_qs(self.requests[index].content.decode())
        return {key: values[0] for key, values in fields.items()}


def collection(records: list[dict[str, Any]], next_href: str, prev_href: str = "") -> dict[str, Any]:
    """Build a collection page document."""
    return {
        "_links": {
            "self": {"href": next_href},
            "next": {"href": next_href},
            "prev": {"href": prev_href or next_href},
        },
        "_embedded": {"records": records},
    }


@pytest.fixture()
def horizon() -> HorizonStub:
    return HorizonStub()


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def server_keypair() -> Keypair:
    """Keypair matching the configured SERVER_SECRET_SEED."""
    return Keypair.from_secret(settings.server_secret_seed)


@pytest.fixture()
def client_keypair() -> Keypair:
    return Keypair.random()
