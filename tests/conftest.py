"""
Pytest fixtures for connector testing.
Provides settings, a recording sleep and an in-memory EDC/data-plane fake.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from edc_connector.core.config import Settings
from edc_connector.edc.auth import ApiKeyAuth
from edc_connector.edc.models import ConnectorRequest

MANAGEMENT_URL = "http://mgmt/management"
PROVIDER_URL = "http://prov"


class FakeEDC:
    """
    Routes requests by (method, absolute URL) to queued responses.

    Each route keeps its last response once the queue is drained, so a
    polled endpoint can answer the same state indefinitely. Unknown routes
    answer 404.
    """

    def __init__(self) -> None:
        self._routes: dict[tuple[str, str], list[dict[str, Any]]] = {}
        self.requests: list[httpx.Request] = []

    def add(
        self,
        method: str,
        url: str,
        status: int = 200,
        *,
        json_body: Any = None,
        text: str | None = None,
    ) -> FakeEDC:
        self._routes.setdefault((method, url), []).append(
            {"status": status, "json": json_body, "text": text}
        )
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self._routes.get((request.method, str(request.url)))
        if not queue:
            return httpx.Response(404, json={"error": "no route"})
        entry = queue.pop(0) if len(queue) > 1 else queue[0]
        if entry["text"] is not None:
            return httpx.Response(entry["status"], text=entry["text"])
        if entry["json"] is not None:
            return httpx.Response(entry["status"], json=entry["json"])
        return httpx.Response(entry["status"])

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def requests_to(self, method: str, url: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and str(r.url) == url]

    @staticmethod
    def body(request: httpx.Request) -> Any:
        return json.loads(request.content)


@pytest.fixture
def fake_edc() -> FakeEDC:
    return FakeEDC()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, edc_poll_interval_seconds=1.0)


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def record_sleep(sleeps: list[float]) -> Callable[[float], None]:
    return sleeps.append


@pytest.fixture
def connector_request() -> ConnectorRequest:
    return ConnectorRequest(
        management_url=MANAGEMENT_URL,
        provider_url=PROVIDER_URL,
        provider_id="did:web:provider",
        asset_id="asset-1",
        authentication=ApiKeyAuth(api_key="k1"),
        timeout_seconds=5,
    )
