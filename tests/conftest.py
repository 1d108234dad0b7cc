"""
Shared fixtures for all tests.

Vendor HTTP APIs are faked with ``httpx.MockTransport``: a ``MockVendor`` routes
each request to canned responses by a key (``(method, path)`` by default) and
records every request so tests can assert which vendor calls were made.
"""

from collections.abc import AsyncGenerator, Callable, Hashable
from typing import Any
from urllib.parse import parse_qsl

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from provisioning.dependencies import get_transport_config
from provisioning.infra.http import TransportConfig


class MockVendor:
    """Canned vendor API: ``on(key, *responses)`` then hand ``transport`` to a client.

    A response is a JSON body (served with 200) or a ``(status, body)`` tuple.
    With several responses they are served in order and the last one repeats.
    Unrouted requests get a Linode-style 404.
    """

    def __init__(self) -> None:
        self.routes: dict[Hashable, list[Any]] = {}
        self.requests: list[httpx.Request] = []
        self.key: Callable[[httpx.Request], Hashable] = lambda request: (request.method, request.url.path)

    def on(self, key: Hashable, *responses: Any) -> "MockVendor":
        self.routes[key] = list(responses)
        return self

    def count(self, key: Hashable) -> int:
        return sum(1 for request in self.requests if self.key(request) == key)

    @property
    def transport(self) -> TransportConfig:
        return TransportConfig(connect_timeout=1, timeout=5, transport=httpx.MockTransport(self))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get(self.key(request))
        if not queue:
            return httpx.Response(404, json={"errors": [{"reason": "Not found"}]})

        response = queue.pop(0) if len(queue) > 1 else queue[0]
        status, body = response if isinstance(response, tuple) else (200, response)
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)


def form_action(request: httpx.Request) -> str:
    return dict(parse_qsl(request.content.decode()))["action"]


def query_act(request: httpx.Request) -> str:
    return request.url.params["act"]


@pytest.fixture
def vendor() -> MockVendor:
    return MockVendor()


@pytest.fixture
def solusvm_vendor() -> MockVendor:
    """Routes SolusVM form-RPC calls by their ``action`` field."""
    mock = MockVendor()
    mock.key = form_action
    return mock


@pytest.fixture
def virtualizor_vendor() -> MockVendor:
    """Routes Virtualizor calls by their ``act`` query parameter."""
    mock = MockVendor()
    mock.key = query_act
    return mock


@pytest_asyncio.fixture(scope="function")
async def client(vendor: MockVendor) -> AsyncGenerator[AsyncClient, None]:
    """Return an HTTPX AsyncClient wired to the test app; vendor calls hit ``vendor``."""
    from provisioning.main import create_app

    test_app = create_app()

    # No type annotations to avoid FastAPI inspection
    async def override_get_transport_config():  # type: ignore[no-untyped-def]
        return vendor.transport

    test_app.dependency_overrides[get_transport_config] = override_get_transport_config

    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac

    test_app.dependency_overrides.clear()
