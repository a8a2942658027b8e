"""
Shared test fixtures for the Fastalert MCP test suite.

Key fixtures:
- settings: A Settings instance pointing at a fake backend (no .env lookup)
- registry / gateway: A fresh ClientRegistry and the AuthorizationGateway over it
- backend: A scriptable fake of the Fastalert API, served through
  httpx.MockTransport so no network is used
- make_client: Factory for FastalertClient instances wired to the fake backend

Testing approach:
- test_client.py: FastalertClient envelope normalization and error mapping
- test_oauth.py: Registration, exchange and metadata on the gateway
- test_auth.py: authenticate() and the ASGI request gate
- test_tools.py: Argument validation, dispatch and result formatting
- test_server.py: The assembled ASGI app over HTTP (httpx.ASGITransport)
"""

import json

import httpx
import pytest

from fastalert_mcp.client import FastalertClient
from fastalert_mcp.config import Settings
from fastalert_mcp.oauth import AuthorizationGateway, ClientRegistry

API_URL = "https://api.fastalert.test"
BASE_URL = "http://mcp.fastalert.test"
FRONT_URL = "http://front.fastalert.test"


class FakeBackend:
    """
    Stand-in for the Fastalert API.

    Routes are registered with reply(); every request the client sends is
    recorded in `requests`. Unregistered routes answer 404 with a fault body.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], dict | Exception] = {}

    def reply(self, method: str, path: str, status_code: int = 200, body: object = None, content: bytes | None = None):
        if content is not None:
            outcome = {"status_code": status_code, "content": content}
        else:
            outcome = {"status_code": status_code, "json": body}
        self._routes[(method.upper(), "/v1" + path)] = outcome

    def fail(self, method: str, path: str, error: Exception):
        self._routes[(method.upper(), "/v1" + path)] = error

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self._routes.get((request.method, request.url.path))
        if outcome is None:
            return httpx.Response(404, json={"fault": {"faultstring": "Not found"}})
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(**outcome)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def last_json(self) -> object:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def settings():
    return Settings(
        api_url=API_URL,
        base_url=BASE_URL,
        front_url=FRONT_URL,
        _env_file=None,
    )


@pytest.fixture
def registry():
    return ClientRegistry()


@pytest.fixture
def gateway(settings, registry):
    return AuthorizationGateway(settings, registry)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
async def make_client(backend):
    """
    Factory fixture for FastalertClient instances bound to the fake backend.

    Usage in tests:
        async def test_something(make_client):
            client = make_client(token="abc")   # configured
            client = make_client(token=None)    # not configured
    """
    clients = []

    def _make_client(token: str | None = "test-token") -> FastalertClient:
        client = FastalertClient(API_URL, transport=backend.transport)
        if token is not None:
            client.configure(token)
        clients.append(client)
        return client

    yield _make_client

    for client in clients:
        await client.aclose()
