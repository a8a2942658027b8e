"""
Tests for the OAuth flow CLI helper (scripts/authorize_client.py).

The helper is driven against an httpx.MockTransport that plays the MCP
server's /register and /token endpoints.
"""

import json
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from scripts.authorize_client import run_flow


def make_server(token_status: int = 200):
    """A fake MCP server; returns (transport, recorded requests)."""
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/register":
            body = json.loads(request.content)
            return httpx.Response(
                201,
                json={
                    "client_id": "client-1-2",
                    "client_secret": "secret-abc",
                    "redirect_uris": body["redirect_uris"],
                    "client_name": body.get("client_name", "Unnamed Client"),
                },
            )
        if request.url.path == "/token":
            if token_status != 200:
                return httpx.Response(token_status, json={"error": "invalid_grant"})
            return httpx.Response(
                200, json={"access_token": None, "token_type": "Bearer", "expires_in": None}
            )
        return httpx.Response(404)

    return httpx.MockTransport(handler), seen


class TestRunFlow:
    """Tests for run_flow()."""

    def test_registers_and_exchanges_client_id(self):
        transport, seen = make_server()

        with httpx.Client(transport=transport) as http:
            result = run_flow("http://mcp.test/", "http://localhost/cb", "Ops bot", state="s1", http=http)

        assert [(r.method, r.url.path) for r in seen] == [("POST", "/register"), ("POST", "/token")]
        assert json.loads(seen[0].content) == {
            "redirect_uris": ["http://localhost/cb"],
            "client_name": "Ops bot",
        }
        assert json.loads(seen[1].content) == {"code": "client-1-2"}
        assert result["registration"]["client_id"] == "client-1-2"
        assert result["token"]["token_type"] == "Bearer"

    def test_login_url_points_at_server(self):
        transport, _ = make_server()

        with httpx.Client(transport=transport) as http:
            result = run_flow("http://mcp.test", "http://localhost/cb", http=http)

        parts = urlsplit(result["login_url"])
        assert (parts.netloc, parts.path) == ("mcp.test", "/login")
        assert parse_qs(parts.query) == {
            "response_type": ["code"],
            "client_id": ["client-1-2"],
            "redirect_uri": ["http://localhost/cb"],
            "state": ["cli"],
        }

    def test_rejected_exchange_raises(self):
        transport, _ = make_server(token_status=400)

        with httpx.Client(transport=transport) as http:
            with pytest.raises(httpx.HTTPStatusError):
                run_flow("http://mcp.test", "http://localhost/cb", http=http)
