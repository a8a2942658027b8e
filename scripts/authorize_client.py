"""
CLI utility that walks the OAuth flow against a running Fastalert MCP server.

It registers a client (POST /register), prints the login URL a user would
be sent to (GET /login), and exchanges the client_id as the authorization
code (POST /token).

Usage examples:

    # Register and exchange against a local server
    python -m scripts.authorize_client --redirect-uri http://localhost:8000/callback

    # Against a deployed server, with a display name
    python -m scripts.authorize_client --server https://mcp.fastalert.now \\
        --redirect-uri https://app.example.com/cb --client-name "Ops bot"

The server never writes an access token onto a registration record, so the
exchange currently prints "access_token: null". Use a Fastalert API token
directly with the MCP endpoint:

    curl -X POST http://localhost:3000/mcp \\
      -H "Content-Type: application/json" \\
      -H "Accept: application/json, text/event-stream" \\
      -H "Authorization: Bearer <token>" \\
      -d '{"jsonrpc":"2.0","id":1,"method":"tools/list","params":{}}'
"""

import argparse
import json
from urllib.parse import urlencode

import httpx


def run_flow(
    server: str,
    redirect_uri: str,
    client_name: str | None = None,
    state: str = "cli",
    http: httpx.Client | None = None,
) -> dict:
    """
    Register a client, build its login URL and exchange its code.

    Args:
        server: Base URL of the MCP server
        redirect_uri: Redirect URI to register
        client_name: Optional display name
        state: Opaque value forwarded through the login redirect
        http: Client to use (defaults to a new httpx.Client)

    Returns:
        {"registration": ..., "login_url": ..., "token": ...}

    Raises:
        httpx.HTTPStatusError: If registration or exchange is rejected
    """
    server = server.rstrip("/")
    owns_client = http is None
    http = http or httpx.Client()
    try:
        body: dict = {"redirect_uris": [redirect_uri]}
        if client_name:
            body["client_name"] = client_name
        response = http.post(f"{server}/register", json=body)
        response.raise_for_status()
        registration = response.json()

        query = urlencode(
            {
                "response_type": "code",
                "client_id": registration["client_id"],
                "redirect_uri": redirect_uri,
                "state": state,
            }
        )
        login_url = f"{server}/login?{query}"

        response = http.post(f"{server}/token", json={"code": registration["client_id"]})
        response.raise_for_status()
        return {"registration": registration, "login_url": login_url, "token": response.json()}
    finally:
        if owns_client:
            http.close()


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Register an OAuth client with the Fastalert MCP server and exchange its code.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Local server:
    %(prog)s --redirect-uri http://localhost:8000/callback

  Named client:
    %(prog)s --redirect-uri https://app.example.com/cb --client-name "Ops bot"
        """,
    )

    parser.add_argument(
        "--server",
        default="http://localhost:3000",
        help="Base URL of the MCP server (default: http://localhost:3000)",
    )
    parser.add_argument(
        "--redirect-uri",
        required=True,
        help="Redirect URI to register for the client",
    )
    parser.add_argument(
        "--client-name",
        default=None,
        help="Display name for the client",
    )
    parser.add_argument(
        "--state",
        default="cli",
        help="State value forwarded through the login redirect (default: cli)",
    )

    args = parser.parse_args()

    result = run_flow(args.server, args.redirect_uri, args.client_name, args.state)
    registration = result["registration"]

    print(f"Client ID:     {registration['client_id']}")
    print(f"Client secret: {registration['client_secret']}")
    print(f"Redirects:     {', '.join(registration['redirect_uris'])}")
    print()
    print(f"Login URL: {result['login_url']}")
    print()
    print("Token response:")
    print(json.dumps(result["token"], indent=2))


if __name__ == "__main__":
    main()
