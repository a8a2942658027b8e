"""
Bearer credential gate for the MCP endpoint.

This module handles the Authentication (AuthN) layer:
- Extracts the credential from the HTTP Authorization header
- Rejects requests without a header, or with a blank credential
- Builds the credential context (TokenInfo) the tools use to call the backend

The gate performs no signature check and no registry lookup: any non-blank
bearer string is accepted and forwarded to the Fastalert backend, which is
the party that actually validates it. Token introspection would slot into
authenticate() if the server ever needs to verify tokens itself.

Rejections:

    no Authorization header          -> 401 {"error": {"code": "unauthorized", ...,
                                                       "authorization_url": ...}}
    "Bearer " followed by blank text -> 401 {"error": {"code": "invalid_token", ...}}
"""

import logging
import time
from dataclasses import dataclass, field

from fastmcp.server.dependencies import get_http_request
from starlette.datastructures import Headers
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "

# Label attached to every accepted credential
CREDENTIAL_CLIENT_ID = "fastalert-client"

# request.state attribute holding the accepted TokenInfo
STATE_KEY = "fastalert_auth"


class AuthError(Exception):
    """
    Raised when the request gate rejects a request.

    Attributes:
        code: "unauthorized" (no credential) or "invalid_token" (blank credential)
        message: Human-readable error description
        status_code: HTTP status code to return (401 for gate failures)
        authorization_url: Where to start the OAuth flow, for "unauthorized"
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 401,
        authorization_url: str | None = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.authorization_url = authorization_url
        super().__init__(message)

    def to_dict(self) -> dict:
        error = {"code": self.code, "message": self.message}
        if self.authorization_url:
            error["authorization_url"] = self.authorization_url
        return {"error": error}


@dataclass(frozen=True)
class TokenInfo:
    """
    Credential context attached to an accepted request.

    Attributes:
        token: The bearer string, forwarded to the backend as-is
        client_id: Fixed label for the caller
        scopes: Always empty; scopes are not modelled
        expires_at: Unix timestamp after which the context is stale
    """

    token: str
    client_id: str = CREDENTIAL_CLIENT_ID
    scopes: tuple[str, ...] = field(default_factory=tuple)
    expires_at: int = 0


def authenticate(
    authorization_header: str | None,
    authorization_url: str | None = None,
    validity_seconds: int = 3600,
) -> TokenInfo:
    """
    Validate the Authorization header of an MCP request.

    Args:
        authorization_header: The raw header value, usually "Bearer <token>"
        authorization_url: Hint returned to callers that sent no header
        validity_seconds: Lifetime recorded on the credential context

    Returns:
        TokenInfo carrying the credential

    Raises:
        AuthError: If the header is missing or the credential is blank
    """
    if not authorization_header:
        raise AuthError(
            "unauthorized",
            "Access token required",
            authorization_url=authorization_url,
        )

    token = authorization_header
    if token.startswith(BEARER_PREFIX):
        token = token[len(BEARER_PREFIX):]

    if not token.strip():
        raise AuthError("invalid_token", "Empty token")

    return TokenInfo(token=token, expires_at=int(time.time()) + validity_seconds)


class RequestGateMiddleware:
    """
    ASGI middleware that gates POST requests to the MCP endpoint.

    Exactly one authenticate() call per gated request. Rejected requests are
    answered here with a 401 JSON body; accepted ones continue with the
    TokenInfo stored on request.state. Every other request passes through.
    """

    def __init__(
        self,
        app: ASGIApp,
        authorization_url: str,
        path: str = "/mcp",
        validity_seconds: int = 3600,
    ):
        self.app = app
        self.authorization_url = authorization_url
        self.path = path.rstrip("/")
        self.validity_seconds = validity_seconds

    def _is_gated(self, scope: Scope) -> bool:
        return (
            scope["type"] == "http"
            and scope["method"] == "POST"
            and scope["path"].rstrip("/") == self.path
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if not self._is_gated(scope):
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        try:
            token_info = authenticate(
                headers.get("authorization"),
                self.authorization_url,
                self.validity_seconds,
            )
        except AuthError as e:
            logger.warning(
                "Authentication failed",
                extra={
                    "log_data": {
                        "decision": "rejected",
                        "reason": e.code,
                    }
                },
            )
            response = JSONResponse(e.to_dict(), status_code=e.status_code)
            await response(scope, receive, send)
            return

        logger.info(
            "Authentication successful",
            extra={
                "log_data": {
                    "client_id": token_info.client_id,
                    "expires_at": token_info.expires_at,
                    "decision": "authenticated",
                }
            },
        )
        scope.setdefault("state", {})[STATE_KEY] = token_info
        await self.app(scope, receive, send)


def current_credential(validity_seconds: int = 3600) -> TokenInfo:
    """
    Return the credential context of the MCP request being handled.

    Reads what RequestGateMiddleware stored on request.state, and falls back
    to evaluating the request's Authorization header.

    Raises:
        AuthError: If there is no HTTP request or it carries no usable credential
    """
    try:
        request = get_http_request()
    except RuntimeError:
        raise AuthError("unauthorized", "No HTTP request in context")

    token_info = getattr(request.state, STATE_KEY, None)
    if isinstance(token_info, TokenInfo):
        return token_info
    return authenticate(request.headers.get("authorization"), validity_seconds=validity_seconds)
