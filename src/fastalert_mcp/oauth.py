"""
Minimal OAuth authorization server: client registration, login redirect,
code exchange and discovery metadata.

Flow:

    1. POST /register   -> AuthorizationGateway.register()  stores a RegisteredClient
    2. GET  /login      -> AuthorizationGateway.authorize_redirect()  302 to the front-end
    3. POST /token      -> AuthorizationGateway.exchange()  pops the record, returns a credential

The code accepted by exchange() is a registered client_id: the registry holds
one record per client and that record doubles as the authorization code. The
record is removed on exchange, so each code works once.

Registration never fills the access_token / expires_at slots of the record,
so exchange() currently answers with a null access token and a null lifetime.
No other code path writes those slots.
"""

import logging
import random
import string
import time
from dataclasses import asdict, dataclass, field
from urllib.parse import urlencode

from pydantic import BaseModel, Field, ValidationError

from fastalert_mcp.config import Settings

logger = logging.getLogger(__name__)

# client_id used in the authorization hint returned by the request gate
GATE_CLIENT_ID = "mcp-server"


class OAuthError(Exception):
    """
    An OAuth protocol error, rendered as {"error", "error_description"}.

    Attributes:
        error: RFC 6749 / RFC 7591 error code (e.g. "invalid_grant")
        description: Human-readable explanation
        status_code: HTTP status to answer with
    """

    def __init__(self, error: str, description: str, status_code: int = 400):
        self.error = error
        self.description = description
        self.status_code = status_code
        super().__init__(f"{error}: {description}")

    def to_dict(self) -> dict:
        return {"error": self.error, "error_description": self.description}


class RegistrationRequest(BaseModel):
    """Client metadata accepted by POST /register (RFC 7591 subset)."""

    redirect_uris: list[str] = Field(min_length=1)
    client_name: str | None = None
    grant_types: list[str] | None = None
    response_types: list[str] | None = None
    token_endpoint_auth_method: str | None = None


@dataclass
class RegisteredClient:
    client_id: str
    client_secret: str
    redirect_uris: list[str]
    client_name: str = "Unnamed Client"
    grant_types: list[str] = field(default_factory=lambda: ["authorization_code"])
    response_types: list[str] = field(default_factory=lambda: ["code"])
    token_endpoint_auth_method: str = "client_secret_basic"
    client_id_issued_at: int = 0
    client_secret_expires_at: int = 0
    # Read by exchange(); nothing populates them yet.
    access_token: str | None = None
    token_type: str | None = None
    expires_at: float | None = None

    def to_dict(self) -> dict:
        """The registration response body (token slots excluded)."""
        data = asdict(self)
        for key in ("access_token", "token_type", "expires_at"):
            data.pop(key)
        return data


@dataclass(frozen=True)
class IssuedCredential:
    access_token: str | None
    token_type: str
    expires_in: int | None

    def to_dict(self) -> dict:
        return asdict(self)


class ClientRegistry:
    """In-memory store of registered clients, keyed by client_id."""

    def __init__(self):
        self._clients: dict[str, RegisteredClient] = {}

    def __contains__(self, client_id: object) -> bool:
        return client_id in self._clients

    def __len__(self) -> int:
        return len(self._clients)

    def add(self, client: RegisteredClient) -> None:
        self._clients[client.client_id] = client

    def get(self, client_id: str) -> RegisteredClient | None:
        return self._clients.get(client_id)

    def pop(self, client_id: str) -> RegisteredClient | None:
        return self._clients.pop(client_id, None)

    def clear(self) -> None:
        self._clients.clear()


def _new_client_id() -> str:
    return f"client-{int(time.time() * 1000)}-{random.randrange(1000)}"


def _new_client_secret() -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "secret-" + "".join(random.choices(alphabet, k=13))


class AuthorizationGateway:
    """Registration, login redirect and token exchange over a ClientRegistry."""

    def __init__(self, settings: Settings, registry: ClientRegistry):
        self.settings = settings
        self.registry = registry

    # --- endpoints advertised in discovery ---

    @property
    def issuer(self) -> str:
        return self.settings.base_url.rstrip("/")

    @property
    def authorization_endpoint(self) -> str:
        return f"{self.issuer}/login"

    @property
    def login_url(self) -> str:
        return f"{self.settings.front_url.rstrip('/')}/login"

    @property
    def token_endpoint(self) -> str:
        return self.settings.resolved_token_endpoint

    @property
    def registration_endpoint(self) -> str:
        return f"{self.issuer}/register"

    def metadata(self) -> dict:
        """Authorization server metadata (RFC 8414)."""
        return {
            "issuer": self.issuer,
            "authorization_endpoint": self.authorization_endpoint,
            "token_endpoint": self.token_endpoint,
            "registration_endpoint": self.registration_endpoint,
            "response_types_supported": ["code"],
        }

    def protected_resource_metadata(self) -> dict:
        """Protected resource metadata (RFC 9728) for the MCP endpoint."""
        return {
            "resource": self.issuer,
            "authorization_servers": [self.issuer],
        }

    def authorization_url(self) -> str:
        """Where a caller without a token should start the flow."""
        query = urlencode({"response_type": "code", "client_id": GATE_CLIENT_ID})
        return f"{self.authorization_endpoint}?{query}"

    # --- operations ---

    def register(self, body: object) -> RegisteredClient:
        """
        Register a client from a raw registration body.

        Raises:
            OAuthError: invalid_client_metadata when redirect_uris is missing,
                not a list or empty, or any field has the wrong type
        """
        if not isinstance(body, dict):
            raise OAuthError("invalid_client_metadata", "Registration body must be a JSON object")
        try:
            request = RegistrationRequest.model_validate(body)
        except ValidationError as e:
            bad_fields = {str(err["loc"][0]) for err in e.errors() if err["loc"]}
            if not bad_fields or "redirect_uris" in bad_fields:
                description = "redirect_uris is required and must be a non-empty array"
            else:
                description = f"Invalid client metadata: {', '.join(sorted(bad_fields))}"
            raise OAuthError("invalid_client_metadata", description)

        client_id = _new_client_id()
        while client_id in self.registry:
            client_id = _new_client_id()

        client = RegisteredClient(
            client_id=client_id,
            client_secret=_new_client_secret(),
            redirect_uris=request.redirect_uris,
            client_name=request.client_name or "Unnamed Client",
            grant_types=request.grant_types or ["authorization_code"],
            response_types=request.response_types or ["code"],
            token_endpoint_auth_method=request.token_endpoint_auth_method or "client_secret_basic",
            client_id_issued_at=int(time.time()),
            client_secret_expires_at=0,
        )
        self.registry.add(client)

        logger.info(
            "Client registered",
            extra={
                "log_data": {
                    "client_id": client.client_id,
                    "client_name": client.client_name,
                    "redirect_uris": client.redirect_uris,
                }
            },
        )
        return client

    def authorize_redirect(
        self,
        response_type: str | None,
        client_id: str | None,
        redirect_uri: str | None,
        state: str | None,
    ) -> str:
        """
        Build the front-end login URL for an authorization request.

        The parameters are forwarded as given. client_id is not checked
        against the registry and nothing is stored.
        """
        params = {
            "response_type": response_type,
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "state": state,
        }
        query = urlencode({k: v for k, v in params.items() if v is not None})
        return f"{self.login_url}?{query}" if query else self.login_url

    def exchange(self, code: object) -> IssuedCredential:
        """
        Exchange an authorization code for a credential. Each code works once.

        Raises:
            OAuthError: invalid_grant when the code is missing, unknown or used
        """
        client = self.registry.pop(code) if isinstance(code, str) and code else None
        if client is None:
            logger.warning(
                "Token exchange rejected",
                extra={"log_data": {"decision": "rejected", "reason": "invalid_grant"}},
            )
            raise OAuthError("invalid_grant", "Invalid or expired authorization code")

        expires_in = None
        if client.expires_at is not None:
            expires_in = int(client.expires_at - time.time())

        logger.info(
            "Authorization code exchanged",
            extra={
                "log_data": {
                    "client_id": client.client_id,
                    "decision": "issued",
                    "token_present": client.access_token is not None,
                }
            },
        )
        return IssuedCredential(
            access_token=client.access_token,
            token_type=client.token_type or "Bearer",
            expires_in=expires_in,
        )
