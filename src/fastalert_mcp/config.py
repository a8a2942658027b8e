"""
Application configuration loaded from environment variables.

Uses pydantic-settings to define typed configuration that automatically reads
from environment variables (or a local .env file). Every variable carries the
FASTALERT_ prefix:

- FASTALERT_API_URL is the Fastalert backend base URL and has no default:
  the server refuses to start without it.
- FASTALERT_BASE_URL is the public URL of this server (the OAuth issuer).
- FASTALERT_FRONT_URL is the front-end that hosts the login page.
- FASTALERT_TOKEN_ENDPOINT overrides the advertised token endpoint.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Server configuration with environment variable bindings.

    Each field maps to an environment variable with the FASTALERT_ prefix.
    For example, `api_url` reads from FASTALERT_API_URL and `front_url`
    from FASTALERT_FRONT_URL.
    """

    # --- Backend ---

    # Base URL of the Fastalert API. The client appends "/v1" to it.
    api_url: str

    # Timeout (seconds) for outbound backend calls. None keeps the
    # transport default.
    request_timeout: float | None = None

    # --- Server ---

    host: str = "localhost"
    port: int = 3000
    log_level: str = "info"

    # --- OAuth ---

    # Public URL of this server, used as the OAuth issuer and to build the
    # registration endpoint.
    base_url: str = "http://localhost:3000"

    # Front-end that renders the login page the /login route redirects to.
    front_url: str = "http://localhost:5173"

    # Token endpoint advertised in the discovery document.
    # Defaults to "<api_url>/token" when unset.
    token_endpoint: str | None = None

    # Lifetime attached to credentials accepted by the request gate.
    token_validity_seconds: int = 3600

    # --- Streaming ---

    # Seconds between ": ping" comments on the GET /mcp event stream.
    heartbeat_interval: float = 15.0

    model_config = {
        "env_prefix": "FASTALERT_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        # The .env file may hold variables for other tools.
        "extra": "ignore",
    }

    @property
    def resolved_token_endpoint(self) -> str:
        return self.token_endpoint or f"{self.api_url.rstrip('/')}/token"


def load_settings() -> Settings:
    """Read the settings from the environment; raises if FASTALERT_API_URL is unset."""
    return Settings()
