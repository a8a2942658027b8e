"""
Async client for the Fastalert REST API.

Every outbound backend call goes through FastalertClient.request(), which:
- Attaches the caller's credential as the X-API-KEY header on each request
- Normalizes the backend's success envelope to APIResponse
- Maps backend error shapes onto a small exception hierarchy

Error mapping:

    422 response              -> FastalertValidationError (code VALIDATION_ERROR)
    any other error response  -> FastalertAPIError (fault string / error code)
    no response at all        -> the httpx.TransportError, unchanged

A client holds exactly one active credential. One instance is meant to serve
one caller, so the MCP tools create a fresh client per invocation and call
configure() before the first request.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = "No message provided"


class FastalertError(Exception):
    """
    Base class for errors raised by the API client.

    Attributes:
        message: Human-readable description, shown to the MCP caller
        code: Backend error code, when the backend supplied one
        status_code: HTTP status of the failed response, if any
    """

    def __init__(self, message: str, code: str | None = None, status_code: int | None = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)


class CredentialNotConfiguredError(FastalertError):
    """Raised when a request is attempted before configure() was called."""


class FastalertAPIError(FastalertError):
    """The backend answered with an error response."""


class FastalertValidationError(FastalertAPIError):
    """The backend rejected the payload with 422 Unprocessable Entity."""

    def __init__(self, message: str):
        super().__init__(message, code="VALIDATION_ERROR", status_code=422)


@dataclass(frozen=True)
class APIResponse:
    """Normalized success envelope returned by every client call."""

    status: Any
    message: Any
    data: Any = None


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _validation_message(body: Any) -> str:
    # errors > fault.detail > message, first non-empty wins
    detail = None
    if isinstance(body, dict):
        fault = body.get("fault")
        detail = (
            body.get("errors")
            or (fault.get("detail") if isinstance(fault, dict) else None)
            or body.get("message")
        )
    if not detail:
        detail = "Validation error occurred"
    if isinstance(detail, (dict, list)):
        detail = json.dumps(detail, indent=2)
    return f"Validation Error: {detail}"


def _api_error(response: httpx.Response) -> FastalertAPIError:
    body = _json_or_none(response)
    if response.status_code == 422:
        return FastalertValidationError(_validation_message(body))

    fault = body.get("fault") if isinstance(body, dict) else None
    if not isinstance(fault, dict):
        fault = {}
    detail = fault.get("detail")
    code = detail.get("errorcode") if isinstance(detail, dict) else None
    return FastalertAPIError(
        fault.get("faultstring") or "API request failed",
        code=code,
        status_code=response.status_code,
    )


class FastalertClient:
    """Thin async wrapper around the Fastalert REST API."""

    def __init__(
        self,
        api_url: str,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ):
        self.base_url = api_url.rstrip("/") + "/v1"
        self._api_key: str | None = None
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Content-Type": "application/json", "IS-MCP-API": "true"},
            transport=transport,
            timeout=timeout,
        )

    async def __aenter__(self) -> "FastalertClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def configure(self, token: str) -> None:
        """Replace the credential used by every subsequent request."""
        self._api_key = token

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> APIResponse:
        """
        Perform one backend call and normalize its envelope.

        The configured credential is merged last, so a caller-supplied
        X-API-KEY header never replaces it.

        Raises:
            CredentialNotConfiguredError: configure() was never called
            FastalertValidationError: the backend answered 422
            FastalertAPIError: the backend answered with any other error
            httpx.TransportError: no response was received
        """
        if self._api_key is None:
            raise CredentialNotConfiguredError("No API credential configured for this client")

        request_headers = {
            key: value
            for key, value in (headers or {}).items()
            if key.lower() != "x-api-key"
        }
        request_headers["X-API-KEY"] = self._api_key
        response = await self._http.request(
            method.upper(),
            path,
            json=body,
            params=params,
            headers=request_headers,
        )

        if response.is_error:
            error = _api_error(response)
            logger.warning(
                "Fastalert API request failed",
                extra={
                    "log_data": {
                        "method": method.upper(),
                        "path": path,
                        "status_code": response.status_code,
                        "error_code": error.code,
                    }
                },
            )
            raise error

        payload = _json_or_none(response)
        if not isinstance(payload, dict):
            payload = {}
        status = payload.get("status")
        message = payload.get("message")
        return APIResponse(
            status=True if status is None else status,
            message=DEFAULT_MESSAGE if message is None else message,
            data=payload.get("data"),
        )

    async def search_channels(self, query: dict[str, Any] | None = None) -> APIResponse:
        """List the organization's channels, optionally filtered by name."""
        return await self.request("get", "/organization/channels", params=query or {})

    async def send_message(
        self, message: dict[str, Any], headers: dict[str, str] | None = None
    ) -> APIResponse:
        """Broadcast a message to one or more channels."""
        return await self.request("post", "/send-message", body=message, headers=headers)
