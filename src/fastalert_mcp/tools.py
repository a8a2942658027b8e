"""
MCP tool definitions for the Fastalert API.

Two tools are exposed:

    list_channels(name?)                     -> GET  /organization/channels
    send_message(channel-uuid, title,        -> POST /send-message
                 content, action?, action_value?, image?)

Arguments are validated against the pydantic models below before any backend
call is made; the models' JSON schemas double as the tools' input schemas.

dispatch() never raises. Validation failures, unknown tool names, backend
errors and transport errors all come back as an error ToolResult whose text
starts with "❌ Error:", so the MCP connection stays usable.
"""

import json
import logging
from collections.abc import Callable
from typing import Any, Literal

from fastmcp.tools import Tool, ToolResult
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from fastalert_mcp.auth import AuthError, current_credential
from fastalert_mcp.client import APIResponse, FastalertClient

logger = logging.getLogger(__name__)


class ListChannelsArgs(BaseModel):
    name: str | None = Field(default=None, description="Optional channel name")


class SendMessageArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    channel_uuid: list[str] = Field(
        alias="channel-uuid",
        min_length=1,
        description="UUIDs of the channels to broadcast to",
    )
    title: str
    content: str
    action: Literal["call", "email", "website", "image"] | None = None
    action_value: str | None = None
    image: str | None = None


class UnknownToolError(Exception):
    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}")


TOOL_DESCRIPTIONS: dict[str, str] = {
    "list_channels": "List all channels, optionally filtered by name.",
    "send_message": "Send a message to one or more channels.",
}

TOOL_ARGUMENTS: dict[str, type[BaseModel]] = {
    "list_channels": ListChannelsArgs,
    "send_message": SendMessageArgs,
}


def format_response(response: APIResponse) -> str:
    """Render a normalized API response as the text block returned to the caller."""
    data = response.data
    if data is None:
        formatted = ""
    elif isinstance(data, list):
        formatted = "\n".join(f"• {json.dumps(item)}" for item in data)
    elif isinstance(data, str):
        formatted = data
    else:
        formatted = json.dumps(data, indent=2)

    text = f'{{ "status": {json.dumps(response.status)},\n  "message": "{response.message}", \n'
    if formatted:
        text += f'"data": {formatted}'
    return text + "}"


def error_result(error: Exception) -> ToolResult:
    message = getattr(error, "message", None) or str(error)
    return ToolResult(content=f"❌ Error: {message}", is_error=True)


async def dispatch(
    name: str, arguments: dict[str, Any] | None, client: FastalertClient
) -> ToolResult:
    """
    Validate the arguments of a tool call and run it against the backend.

    Args:
        name: Tool name ("list_channels" or "send_message")
        arguments: Raw arguments from the tools/call request
        client: A FastalertClient already configured with the caller's credential

    Returns:
        The formatted result, or an error result describing the failure
    """
    arguments = arguments or {}
    try:
        if name == "list_channels":
            args = ListChannelsArgs.model_validate(arguments)
            response = await client.search_channels(args.model_dump(exclude_none=True))
        elif name == "send_message":
            args = SendMessageArgs.model_validate(arguments)
            response = await client.send_message(
                args.model_dump(by_alias=True, exclude_none=True)
            )
        else:
            raise UnknownToolError(name)
    except Exception as e:
        logger.warning(
            "Tool call failed",
            extra={
                "log_data": {
                    "tool": name,
                    "error_type": type(e).__name__,
                    "error": str(e),
                }
            },
        )
        return error_result(e)

    logger.info("Tool executed: %s", name)
    return ToolResult(content=format_response(response))


class FastalertTool(Tool):
    """
    A Fastalert API operation exposed as an MCP tool.

    Each invocation opens its own FastalertClient configured with the
    credential of the request being served, so no credential is shared
    between callers.
    """

    _client_factory: Callable[[], FastalertClient] = PrivateAttr()
    _validity_seconds: int = PrivateAttr(default=3600)

    @classmethod
    def create(
        cls,
        name: str,
        client_factory: Callable[[], FastalertClient],
        validity_seconds: int = 3600,
    ) -> "FastalertTool":
        tool = cls(
            name=name,
            description=TOOL_DESCRIPTIONS[name],
            parameters=TOOL_ARGUMENTS[name].model_json_schema(by_alias=True),
        )
        tool._client_factory = client_factory
        tool._validity_seconds = validity_seconds
        return tool

    async def run(self, arguments: dict[str, Any]) -> ToolResult:
        try:
            credential = current_credential(self._validity_seconds)
        except AuthError as e:
            return error_result(e)

        async with self._client_factory() as client:
            client.configure(credential.token)
            return await dispatch(self.name, arguments, client)
