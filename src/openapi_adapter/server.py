"""MCP server setup for the OpenAPI Adapter."""

import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.tools.tool import Tool, ToolResult
from mcp.types import TextContent
from pydantic import PrivateAttr

from .client import ApiClient
from .compiler import SpecCompiler
from .config import Settings
from .models import Operation, RegistrationTable, ResourceTemplate
from .openapi import DEFAULT_BASE_URL, extract_server_url
from .pacer import TokenBucket

logger = logging.getLogger(__name__)


class OperationTool(Tool):
    """FastMCP tool backed by a compiled operation."""

    _operation: Any = PrivateAttr(default=None)

    @classmethod
    def from_operation(cls, operation: Operation) -> "OperationTool":
        tool = cls(
            name=operation.name,
            description=operation.description,
            parameters=operation.parameters,
            tags=set(operation.tags),
        )
        tool._operation = operation
        return tool

    async def run(self, arguments: Dict[str, Any]) -> ToolResult:
        operation: Operation = self._operation
        result = await operation.invoke(arguments or {})
        if result.is_error:
            # reported to the client as an isError result, not a protocol error
            raise ToolError(result.text)
        return ToolResult(content=[TextContent(type="text", text=result.text)])


def build_server(
    settings: Settings,
    document: Dict[str, Any],
    client: Optional[ApiClient] = None,
    pacer: Optional[TokenBucket] = None,
) -> tuple[FastMCP, object | None, RegistrationTable]:
    base_url = settings.adapter_base_url or extract_server_url(document) or DEFAULT_BASE_URL
    if not settings.adapter_api_key:
        logger.warning("ADAPTER_API_KEY is not set. API calls will likely fail.")
    if client is None:
        client = ApiClient(
            base_url=base_url,
            api_key=settings.adapter_api_key,
            timeout_seconds=settings.adapter_request_timeout_seconds,
            verify_ssl=settings.adapter_verify_ssl,
        )

    options = settings.compiler_options(base_url)
    table = SpecCompiler(options, client, pacer).compile(document)

    mcp = FastMCP(settings.service_name, instructions=_instructions(document))
    _attach_spec_resource(mcp, document, options.resource_scheme)
    register_table(mcp, table)

    app = _get_http_app(mcp, settings)
    _attach_auth(app, settings)
    _attach_healthcheck(app)
    return mcp, app, table


def register_table(mcp: FastMCP, table: RegistrationTable) -> None:
    for operation in table.operations.values():
        mcp.add_tool(OperationTool.from_operation(operation))
        logger.debug("Registered tool: %s", operation.name)

    for resource in table.resources.values():
        try:
            mcp.resource(
                resource.uri_template,
                name=resource.name,
                description=resource.description,
                mime_type=resource.mime_type,
            )(_resource_reader(resource))
        except ValueError as exc:
            logger.warning("Skipping resource template %s: %s", resource.uri_template, exc)
            continue
        logger.debug("Registered resource template: %s", resource.uri_template)

    logger.info(
        "Registered %s tools and %s resource templates",
        len(table.operations),
        len(table.resources),
    )


def _resource_reader(resource: ResourceTemplate) -> Callable[..., Awaitable[str]]:
    async def reader(**variables: str) -> str:
        return await resource.read(variables)

    reader.__name__ = resource.name
    return reader


def _attach_spec_resource(mcp: FastMCP, document: Dict[str, Any], scheme: str) -> None:
    title = (document.get("info") or {}).get("title") or "the API"

    @mcp.resource(
        f"{scheme}://openapi.json",
        name="openapi-spec",
        description=f"The OpenAPI specification for {title}",
        mime_type="application/json",
    )
    def openapi_spec() -> str:
        return json.dumps(document)


def _attach_auth(app, settings: Settings) -> None:  # type: ignore[no-untyped-def]
    if not app:
        return
    if not settings.adapter_auth_token:
        logger.warning("ADAPTER_AUTH_TOKEN is not set; HTTP transport is unauthenticated")
        return

    from starlette.middleware.base import BaseHTTPMiddleware
    from starlette.responses import JSONResponse

    async def auth_middleware(request, call_next):  # type: ignore[no-untyped-def]
        if request.method == "OPTIONS":
            return await call_next(request)
        if request.url.path.endswith("/health"):
            return await call_next(request)

        auth_header = request.headers.get("authorization", "")
        token = auth_header.replace("Bearer", "").strip()
        if token == settings.adapter_auth_token:
            return await call_next(request)
        return JSONResponse({"error": "Unauthorized"}, status_code=401)

    app.add_middleware(BaseHTTPMiddleware, dispatch=auth_middleware)


def _attach_healthcheck(app) -> None:  # type: ignore[no-untyped-def]
    if not app:
        return

    async def healthcheck(_request):  # type: ignore[no-untyped-def]
        from starlette.responses import JSONResponse

        return JSONResponse({"status": "ok"})

    app.add_route("/health", healthcheck, methods=["GET"])


def _instructions(document: Dict[str, Any]) -> str:
    info = document.get("info") or {}
    title = info.get("title") or "the upstream REST API"
    return (
        f"Tools and resources generated from the OpenAPI document of {title}. "
        "Call list_api_tags to discover operation groups and get_server_info for the active configuration."
    )


def _get_http_app(mcp: FastMCP, settings: Settings):  # type: ignore[no-untyped-def]
    transport = settings.adapter_transport.lower()
    if transport in {"http"}:
        app = mcp.http_app(transport="http", stateless_http=True, json_response=True)
        _attach_cors(app)
        return app
    if transport in {"streamable-http", "streamablehttp"}:
        app = mcp.http_app(
            transport="streamable-http", stateless_http=True, json_response=True
        )
        _attach_cors(app)
        return app
    if transport in {"sse"}:
        app = mcp.http_app(transport="sse")
        _attach_cors(app)
        return app
    return None


def _attach_cors(app) -> None:  # type: ignore[no-untyped-def]
    if not app:
        return
    from starlette.middleware.cors import CORSMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
