"""CLI entry point for the OpenAPI MCP Adapter."""

from __future__ import annotations

import asyncio
import logging

import uvicorn

from .config import get_settings
from .logging import configure_logging
from .openapi import OpenAPILoader
from .server import build_server

logger = logging.getLogger(__name__)

HTTP_TRANSPORTS = {"http", "streamable-http", "streamablehttp", "sse"}


async def _run() -> None:
    settings = get_settings()
    configure_logging(settings.adapter_log_level)

    loader = OpenAPILoader(
        cache_seconds=settings.adapter_spec_cache_seconds,
        timeout_seconds=settings.adapter_request_timeout_seconds,
    )
    document = await loader.load_spec(settings.adapter_spec_location)
    if document is None:
        raise RuntimeError(f"Unable to load OpenAPI spec from {settings.adapter_spec_location}")

    mcp, app, _table = build_server(settings, document)
    transport = settings.adapter_transport.lower()

    if transport in HTTP_TRANSPORTS:
        if not app:
            raise RuntimeError(f"HTTP app unavailable for transport={transport}")
        config = uvicorn.Config(app, host=settings.adapter_host, port=settings.adapter_port)
        server = uvicorn.Server(config)
        await server.serve()
        return
    logger.info("Serving %s over stdio", settings.service_name)
    await mcp.run_stdio_async()


def main() -> None:
    asyncio.run(_run())


if __name__ == "__main__":
    main()
