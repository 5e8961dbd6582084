"""MCP tool server exposing web_fetch, image_fetch, web_search and web_summary.

The ``handle_*`` coroutines do the work and always return a dict; failures
come back as ``{"error": ...}``.  The registered tools turn those into
error results so a failing call never takes the server down.
"""

import asyncio
import base64
import dataclasses
import hmac
from typing import Any, Dict

import uvicorn
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from starlette.responses import PlainTextResponse

from pagebroker.service.broker import WebBroker
from pagebroker.utils.config import Settings
from pagebroker.utils.errors import BrokerError
from pagebroker.utils.logger import get_logger

log = get_logger(__name__)

SERVER_NAME = "pagebroker"


# -- Handlers -------------------------------------------------------------------


async def handle_web_fetch(broker: WebBroker, url: str) -> Dict[str, Any]:
    if not url:
        return {"error": "Missing URL"}
    try:
        return {"content": await broker.fetch_markdown(url)}
    except BrokerError as e:
        return {"error": f"Error fetching URL: {url} => {e}"}


async def handle_image_fetch(broker: WebBroker, url: str) -> Dict[str, Any]:
    if not url:
        return {"error": "Missing URL"}
    log.info("Downloading asset: %s", url)
    try:
        resource = await broker.download(url)
    except BrokerError as e:
        return {"error": str(e)}
    return {
        "filename": resource.filename,
        "content_type": resource.content_type,
        "data_base64": base64.b64encode(resource.data).decode("ascii"),
    }


async def handle_web_search(
    broker: WebBroker, query: str, markdown_output: bool = False
) -> Dict[str, Any]:
    if not query:
        return {"query": query, "error": 'Missing argument: "query"'}
    try:
        if markdown_output:
            return {"query": query, "markdown": await broker.search_markdown(query)}
        results = await broker.search_json(query)
    except BrokerError as e:
        return {"query": query, "error": f"Error: {e}"}
    return {"query": query, "results": [dataclasses.asdict(r) for r in results]}


async def handle_web_summary(broker: WebBroker, url: str, short: bool = False) -> Dict[str, Any]:
    if not url:
        return {"error": 'Missing argument: "url"'}
    try:
        summary = await broker.summarize_url(url, short=short)
    except BrokerError as e:
        return {"error": f"Error fetching URL: {url} => {e}"}
    return {"content": summary.to_yaml()}


def _unwrap(result: Dict[str, Any]) -> Dict[str, Any]:
    if "error" in result:
        raise ToolError(result["error"])
    return result


# -- Server construction --------------------------------------------------------


def create_server(broker: WebBroker, settings: Settings) -> FastMCP:
    """Build a FastMCP server with the tools enabled in *settings*."""
    server = FastMCP(SERVER_NAME, host=settings.http_addr, port=settings.http_port)

    if not settings.disable_fetch:

        async def web_fetch(url: str) -> Dict[str, Any]:
            return _unwrap(await handle_web_fetch(broker, url))

        server.add_tool(web_fetch, name="web_fetch", description=settings.fetch_desc)

    if not settings.disable_image:

        async def image_fetch(url: str) -> Dict[str, Any]:
            return _unwrap(await handle_image_fetch(broker, url))

        server.add_tool(image_fetch, name="image_fetch", description=settings.image_desc)

    if not settings.disable_summary:

        async def web_summary(url: str, short: bool = False) -> Dict[str, Any]:
            return _unwrap(await handle_web_summary(broker, url, short))

        server.add_tool(web_summary, name="web_summary", description=settings.summary_desc)

    # web_search is only offered when an engine is configured
    if not settings.disable_search and broker.has_search:

        async def web_search(query: str, markdown_output: bool = False) -> Dict[str, Any]:
            return _unwrap(await handle_web_search(broker, query, markdown_output))

        server.add_tool(web_search, name="web_search", description=settings.search_desc)

    return server


class BearerAuthMiddleware:
    """ASGI middleware requiring ``Authorization: Bearer <master key>`` on HTTP requests."""

    def __init__(self, app, master_key: str):
        self.app = app
        self._expected = f"Bearer {master_key}".encode()

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        supplied = b""
        for name, value in scope.get("headers", []):
            if name == b"authorization":
                supplied = value
                break

        if not hmac.compare_digest(supplied, self._expected):
            client = scope.get("client") or ("-", 0)
            log.warning("Unauthorized request from %s to %s", client[0], scope.get("path", ""))
            response = PlainTextResponse(
                "Unauthorized", status_code=401, headers={"WWW-Authenticate": "Bearer"}
            )
            await response(scope, receive, send)
            return

        await self.app(scope, receive, send)


# -- Runners --------------------------------------------------------------------


def _server_settings(settings: Settings) -> Settings:
    # Tool output is read out of context, so relative links are useless there.
    return dataclasses.replace(settings, convert_absolute_links=True)


def run_stdio(settings: Settings) -> None:
    """Serve the tools over stdin/stdout until the client disconnects."""
    settings = _server_settings(settings)

    async def _serve():
        broker = WebBroker(settings)
        try:
            await broker.start()
            server = create_server(broker, settings)
            log.info("Starting %s MCP server on stdio", SERVER_NAME)
            await server.run_stdio_async()
        finally:
            await broker.close()

    asyncio.run(_serve())


def build_http_app(server: FastMCP, master_key: str = ""):
    """The streamable-HTTP ASGI app, behind bearer auth when a key is set."""
    app = server.streamable_http_app()
    if master_key:
        app = BearerAuthMiddleware(app, master_key)
    else:
        log.warning("No master key set, HTTP server accepts unauthenticated requests")
    return app


def run_http(settings: Settings) -> None:
    """Serve the tools over streamable HTTP with uvicorn."""
    settings = _server_settings(settings)

    async def _serve():
        broker = WebBroker(settings)
        try:
            await broker.start()
            server = create_server(broker, settings)
            app = build_http_app(server, settings.master_key)
            config = uvicorn.Config(
                app,
                host=settings.http_addr,
                port=settings.http_port,
                log_level=settings.log_level.lower(),
            )
            log.info("Starting %s MCP server on %s:%d", SERVER_NAME, settings.http_addr, settings.http_port)
            await uvicorn.Server(config).serve()
            log.info("HTTP server stopped")
        finally:
            await broker.close()

    asyncio.run(_serve())
