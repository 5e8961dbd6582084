"""Server module -- MCP tool transport over stdio or streamable HTTP."""

from pagebroker.server.mcp_server import BearerAuthMiddleware, create_server, run_http, run_stdio

__all__ = ["BearerAuthMiddleware", "create_server", "run_http", "run_stdio"]
