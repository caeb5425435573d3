"""CORS handling for browser callers."""

from aiohttp import web

ALLOW_METHODS = "GET, POST, OPTIONS"
ALLOW_HEADERS = "Content-Type"


@web.middleware
async def cors_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Answer CORS preflight requests without reaching the route handler."""
    if request.method == "OPTIONS":
        return web.Response(status=204)
    return await handler(request)


async def add_cors_headers(request: web.Request, response: web.StreamResponse) -> None:
    """``on_response_prepare`` hook; runs before headers go out, streams included."""
    response.headers["Access-Control-Allow-Origin"] = request.app["settings"].cors_allow_origin
    if request.method == "OPTIONS":
        response.headers["Access-Control-Allow-Methods"] = ALLOW_METHODS
        response.headers["Access-Control-Allow-Headers"] = ALLOW_HEADERS
