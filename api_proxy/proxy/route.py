from fastapi import Request
from fastapi.responses import Response, StreamingResponse
from starlette.background import BackgroundTask
from starlette.types import Receive, Scope, Send

from api_proxy.proxy.errors import ForwardError, error_response, guard_stream
from api_proxy.proxy.forwarder import Forwarder

PROXY_PATH = "/{path:path}"
HEALTH_PATH = "/healthz"

# Sent on every response, errors included
CORS_HEADERS = {
    "access-control-allow-origin": "*",
    "access-control-allow-methods": "GET,POST,OPTIONS",
    "access-control-allow-headers": "Content-Type,Origin",
}


def apply_cors(response: Response) -> Response:
    """Add the CORS header set, leaving any value the upstream already sent."""
    for name, value in CORS_HEADERS.items():
        if name not in response.headers:
            response.headers[name] = value
    return response


def preflight_response() -> Response:
    return apply_cors(Response(status_code=204))


def health_response() -> Response:
    # Explicit header keeps the content-type free of a charset suffix
    return apply_cors(
        Response(content="ok", status_code=200, headers={"content-type": "text/plain"})
    )


async def relay(request: Request, forwarder: Forwarder) -> Response:
    """Forward the request and turn the result into exactly one response."""
    result = await forwarder.forward(request)

    if isinstance(result, ForwardError):
        return apply_cors(error_response(result))

    response = StreamingResponse(
        guard_stream(result.body(), method=request.method, url=result.url),
        status_code=result.status_code,
        background=BackgroundTask(result.aclose),
    )
    for name, value in result.headers:
        response.headers.append(name, value)
    return apply_cors(response)


async def dispatch(request: Request) -> Response:
    """Preflight, health probe, or forward to the upstream."""
    if request.method == "OPTIONS":
        return preflight_response()
    if request.url.path == HEALTH_PATH:
        return health_response()
    return await relay(request, request.app.state.forwarder)


class ProxyEndpoint:
    """
    ASGI app behind the catch-all route.

    Starlette applies no method check to class endpoints registered without
    `methods`, so TRACE, PROPFIND and any other method arrive here too.
    """

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        response = await dispatch(Request(scope, receive))
        await response(scope, receive, send)
