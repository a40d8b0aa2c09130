import logging
import string
from typing import AsyncIterator, List, Mapping, Optional, Tuple, Union
from urllib.parse import quote

import httpx
from fastapi import Request
from opentelemetry import trace

from api_proxy.config import ProxyConfig
from api_proxy.proxy.errors import ForwardError, ForwardErrorKind, map_exception
from api_proxy.utils import without_header

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

# The only inbound header passed upstream
FORWARDED_REQUEST_HEADER = "content-type"
# Framing is recomputed for the outbound leg
DROPPED_RESPONSE_HEADER = "transfer-encoding"
# httpx client defaults that would otherwise reach the upstream
CLIENT_DEFAULT_HEADERS = ("accept", "accept-encoding", "user-agent")


def get_raw_path(scope: Mapping) -> bytes:
    """Path and query exactly as received, including percent-escapes."""
    raw_path = scope.get("raw_path")
    if raw_path is None:
        raw_path = scope.get("path", "/").encode("utf-8")
    # Some servers include the query in raw_path, ASGI does not require it
    raw_path = raw_path.split(b"?", 1)[0]
    query_string = scope.get("query_string", b"")
    if query_string:
        return raw_path + b"?" + query_string
    return raw_path


def get_target_url(target: str, raw_path: bytes) -> str:
    """
    Resolve the inbound path and query against the upstream base URL.

    Scheme, host and port come from the target; path and query are replaced.
    Bytes outside ASCII are percent-encoded, existing escapes are kept.
    """
    raw_path = quote(raw_path or b"/", safe=string.punctuation).encode("ascii")
    return str(httpx.URL(target).copy_with(raw_path=raw_path))


def prepare_headers(request: Request) -> dict:
    return {
        FORWARDED_REQUEST_HEADER: request.headers.get(FORWARDED_REQUEST_HEADER, "")
    }


class UpstreamReply:
    """
    Upstream status, filtered headers and a one-shot body stream.

    The body yields raw chunks as they arrive. It can be consumed once; the
    upstream response is released when the stream ends, fails or is closed.
    """

    def __init__(self, response: httpx.Response):
        self._response = response
        self._consumed = False
        self.url = str(response.request.url)
        self.status_code: int = response.status_code
        self.headers: List[Tuple[str, str]] = without_header(
            response.headers.multi_items(), DROPPED_RESPONSE_HEADER
        )

    async def body(self) -> AsyncIterator[bytes]:
        if self._consumed:
            raise RuntimeError("Upstream body has already been consumed")
        self._consumed = True
        try:
            # Raw bytes: content-encoding and content-length are relayed untouched
            async for chunk in self._response.aiter_raw():
                if chunk:
                    yield chunk
        finally:
            await self._response.aclose()

    async def aclose(self) -> None:
        await self._response.aclose()


ForwardResult = Union[UpstreamReply, ForwardError]


class Forwarder:
    """Executes the single upstream round trip for each inbound request."""

    def __init__(
        self,
        config: ProxyConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._client = httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(config.timeout),
            follow_redirects=False,
        )
        for name in CLIENT_DEFAULT_HEADERS:
            del self._client.headers[name]

    async def aclose(self) -> None:
        await self._client.aclose()

    async def forward(self, request: Request) -> ForwardResult:
        """
        Send the request upstream once and return the reply or the failure.

        Never raises for per-request failures.
        """
        method = request.method
        with tracer.start_as_current_span("proxy_request") as span:
            span.set_attribute("proxy.method", method)

            try:
                target_url = get_target_url(
                    self.config.target, get_raw_path(request.scope)
                )
            except Exception as e:
                return self._fail(span, e, ForwardErrorKind.INTERNAL, method, "")
            span.set_attribute("proxy.target_url", target_url)

            logger.debug(f"Proxying {method} {request.url.path} -> {target_url}")

            try:
                body = await request.body()
            except Exception as e:
                return self._fail(
                    span, e, ForwardErrorKind.BODY_READ, method, target_url
                )

            try:
                upstream_request = self._client.build_request(
                    method,
                    target_url,
                    headers=prepare_headers(request),
                    content=body or None,
                )
                response = await self._client.send(upstream_request, stream=True)
            except Exception as e:
                return self._fail(span, e, None, method, target_url)

            span.set_attribute("proxy.status_code", response.status_code)
            return UpstreamReply(response)

    @staticmethod
    def _fail(
        span,
        exception: Exception,
        kind: Optional[ForwardErrorKind],
        method: str,
        url: str,
    ) -> ForwardError:
        error = map_exception(exception, kind=kind, method=method, url=url)
        span.set_attribute("proxy.error", error.kind.value)
        return error
