import httpx


class UnreadStream(httpx.AsyncByteStream):
    """Body that is only produced when the proxy iterates it."""

    def __init__(self, content: bytes):
        self._content = content

    async def __aiter__(self):
        if self._content:
            yield self._content


class StreamingMockTransport(httpx.MockTransport):
    """
    MockTransport whose responses reach the client unread, like a network one.

    httpx.Response(content=b"...") reads itself on construction, which makes
    aiter_raw() fail with StreamConsumed. Those responses are rebuilt around
    an UnreadStream carrying the same raw (still encoded) bytes and headers.
    """

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        response = await super().handle_async_request(request)
        if not isinstance(response.stream, httpx.ByteStream):
            return response
        raw = b"".join([chunk async for chunk in response.stream])
        return httpx.Response(
            response.status_code,
            headers=response.headers,
            stream=UnreadStream(raw),
            request=request,
        )
