import httpx
import pytest

from api_proxy.config import ProxyConfig
from api_proxy.server import create_app
from api_proxy.utils_tests.upstream_mock import StreamingMockTransport

TEST_TARGET = "http://upstream.test:9000"
PROXY_BASE_URL = "http://proxy.test"


@pytest.fixture
def proxy_config():
    """Configuration pointing at the mocked upstream."""
    return ProxyConfig(target=TEST_TARGET, timeout=5.0)


@pytest.fixture
def upstream_calls():
    """Requests that reached the mocked upstream, in arrival order."""
    return []


@pytest.fixture
def make_proxy(proxy_config, upstream_calls):
    """
    Build an httpx client talking to the proxy app in-process.

    The handler plays the upstream: it receives every forwarded httpx.Request
    and returns an httpx.Response (or raises an httpx error).
    """

    def _make(handler, config=None):
        async def recording_handler(request: httpx.Request):
            upstream_calls.append(request)
            result = handler(request)
            if hasattr(result, "__await__"):
                result = await result
            return result

        app = create_app(
            config or proxy_config, transport=StreamingMockTransport(recording_handler)
        )
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url=PROXY_BASE_URL
        )

    return _make
