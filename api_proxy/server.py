import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator

from api_proxy.config import ProxyConfig, load_config
from api_proxy.proxy.forwarder import Forwarder
from api_proxy.proxy.route import PROXY_PATH, ProxyEndpoint
from api_proxy.telemetry import configure_tracing, instrument_app
from api_proxy.vars import METRICS_PATH, SERVICE_NAME

logger = logging.getLogger("uvicorn.error")

configure_tracing()

# Add app_name to the metrics
app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})


def create_app(
    config: ProxyConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the proxy application around one immutable configuration.

    `transport` replaces the network transport of the upstream client; tests
    pass an httpx.MockTransport here.
    """
    forwarder = Forwarder(config, transport=transport)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        await forwarder.aclose()

    # Docs and schema routes would shadow upstream paths
    app = FastAPI(lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)
    app.state.forwarder = forwarder
    app.state.config = config

    if METRICS_PATH:
        Instrumentator().instrument(app).expose(
            app, endpoint=METRICS_PATH, include_in_schema=False
        )
        logger.info(f"Exposing metrics on {METRICS_PATH}")

    instrument_app(app)
    app.add_route(PROXY_PATH, ProxyEndpoint(), name="proxy_all")
    return app


def create_app_from_env() -> FastAPI:
    """Factory for `uvicorn api_proxy.server:create_app_from_env --factory`."""
    return create_app(load_config())
