"""
Process-wide proxy configuration.

The upstream target is read from the environment exactly once, at startup,
and handed to the forwarder as an immutable value.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import urlsplit

DEFAULT_PORT = 8080
DEFAULT_HOST = "0.0.0.0"
DEFAULT_TIMEOUT = 300.0  # 5 minutes


class ConfigurationError(ValueError):
    """Raised when the proxy cannot start with the given environment."""


@dataclass(frozen=True)
class ProxyConfig:
    target: str
    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    # None disables the upstream timeout
    timeout: Optional[float] = DEFAULT_TIMEOUT


def _parse_port(raw: str) -> int:
    try:
        port = int(raw)
    except ValueError:
        raise ConfigurationError(f"PORT must be an integer, got {raw!r}") from None
    if not 0 < port < 65536:
        raise ConfigurationError(f"PORT out of range: {port}")
    return port


def _parse_timeout(raw: str) -> Optional[float]:
    try:
        timeout = float(raw)
    except ValueError:
        raise ConfigurationError(
            f"PROXY_TIMEOUT must be a number of seconds, got {raw!r}"
        ) from None
    if timeout < 0:
        raise ConfigurationError(f"PROXY_TIMEOUT must not be negative: {timeout}")
    return timeout or None


def _validate_target(raw: str) -> str:
    target = raw.strip()
    if not target:
        raise ConfigurationError("TARGET env var missing")
    parsed = urlsplit(target)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(
            f"TARGET must be an absolute http(s) URL, got {raw!r}"
        )
    return target


def load_config(environ: Optional[Mapping[str, str]] = None) -> ProxyConfig:
    """Build the proxy configuration from the environment."""
    env = os.environ if environ is None else environ

    target = _validate_target(env.get("TARGET", ""))
    port = _parse_port(env.get("PORT", "") or str(DEFAULT_PORT))
    host = env.get("HOST", "") or DEFAULT_HOST
    timeout = _parse_timeout(env.get("PROXY_TIMEOUT", "") or str(DEFAULT_TIMEOUT))

    return ProxyConfig(target=target, port=port, host=host, timeout=timeout)
