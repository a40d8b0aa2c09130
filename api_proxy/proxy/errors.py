"""
Error mapping for the forwarding path.

Every failure ends as a bounded response: a 502 with a JSON body when nothing
has been sent yet, or a JSON error fragment appended to a body that is
already streaming.
"""

import enum
import json
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx
from fastapi.responses import JSONResponse

from api_proxy.utils.exception_logging import (
    format_exception_message,
    log_exception_with_details,
)

logger = logging.getLogger("uvicorn.error")

ERROR_STATUS_CODE = 502


class ForwardErrorKind(str, enum.Enum):
    CONNECT = "connect"
    TIMEOUT = "timeout"
    PROTOCOL = "protocol"
    BODY_READ = "body_read"
    INTERNAL = "internal"


@dataclass(frozen=True)
class ForwardError:
    kind: ForwardErrorKind
    message: str
    method: str = ""
    url: str = ""


def classify_exception(exception: BaseException) -> ForwardErrorKind:
    """Map an exception raised on the upstream leg to an error kind."""
    # Checked first so connect timeouts report as timeouts
    if isinstance(exception, httpx.TimeoutException):
        return ForwardErrorKind.TIMEOUT
    if isinstance(exception, httpx.NetworkError):
        return ForwardErrorKind.CONNECT
    if isinstance(exception, httpx.HTTPError):
        return ForwardErrorKind.PROTOCOL
    return ForwardErrorKind.INTERNAL


def map_exception(
    exception: BaseException,
    kind: Optional[ForwardErrorKind] = None,
    method: str = "",
    url: str = "",
) -> ForwardError:
    """
    Turn an exception into a ForwardError and record it.

    Args:
        exception: The failure
        kind: Overrides classification when the caller knows the stage that failed
        method: Inbound method, for the log line
        url: Upstream URL, for the log line
    """
    error = ForwardError(
        kind=kind or classify_exception(exception),
        message=format_exception_message(exception),
        method=method,
        url=url,
    )
    log_exception_with_details(
        logger,
        f"[Proxy] {error.kind.value} error for {method} {url or '<unresolved>'}:",
        exception,
        include_traceback=error.kind is ForwardErrorKind.INTERNAL,
    )
    return error


def error_payload(error: ForwardError) -> dict:
    return {"error": error.message}


def error_response(error: ForwardError) -> JSONResponse:
    """Response for a failure that happened before anything was sent."""
    return JSONResponse(error_payload(error), status_code=ERROR_STATUS_CODE)


def error_fragment(error: ForwardError) -> bytes:
    """Body bytes appended when the status line has already gone out."""
    # Same encoding JSONResponse uses, so both paths produce identical JSON
    return json.dumps(
        error_payload(error), ensure_ascii=False, separators=(",", ":")
    ).encode("utf-8")


async def guard_stream(
    chunks: AsyncIterator[bytes], method: str = "", url: str = ""
) -> AsyncIterator[bytes]:
    """
    Relay chunks in order; on failure, emit one error fragment and stop.

    Cancellation is not caught, so a caller disconnect still tears the stream
    down; the source stream is closed either way.
    """
    try:
        async for chunk in chunks:
            yield chunk
    except Exception as e:
        error = map_exception(e, method=method, url=url)
        yield error_fragment(error)
    finally:
        aclose = getattr(chunks, "aclose", None)
        if aclose is not None:
            await aclose()
