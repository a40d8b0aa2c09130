"""
Utility functions for exception logging on the proxy error path.

Both helpers are called while a request is already failing, so they must
never raise themselves.
"""

import logging
from typing import Optional


def _safe_str(obj) -> str:
    """
    Safely convert an object to string, falling back to repr and then to the
    type name when the object's own conversions fail.
    """
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def _sub_exceptions(exception) -> list:
    try:
        return list(getattr(exception, "exceptions", None) or [])
    except Exception:
        return []


def format_exception_message(exception: Optional[BaseException]) -> str:
    """
    Return a non-empty, human-readable description of an exception.

    httpx timeouts and some transport errors carry an empty message; for those
    the exception type name is used instead. Exception groups list their
    sub-exceptions.

    Args:
        exception: The exception to describe

    Returns:
        A non-empty string
    """
    if exception is None:
        return "None"

    try:
        message = _safe_str(exception).strip()
        if not message:
            message = type(exception).__name__

        subs = _sub_exceptions(exception)
        if subs:
            parts = []
            for sub in subs:
                sub_message = _safe_str(sub).strip()
                parts.append(
                    f"{type(sub).__name__}: {sub_message}"
                    if sub_message
                    else type(sub).__name__
                )
            message = f"{message} (Sub-exceptions: {'; '.join(parts)})"
        return message
    except Exception:
        return "<exception (formatting failed)>"


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: Optional[BaseException],
    level: int = logging.ERROR,
    include_traceback: bool = False,
) -> None:
    """
    Log an exception under a prefix such as "[Proxy]".

    Expected upstream failures (connection refused, timeouts) are logged as a
    single line; pass include_traceback for unexpected ones.
    """
    try:
        message = f"{prefix} {type(exception).__name__}: {format_exception_message(exception)}"
        exc_info = exception if include_traceback and exception is not None else False
        logger.log(level, message, exc_info=exc_info)
    except Exception:
        try:
            logger.log(logging.ERROR, f"{prefix} Exception (logging failed)")
        except Exception:
            # Logging itself is broken; nothing left to report to
            pass
