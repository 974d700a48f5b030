"""
Decorators for the store and updater.

- handle_errors: read optional app files without failing the caller
- retry: re-run an httpx fetch when the connection drops
- timed: log how long an app action took
"""

from __future__ import annotations

import functools
import logging
import time
from typing import Type, Tuple, Callable, Any

import httpx

logger = logging.getLogger(__name__)


def _describe_args(args: tuple) -> str:
    """Render call arguments the way they read in a log line."""
    return ", ".join(str(getattr(arg, "value", arg)) for arg in args)


def handle_errors(
    *exception_types: Type[Exception],
    default: Any = None,
    log_level: int = logging.ERROR,
    reraise: bool = False,
):
    """
    Return a default instead of raising.

    Used where a missing or unreadable file just means "no value", like an
    app's website or credits file.

    Args:
        exception_types: Exception types to catch (default: Exception)
        default: Value to return on error
        log_level: Logging level for the caught error
        reraise: Log, then raise anyway

    Example:
        @handle_errors(OSError, default="", log_level=logging.DEBUG)
        def _read_text(path):
            ...
    """
    if not exception_types:
        exception_types = (Exception,)

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except exception_types as e:
                logger.log(
                    log_level,
                    f"{func.__name__}({_describe_args(args)}) failed: {e}",
                    exc_info=log_level >= logging.ERROR,
                )
                if reraise:
                    raise
                return default
        return wrapper
    return decorator


def retry(
    attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (httpx.TransportError,),
):
    """
    Re-run a network fetch that failed to connect.

    Only transport problems are retried (DNS, refused or reset connections,
    timeouts). An HTTP error status is a real answer from the server and is
    returned to the caller unchanged. App scripts are never retried.

    Args:
        attempts: Total number of tries
        delay: Seconds to wait before the second try
        backoff: Multiplier applied to the wait after each try
        exceptions: Exception types that trigger another try

    Example:
        @retry(attempts=3)
        def _get(self, url):
            return self._client.get(url)
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            wait = delay
            for attempt in range(1, attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == attempts:
                        logger.error(f"{func.__name__} gave up after {attempts} tries: {e}")
                        raise
                    logger.warning(
                        f"{func.__name__} failed ({attempt}/{attempts}), "
                        f"trying again in {wait:g}s: {e}"
                    )
                    time.sleep(wait)
                    wait *= backoff
        return wrapper
    return decorator


def timed(func: Callable) -> Callable:
    """Log at debug level how long an action took, with its arguments."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            elapsed = time.perf_counter() - start
            shown = args[1:] if args and hasattr(args[0], func.__name__) else args
            logger.debug(f"{func.__qualname__}({_describe_args(shown)}) took {elapsed:.1f}s")
    return wrapper
