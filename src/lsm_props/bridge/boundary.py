"""Guard for Python code running inside a foreign callback.

An exception must never unwind into the engine, which has no way to receive
it. Every trampoline is wrapped with :func:`ffi_boundary`; any failure is
logged and the process is aborted before control returns to the caller.
"""

from __future__ import annotations

import functools
import logging
import os
from collections.abc import Callable
from typing import NoReturn, TypeVar

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable)


def fatal(message: str) -> NoReturn:
    """Log a fatal bridge failure and abort the process."""
    logger.critical(message, exc_info=True)
    os.abort()


def ffi_boundary(func: F) -> F:
    """Convert any exception raised by ``func`` into a process abort."""

    @functools.wraps(func)
    def wrapper(*args):
        try:
            return func(*args)
        except BaseException as e:  # noqa: BLE001
            fatal(f"Unrecoverable error in foreign callback {func.__name__}: {e!r}")
        return None

    return wrapper  # type: ignore[return-value]
