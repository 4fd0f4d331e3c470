"""
Deadline-bounded execution of blocking store calls.

Store adapters are synchronous (supabase-py, postgrest). Each call runs on a
worker thread so the event loop keeps turning, and the caller stops waiting
once the deadline passes. The thread itself cannot be stopped: the timeout
error carries the still-running future as ``pending`` so callers that must
compensate for a late write can wait for it to settle first.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional, TypeVar

from ..core_config import get_settings
from ..errors import UploadTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def resolve_deadline(*candidates: Optional[float]) -> float:
    """First explicit deadline wins; Settings.upload_io_timeout otherwise."""
    for candidate in candidates:
        if candidate is not None:
            return candidate
    return get_settings().upload_io_timeout


def _log_late_outcome(step: str) -> Callable[["asyncio.Future[Any]"], None]:
    def _callback(future: "asyncio.Future[Any]") -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.warning("[deadline] %s finished late with error: %s", step, exc)
        else:
            logger.warning("[deadline] %s finished late", step)

    return _callback


async def call_with_deadline(
    step: str,
    timeout: float,
    func: Callable[..., T],
    *args: Any,
    **kwargs: Any,
) -> T:
    """
    Run ``func(*args, **kwargs)`` on a worker thread, waiting at most ``timeout``.

    Raises:
        UploadTimeoutError: the call missed its deadline; ``pending`` is the
            worker future, which may still complete.
    """
    task = asyncio.ensure_future(asyncio.to_thread(func, *args, **kwargs))
    try:
        return await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
    except asyncio.TimeoutError:
        logger.error("[deadline] %s timed out after %.1fs", step, timeout)
        task.add_done_callback(_log_late_outcome(step))
        raise UploadTimeoutError(step, timeout, pending=task) from None
