"""Bounded fire-and-forget scheduling for best-effort side effects."""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)
_IN_FLIGHT: set[asyncio.Task[Any]] = set()


async def _bounded(coro: Coroutine[Any, Any, Any], timeout_seconds: float | None) -> Any:
    if timeout_seconds is None:
        return await coro
    return await asyncio.wait_for(coro, timeout=timeout_seconds)


def _report(label: str, task: asyncio.Task[Any]) -> None:
    _IN_FLIGHT.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is None:
        return
    if isinstance(exc, asyncio.TimeoutError):
        logger.warning("Side effect %s timed out", label)
    else:
        logger.error("Side effect %s failed", label, exc_info=exc)


def fire_and_forget(
    coro: Coroutine[Any, Any, Any],
    *,
    task_name: str | None = None,
    timeout_seconds: float | None = None,
) -> asyncio.Task[Any] | None:
    """Schedule *coro* without awaiting it.

    Failures and timeouts are logged and never reach the caller. Returns
    ``None`` when no loop is running, in which case the work is dropped.
    """
    label = task_name or getattr(coro, "__qualname__", "task")
    wrapped = _bounded(coro, timeout_seconds)
    try:
        task = asyncio.get_running_loop().create_task(wrapped, name=task_name)
    except RuntimeError:
        wrapped.close()
        coro.close()
        return None
    _IN_FLIGHT.add(task)
    task.add_done_callback(functools.partial(_report, label))
    return task


async def drain_background_tasks(timeout_seconds: float = 1.0) -> None:
    """Give in-flight side effects up to *timeout_seconds*, then cancel the rest.

    Called at shutdown and by tests before asserting on emitted events.
    """
    pending = [task for task in _IN_FLIGHT if not task.done()]
    if not pending:
        return
    _, late = await asyncio.wait(pending, timeout=timeout_seconds)
    for task in late:
        task.cancel()
    if late:
        await asyncio.gather(*late, return_exceptions=True)
