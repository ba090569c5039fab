from __future__ import annotations

import asyncio
import inspect
import random
from typing import Any, Awaitable, Callable, Optional, Union

from ..contracts import BackoffStrategy
from ..errors import ExecutionCancelledError

Sleep = Callable[[float], Awaitable[Any]]


def compute_backoff(
    strategy: Union[BackoffStrategy, str],
    attempt: int,
    base_delay_ms: float,
    jitter_ms: float = 0.0,
) -> float:
    """Delay in seconds to wait after failed attempt number ``attempt``."""
    if attempt < 1:
        raise ValueError("attempt numbers start at 1")
    strategy = BackoffStrategy(strategy)
    if strategy is BackoffStrategy.FIXED:
        delay = base_delay_ms
    elif strategy is BackoffStrategy.LINEAR:
        delay = base_delay_ms * attempt
    else:
        delay = base_delay_ms * 2 ** (attempt - 1)
    if jitter_ms:
        delay += random.uniform(0, jitter_ms)
    return delay / 1000.0


async def wait_or_cancel(
    awaitable: Awaitable[Any], cancel_event: Optional[asyncio.Event]
) -> Any:
    """Await ``awaitable`` unless ``cancel_event`` fires first.

    The losing side is cancelled. Raises ``ExecutionCancelledError`` when the
    event wins.
    """
    if cancel_event is None:
        return await awaitable
    if cancel_event.is_set():
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        raise ExecutionCancelledError("execution cancelled")

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait(
            {task, waiter}, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        task.cancel()
        waiter.cancel()
        raise

    if task in done:
        waiter.cancel()
        return task.result()

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    raise ExecutionCancelledError("execution cancelled")


async def schedule_retry(
    delay: float,
    cancel_event: Optional[asyncio.Event] = None,
    sleep: Sleep = asyncio.sleep,
) -> None:
    """Sleep for the backoff delay, waking early if the execution is cancelled."""
    await wait_or_cancel(sleep(delay), cancel_event)
