"""Cancellation of in-flight remote calls."""

import asyncio
from typing import Awaitable, Optional, TypeVar

T = TypeVar("T")


async def run_cancellable(call: Awaitable[T], cancel_event: Optional[asyncio.Event] = None) -> T:
    """Await ``call`` unless ``cancel_event`` is set first.

    When the event fires the call is cancelled and awaited to completion, then
    ``asyncio.CancelledError`` is raised to the caller. An event that is
    already set means the call is never started.
    """
    if cancel_event is None:
        return await call

    if cancel_event.is_set():
        if asyncio.iscoroutine(call):
            call.close()
        raise asyncio.CancelledError("Operation cancelled before it started")

    task = asyncio.ensure_future(call)
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task.done():
        return task.result()

    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    raise asyncio.CancelledError("Operation cancelled")
