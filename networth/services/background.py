"""
Detached Coroutine Dispatch

Ledger mutations are synchronous, but saving records and writing audit
events are coroutines. This module runs them without making the caller
wait on, or see the outcome of, the I/O.

Inside a running event loop the coroutine is scheduled as a task and a
reference is kept until it finishes. Outside one (scripts, plain unit
tests) it is handed to a background worker thread that owns its own
loop, so the caller returns immediately. `wait_for_background` blocks
until that work is done; it is also run at interpreter exit.

Coroutines passed here must handle their own errors.
"""

import asyncio
import atexit
import concurrent.futures
import threading
import time
from typing import Any, Coroutine, Optional, Union

import structlog

logger = structlog.get_logger(__name__)

WORKER_THREAD_NAME = "networth-background"
EXIT_FLUSH_TIMEOUT_SECONDS = 30.0

_pending: set[asyncio.Task] = set()
_submitted: set[concurrent.futures.Future] = set()

_worker_lock = threading.Lock()
_worker_loop: Optional[asyncio.AbstractEventLoop] = None
_worker_thread: Optional[threading.Thread] = None


def run_detached(
    coro: Coroutine[Any, Any, Any],
) -> Union[asyncio.Task, concurrent.futures.Future]:
    """Schedule `coro` on the running loop, or on the background worker."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        future = asyncio.run_coroutine_threadsafe(coro, _get_worker_loop())
        _submitted.add(future)
        future.add_done_callback(_submitted.discard)
        return future

    task = loop.create_task(coro)
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task


def _get_worker_loop() -> asyncio.AbstractEventLoop:
    global _worker_loop, _worker_thread
    with _worker_lock:
        if _worker_loop is None or not _worker_thread.is_alive():
            loop = asyncio.new_event_loop()
            thread = threading.Thread(
                target=_run_worker,
                args=(loop,),
                name=WORKER_THREAD_NAME,
                daemon=True,
            )
            thread.start()
            _worker_loop, _worker_thread = loop, thread
        return _worker_loop


def _run_worker(loop: asyncio.AbstractEventLoop) -> None:
    asyncio.set_event_loop(loop)
    loop.run_forever()


def pending_count() -> int:
    return len(_pending) + len(_submitted)


async def drain_pending() -> None:
    """Wait for every detached task on this loop, including ones they schedule."""
    loop = asyncio.get_running_loop()
    while True:
        tasks = [t for t in list(_pending) if t.get_loop() is loop and not t.done()]
        if not tasks:
            return
        await asyncio.wait(tasks)


def wait_for_background(timeout: Optional[float] = None) -> None:
    """
    Block until all work handed to the background worker has finished.

    For synchronous callers only; inside an event loop await
    `drain_pending` instead.

    Raises:
        TimeoutError: If the work is still running after `timeout` seconds
        RuntimeError: If called from the worker thread itself
    """
    if threading.current_thread() is _worker_thread:
        raise RuntimeError("wait_for_background cannot run on the background worker")

    deadline = None if timeout is None else time.monotonic() + timeout

    def remaining() -> Optional[float]:
        if deadline is None:
            return None
        return max(0.0, deadline - time.monotonic())

    while True:
        futures = list(_submitted)
        if futures:
            _, not_done = concurrent.futures.wait(futures, timeout=remaining())
            if not_done:
                raise TimeoutError(f"{len(not_done)} background jobs still running")

        loop = _worker_loop
        if loop is not None and not loop.is_closed():
            drained = asyncio.run_coroutine_threadsafe(drain_pending(), loop)
            try:
                drained.result(timeout=remaining())
            except concurrent.futures.TimeoutError:
                raise TimeoutError("background tasks still running") from None

        if all(f.done() for f in list(_submitted)):
            return


@atexit.register
def _flush_at_exit() -> None:
    if _worker_loop is None:
        return
    try:
        wait_for_background(timeout=EXIT_FLUSH_TIMEOUT_SECONDS)
    except TimeoutError as e:
        logger.warning("background_flush_incomplete", error=str(e))
