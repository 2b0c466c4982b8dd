"""
Background loops owned by the FastAPI app.

The reminder check is the only loop today. Each loop awaits one run, logs
how long it took (or why it failed), sleeps, and repeats until the app
shuts down. Runs never overlap within a loop.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Awaitable, Callable, List, Optional

if TYPE_CHECKING:  # pragma: no cover
    from fastapi import FastAPI

logger = logging.getLogger(__name__)

_LOOPS_STATE_KEY = "_daybook_periodic_tasks"


def _registered(app: "FastAPI") -> List["asyncio.Task[None]"]:
    loops: Optional[List["asyncio.Task[None]"]] = getattr(app.state, _LOOPS_STATE_KEY, None)
    if loops is None:
        loops = []
        setattr(app.state, _LOOPS_STATE_KEY, loops)
    return loops


# PUBLIC_INTERFACE
def start_periodic_task(
    app: "FastAPI",
    *,
    name: str,
    interval_seconds: float,
    func: Callable[[], Awaitable[object]],
    wait_first: bool = False,
    log: Optional[logging.Logger] = None,
) -> "asyncio.Task[None]":
    """
    Run `func` every `interval_seconds` on the running event loop and
    register the task on app.state so shutdown can cancel it.

    The interval is measured from the end of one run to the start of the
    next. With `wait_first` the first run happens one interval after start.
    """
    log = log or logger
    interval = float(interval_seconds)

    async def _loop() -> None:
        if wait_first:
            await asyncio.sleep(interval)
        runs = 0
        while True:
            runs += 1
            started = time.monotonic()
            try:
                await func()
            except asyncio.CancelledError:
                raise
            except Exception:  # noqa: BLE001
                log.exception("%s run #%d failed", name, runs)
            else:
                log.debug("%s run #%d took %.3fs", name, runs, time.monotonic() - started)
            await asyncio.sleep(interval)

    task = asyncio.create_task(_loop(), name=name)
    _registered(app).append(task)
    log.info("%s started, every %ss", name, interval)
    return task


# PUBLIC_INTERFACE
async def stop_periodic_tasks(app: "FastAPI", *, log: Optional[logging.Logger] = None) -> None:
    """Cancel every loop registered on app.state and wait until they have exited."""
    log = log or logger
    loops = _registered(app)
    if not loops:
        return

    for task in loops:
        task.cancel()
    try:
        await asyncio.gather(*loops, return_exceptions=True)
    finally:
        names = ", ".join(t.get_name() for t in loops)
        setattr(app.state, _LOOPS_STATE_KEY, [])
        log.info("stopped %s", names)
