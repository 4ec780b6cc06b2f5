import asyncio
import contextlib
from collections.abc import Awaitable
from typing import TypeVar

from fastapi import Request

from .errors import ClientDisconnected
from .logging_config import logger

T = TypeVar("T")


class DisconnectWatcher:
    """
    Background task that polls `request.is_disconnected()` and sets `event`
    once the caller has gone away.

    Usage:
        async with DisconnectWatcher(request) as watcher:
            await wait_for_completion(..., cancel=watcher.event)

    Starlette checks the connection inside an already-cancelled anyio scope,
    which can absorb a `Task.cancel()`; the loop therefore ends on its own
    stop event and `stop()` waits for it with a bound.
    """

    def __init__(
        self,
        request: Request,
        *,
        poll_interval: float = 0.5,
        stop_timeout: float = 1.0,
    ) -> None:
        self.request = request
        self.poll_interval = poll_interval
        self.stop_timeout = stop_timeout
        self.event = asyncio.Event()
        self._stopping = asyncio.Event()
        self._task: asyncio.Task | None = None

    async def _watch(self) -> None:
        while not self._stopping.is_set():
            try:
                disconnected = await self.request.is_disconnected()
            except Exception as exc:  # pragma: no cover
                logger.debug("disconnect watcher stopped: %s", exc)
                return
            if disconnected:
                logger.info(
                    "caller disconnected from %s %s",
                    self.request.method,
                    self.request.url.path,
                )
                self.event.set()
                return
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stopping.wait(), self.poll_interval)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._watch())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        self._stopping.set()
        done, _ = await asyncio.wait({task}, timeout=self.stop_timeout)
        if done:
            return
        task.cancel()
        done, _ = await asyncio.wait({task}, timeout=self.stop_timeout)
        if not done:
            logger.warning(
                "disconnect watcher for %s did not stop within %.1fs",
                self.request.url.path,
                self.stop_timeout * 2,
            )

    async def __aenter__(self) -> "DisconnectWatcher":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()


async def race_cancellation(aw: Awaitable[T], cancel: asyncio.Event | None) -> T:
    """
    Await `aw` unless `cancel` fires first, in which case `aw` is cancelled
    and ClientDisconnected is raised.
    """
    if cancel is None:
        return await aw
    if cancel.is_set():
        if asyncio.iscoroutine(aw):
            aw.close()
        raise ClientDisconnected("Client closed the request")

    work = asyncio.ensure_future(aw)
    stopper = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({work, stopper}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        stopper.cancel()

    if work.done():
        return work.result()

    work.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await work
    raise ClientDisconnected("Client closed the request")


__all__ = ["DisconnectWatcher", "race_cancellation"]
