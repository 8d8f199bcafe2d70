"""
Timebox — Write Coalescer.

Debounces remote writes per key so that rapid successive edits (live
typing in a title or note) turn into a single remote update. Each key runs
a small state machine:

    IDLE -> ARMED(deadline) -> FIRING -> IDLE

schedule() while ARMED cancels the armed timer and re-arms with the new
write function: last write wins, superseded write functions never run.
Callers that were superseded are not dropped: their futures settle with
the outcome of the write that replaced theirs.

At most one write per key is in flight. A write that comes due while an
earlier one is still FIRING waits for it to finish first. There is no
retry: a failed write is reported to every waiter and the key goes IDLE.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Hashable

logger = logging.getLogger(__name__)

WriteFn = Callable[[], Awaitable[None]]


class WriteState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    FIRING = "firing"


@dataclass
class _PendingWrite:
    write_fn: WriteFn
    deadline: float
    waiters: list[asyncio.Future] = field(default_factory=list)
    task: asyncio.Task | None = None


def _settle(waiters: list[asyncio.Future], exc: BaseException | None) -> None:
    for waiter in waiters:
        if waiter.done():
            continue
        if exc is None:
            waiter.set_result(None)
        else:
            waiter.set_exception(exc)


class WriteCoalescer:
    """Per-key debounce queue for remote writes."""

    def __init__(self, quiet_period: float | None = None) -> None:
        if quiet_period is None:
            from timebox.config import settings
            quiet_period = settings.WRITE_DEBOUNCE_SECONDS

        self._quiet_period = quiet_period
        self._armed: dict[Hashable, _PendingWrite] = {}
        self._firing: dict[Hashable, asyncio.Task] = {}

    @property
    def quiet_period(self) -> float:
        return self._quiet_period

    def state(self, key: Hashable) -> WriteState:
        if key in self._armed:
            return WriteState.ARMED
        if key in self._firing:
            return WriteState.FIRING
        return WriteState.IDLE

    def deadline(self, key: Hashable) -> float | None:
        """Loop time at which the armed write for ``key`` comes due."""
        pending = self._armed.get(key)
        return pending.deadline if pending is not None else None

    def schedule(self, key: Hashable, write_fn: WriteFn) -> asyncio.Future:
        """Arm ``write_fn`` to run after the quiet period, replacing any armed write.

        Returns a future that resolves when the write for this key finally
        runs, or carries its exception.
        """
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future = loop.create_future()

        pending = _PendingWrite(
            write_fn=write_fn,
            deadline=loop.time() + self._quiet_period,
            waiters=[waiter],
        )
        previous = self._armed.pop(key, None)
        if previous is not None:
            previous.task.cancel()
            pending.waiters = previous.waiters + pending.waiters
            logger.debug("Write for %s superseded, re-armed", key)

        pending.task = loop.create_task(self._run(key, pending))
        self._armed[key] = pending
        return waiter

    async def _run(self, key: Hashable, pending: _PendingWrite) -> None:
        await asyncio.sleep(self._quiet_period)

        in_flight = self._firing.get(key)
        if in_flight is not None:
            # asyncio.wait, unlike await, does not cancel in_flight if we are cancelled
            await asyncio.wait([in_flight])

        del self._armed[key]
        current = asyncio.current_task()
        self._firing[key] = current
        try:
            await pending.write_fn()
        except asyncio.CancelledError:
            for waiter in pending.waiters:
                waiter.cancel()
            raise
        except Exception as exc:
            logger.error("Write for %s failed: %s", key, exc)
            _settle(pending.waiters, exc)
        else:
            _settle(pending.waiters, None)
        finally:
            if self._firing.get(key) is current:
                del self._firing[key]

    async def drain(self) -> None:
        """Wait until every armed and in-flight write has finished."""
        while self._armed or self._firing:
            tasks = [p.task for p in self._armed.values()]
            tasks.extend(self._firing.values())
            await asyncio.wait(tasks)

    def cancel(self, key: Hashable) -> bool:
        """Drop the armed write for ``key``.

        Its waiters resolve with None, since nothing is left to write.
        Returns False if nothing was armed. A write already FIRING is not
        interrupted.
        """
        pending = self._armed.pop(key, None)
        if pending is None:
            return False
        pending.task.cancel()
        _settle(pending.waiters, None)
        logger.info("Pending write for %s dropped", key)
        return True

    def cancel_all(self) -> None:
        """Drop every armed write. In-flight writes are left to finish."""
        for key in list(self._armed):
            self.cancel(key)
