from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from snbt.core.clock import Clock
from snbt.core.subtests import Subtest

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TimerKey:
    user_id: str
    simulation_id: int
    subtest: Subtest

    @property
    def storage_key(self) -> str:
        return f"{self.user_id}:simulation_{self.simulation_id}_{self.subtest.value}_timer"


class InMemoryAnchorStore:
    """Keyed anchor storage: composite string key -> start timestamp.

    Local to the serving process, not synchronised across processes.
    """

    def __init__(self) -> None:
        self._anchors: dict[str, float] = {}

    def get(self, key: TimerKey) -> float | None:
        return self._anchors.get(key.storage_key)

    def put_if_absent(self, key: TimerKey, start: float) -> float:
        return self._anchors.setdefault(key.storage_key, start)

    def delete(self, key: TimerKey) -> None:
        self._anchors.pop(key.storage_key, None)

    def delete_user(self, user_id: str) -> int:
        prefix = f"{user_id}:"
        doomed = [k for k in self._anchors if k.startswith(prefix)]
        for k in doomed:
            del self._anchors[k]
        return len(doomed)

    def __contains__(self, key: TimerKey) -> bool:
        return key.storage_key in self._anchors


def remaining_seconds(start: float, time_limit_s: float, now: float) -> float:
    return max(0.0, float(time_limit_s) - (now - start))


class TimerState:
    """Wall-clock anchored countdowns over an explicit anchor store."""

    def __init__(self, *, store: InMemoryAnchorStore, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    @property
    def store(self) -> InMemoryAnchorStore:
        return self._store

    def get_or_start_anchor(self, key: TimerKey) -> float:
        start = self._store.put_if_absent(key, self._clock.now())
        return start

    def remaining(self, key: TimerKey, time_limit_s: float) -> float:
        start = self._store.get(key)
        if start is None:
            return float(time_limit_s)
        return remaining_seconds(start, time_limit_s, self._clock.now())

    def has_anchor(self, key: TimerKey) -> bool:
        return key in self._store

    def clear(self, key: TimerKey) -> None:
        self._store.delete(key)

    def clear_user(self, user_id: str) -> None:
        cleared = self._store.delete_user(user_id)
        logger.info(f"Cleared {cleared} timer anchor(s) for user {user_id}")


class CountdownTicker:
    """Repeating tick loop for one subtest countdown.

    Each tick recomputes the remaining time from the anchor instead of
    decrementing a counter. When it reaches zero the expiry callback fires
    exactly once and the loop stops. Cancelling the loop leaves the anchor alone.
    """

    def __init__(
        self,
        *,
        timer: TimerState,
        key: TimerKey,
        time_limit_s: float,
        on_expire: Callable[[Subtest], Awaitable[None]],
        on_tick: Callable[[float], None] | None = None,
        interval_s: float = 1.0,
    ) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self._timer = timer
        self._key = key
        self._time_limit_s = float(time_limit_s)
        self._on_expire = on_expire
        self._on_tick = on_tick
        self._interval_s = float(interval_s)
        self._expired = False
        self._task: asyncio.Task | None = None

    @property
    def key(self) -> TimerKey:
        return self._key

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> float:
        remaining = self._timer.remaining(self._key, self._time_limit_s)
        if self._on_tick is not None:
            self._on_tick(remaining)
        if remaining <= 0.0 and not self._expired:
            self._expired = True
            logger.info(f"Time is up for {self._key.storage_key}")
            await self._on_expire(self._key.subtest)
        return remaining

    async def run(self) -> None:
        while not self._expired:
            try:
                await self.tick()
            except Exception:
                # nobody awaits this task, the error would otherwise go unseen
                logger.exception(f"Tick failed for {self._key.storage_key}")
            if self._expired:
                break
            await asyncio.sleep(self._interval_s)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self.run(), name=f"ticker:{self._key.storage_key}")

    def cancel(self) -> None:
        # called from inside the expiry callback: the loop is finishing on its own
        if self._task is not None and not self._task.done() and self._task is not asyncio.current_task():
            self._task.cancel()
        self._task = None
