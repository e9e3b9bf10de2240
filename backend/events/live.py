"""
Live aggregation state for a mounted view or long-lived consumer.

Wraps one aggregation coroutine factory, subscribes it to the RefreshBus and
recomputes from scratch on every signal. Exposes a state that keeps
"no data yet" (empty) distinct from "could not load" (error).

Superseded recomputations are not cancelled: whichever run finishes last
writes the displayed value.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

import structlog

from core.errors import TradeDeskError
from events.bus import RefreshBus

logger = structlog.get_logger()

T = TypeVar("T")

IDLE = "idle"
LOADING = "loading"
READY = "ready"
EMPTY = "empty"
ERROR = "error"


class LiveAggregate(Generic[T]):
    def __init__(
        self,
        name: str,
        compute: Callable[[], Awaitable[T]],
        bus: RefreshBus,
        is_empty: Callable[[T], bool] | None = None,
    ):
        self.name = name
        self._compute = compute
        self._bus = bus
        self._is_empty = is_empty or (lambda value: not value)
        self._unsubscribe: Callable[[], None] | None = None
        self._tasks: set[asyncio.Task] = set()
        self.state = IDLE
        self.value: T | None = None
        self.error: str | None = None
        self.runs = 0

    async def refresh(self) -> T | None:
        self.state = LOADING
        self.runs += 1
        try:
            value = await self._compute()
        except TradeDeskError as exc:
            logger.warning("live_aggregate.failed", aggregate=self.name, error=str(exc))
            self.state = ERROR
            self.error = str(exc)
            return None

        self.value = value
        self.error = None
        self.state = EMPTY if self._is_empty(value) else READY
        return value

    def _on_signal(self) -> None:
        task = asyncio.get_running_loop().create_task(self.refresh())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def mount(self) -> T | None:
        """Compute once and start listening for refresh signals."""
        if self._unsubscribe is None:
            self._unsubscribe = self._bus.subscribe(self._on_signal)
        return await self.refresh()

    def unmount(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def mounted(self) -> bool:
        return self._unsubscribe is not None

    async def settle(self) -> None:
        """Wait for every recompute already triggered by the bus."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
