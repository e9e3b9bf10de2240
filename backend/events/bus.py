"""
Refresh Bus — process-wide "transactional data changed" signal.

No payload, no buffering, no replay:
  - publish() calls every current subscriber synchronously, in registration order
  - a handler registered after a publish never sees that publish
  - the unsubscribe callable returned by subscribe() is idempotent

Any ledger write triggers a full recompute of every mounted aggregation; there
is no partial/incremental path.
"""

from collections.abc import Callable
from functools import lru_cache

import structlog

logger = structlog.get_logger()

Handler = Callable[[], None]


class RefreshBus:
    """Injectable pub/sub signal. One instance per process in production."""

    def __init__(self, name: str = "sales-data-updated"):
        self.name = name
        self._subscriptions: list[tuple[int, Handler]] = []
        self._next_token = 0

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        """Register handler; returns a callable that removes this registration."""
        token = self._next_token
        self._next_token += 1
        self._subscriptions.append((token, handler))

        def unsubscribe() -> None:
            self._subscriptions = [(t, h) for t, h in self._subscriptions if t != token]

        return unsubscribe

    def publish(self) -> int:
        """
        Wake every subscriber registered at the time of the call.

        A failing handler is logged and does not stop the others.
        Returns the number of handlers invoked.
        """
        snapshot = list(self._subscriptions)
        for _, handler in snapshot:
            try:
                handler()
            except Exception as exc:  # noqa: BLE001
                logger.error("refresh_bus.handler_failed", bus=self.name, error=str(exc), exc_info=True)
        logger.debug("refresh_bus.published", bus=self.name, subscribers=len(snapshot))
        return len(snapshot)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def clear(self) -> None:
        self._subscriptions = []


@lru_cache
def get_refresh_bus() -> RefreshBus:
    """Process-wide bus, created on first use."""
    return RefreshBus()
