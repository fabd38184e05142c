"""
Deferred eviction of registry entries.

Task web-app instances shouldn't hang around forever in memory; they're
dropped after a fixed time, which should be long enough to configure a task.
"""

import logging
import threading
from collections.abc import Callable, Hashable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60 * 60


@dataclass(eq=False)
class EvictionToken:
    """
    A pending eviction.

    Captures the exact entry present when the eviction was scheduled; the
    entry is compared by identity when the eviction fires.
    """

    key: Hashable
    entry: Any
    timer: Any = field(default=None, repr=False)
    fired: bool = False


class EvictionScheduler:
    """One-shot deferred removal of entries, with an identity re-check."""

    def __init__(
        self,
        ttl: float = DEFAULT_TTL_SECONDS,
        timer_factory: Callable[[float, Callable[[], None]], Any] = threading.Timer,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            ttl: Seconds to wait before evicting
            timer_factory: Creates a startable timer, given a delay and a callback
        """
        self.ttl = ttl
        self.timer_factory = timer_factory
        self._lock = threading.Lock()
        self._pending: set[EvictionToken] = set()

    def schedule(
        self,
        key: Hashable,
        entry: Any,
        evict: Callable[[Hashable, Any], bool],
        ttl: float | None = None,
    ) -> EvictionToken:
        """
        Schedule removal of an entry.

        Args:
            key: Registry key of the entry
            entry: The entry as it is now
            evict: Removes the entry for key if it's still exactly entry;
                returns whether it did
            ttl: Seconds to wait (defaults to the scheduler's ttl)

        Returns:
            The pending eviction
        """
        token = EvictionToken(key=key, entry=entry)
        token.timer = self.timer_factory(
            self.ttl if ttl is None else ttl, lambda: self._fire(token, evict)
        )
        if hasattr(token.timer, "daemon"):
            token.timer.daemon = True
        with self._lock:
            self._pending.add(token)
        token.timer.start()
        return token

    def _fire(self, token: EvictionToken, evict: Callable[[Hashable, Any], bool]) -> None:
        with self._lock:
            if token.fired:
                return
            token.fired = True
            self._pending.discard(token)
        if evict(token.key, token.entry):
            logger.info("Evicted %s", token.key)
        else:
            logger.debug("Eviction of %s skipped - entry has been replaced", token.key)

    @property
    def pending(self) -> int:
        """Number of evictions that haven't fired yet."""
        with self._lock:
            return len(self._pending)

    def shutdown(self) -> None:
        """Cancel all pending evictions."""
        with self._lock:
            pending = list(self._pending)
            self._pending.clear()
        for token in pending:
            token.fired = True
            if hasattr(token.timer, "cancel"):
                token.timer.cancel()
