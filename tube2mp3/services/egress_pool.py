from __future__ import annotations

from collections import deque
from contextlib import contextmanager
from threading import Lock
from typing import Deque, Iterable, Iterator, Optional

from tube2mp3.errors import ConfigurationError
from tube2mp3.logging_utils import get_logger
from tube2mp3.models import EgressProxy
from tube2mp3 import metrics as app_metrics


logger = get_logger(__name__)


class Lease:
    """Exclusive hold on one proxy, returned to its pool exactly once."""

    def __init__(self, pool: "EgressPool", proxy: EgressProxy) -> None:
        self._pool = pool
        self.proxy = proxy
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            raise RuntimeError(f"lease on {self.proxy.redacted} already released")
        self._released = True
        self._pool.release(self.proxy)


class EgressPool:
    """Fixed-size pool of egress proxies with non-blocking admission.

    ``try_acquire`` never waits: when every proxy is leased it returns
    ``None`` and the caller is expected to tell the requester to retry.
    """

    def __init__(self, proxies: Iterable[EgressProxy]) -> None:
        items = list(proxies)
        if not items:
            raise ConfigurationError("egress pool needs at least one proxy")
        if len(set(items)) != len(items):
            raise ConfigurationError("egress pool proxies must be distinct")
        self._capacity = len(items)
        self._lock = Lock()
        self._available: Deque[EgressProxy] = deque(items)
        self._leased: set[EgressProxy] = set()
        app_metrics.set_pool_capacity(self._capacity)
        app_metrics.set_leases_in_use(0)

    @classmethod
    def from_descriptors(cls, descriptors: Iterable[str], capacity: int) -> "EgressPool":
        """Build the pool from ``host:port:user:password`` descriptors.

        The descriptor count must match ``capacity`` exactly.
        """
        raw = list(descriptors)
        if len(raw) != capacity:
            raise ConfigurationError(
                f"expected {capacity} proxy descriptors, got {len(raw)}"
            )
        pool = cls(EgressProxy.from_descriptor(d) for d in raw)
        logger.info("Egress pool ready with %d proxies", pool.capacity)
        return pool

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def available(self) -> int:
        with self._lock:
            return len(self._available)

    @property
    def in_use(self) -> int:
        with self._lock:
            return len(self._leased)

    def try_acquire(self) -> Optional[EgressProxy]:
        """Take a free proxy, or return None immediately if none is free."""
        with self._lock:
            if not self._available:
                in_use = len(self._leased)
                proxy = None
            else:
                proxy = self._available.popleft()
                self._leased.add(proxy)
                in_use = len(self._leased)

        if proxy is None:
            logger.warning(
                "Egress pool at capacity (%d/%d in use) - denying lease",
                in_use,
                self._capacity,
            )
            app_metrics.record_capacity_denial()
            return None

        app_metrics.set_leases_in_use(in_use)
        logger.info(
            "Leased proxy %s (%d/%d in use)", proxy.redacted, in_use, self._capacity
        )
        return proxy

    def release(self, proxy: EgressProxy) -> None:
        """Return a leased proxy to the pool."""
        with self._lock:
            if proxy not in self._leased:
                raise RuntimeError(f"proxy {proxy.redacted} is not leased from this pool")
            self._leased.remove(proxy)
            self._available.append(proxy)
            in_use = len(self._leased)

        app_metrics.set_leases_in_use(in_use)
        logger.info(
            "Released proxy %s (%d/%d in use)", proxy.redacted, in_use, self._capacity
        )

    @contextmanager
    def lease(self) -> Iterator[Optional[Lease]]:
        """Scoped acquisition.

        Yields a Lease, or None when the pool is exhausted. A granted lease
        is released when the block exits, however it exits.
        """
        proxy = self.try_acquire()
        if proxy is None:
            yield None
            return

        held = Lease(self, proxy)
        try:
            yield held
        finally:
            if not held.released:
                held.release()
