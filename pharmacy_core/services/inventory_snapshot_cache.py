from __future__ import annotations

import threading
import time
from collections.abc import Callable

from pharmacy_core.services.invalidation_service import InvalidationBus, InvalidationTopic
from pharmacy_core.services.return_ports import InventoryGateway, InventoryItemSnapshot


class InventorySnapshotCache:
    def __init__(
        self,
        inner: InventoryGateway,
        *,
        ttl_seconds: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.inner = inner
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._snapshot: list[InventoryItemSnapshot] | None = None
        self._fetched_at = 0.0
        self._lock = threading.Lock()

    def attach(self, bus: InvalidationBus) -> Callable[[], None]:
        return bus.subscribe(InvalidationTopic.INVENTORY_CHANGED, lambda _topic: self.clear())

    def clear(self) -> None:
        with self._lock:
            self._snapshot = None

    def fetch_inventory_snapshot(self) -> list[InventoryItemSnapshot]:
        # Concurrent callers share one fetch per TTL window.
        with self._lock:
            now = self.clock()
            if self._snapshot is not None and now - self._fetched_at < self.ttl_seconds:
                return list(self._snapshot)
            snapshot = list(self.inner.fetch_inventory_snapshot())
            self._snapshot = snapshot
            self._fetched_at = now
            return list(snapshot)

    def adjust_stock_quantity(self, stock_record_id: int, delta: int) -> None:
        try:
            self.inner.adjust_stock_quantity(stock_record_id, delta)
        finally:
            self.clear()
