"""Process-local prepared-item tracking.

While an order is ``preparing`` staff tick items off as they are physically
packed. The ticks are workflow state only: they are not persisted, they gate
the ``preparing → ready`` transition, and they are reconciled against the
order's current items whenever those change.
"""

import threading
import uuid
from typing import Iterable


class PreparedItemTracker:
    """order id → set of prepared item ids. Always a subset of current item ids."""

    def __init__(self) -> None:
        self._prepared: dict[uuid.UUID, set[uuid.UUID]] = {}
        self._lock = threading.Lock()

    def mark(self, order_id: uuid.UUID, item_id: uuid.UUID) -> set[uuid.UUID]:
        with self._lock:
            prepared = self._prepared.setdefault(order_id, set())
            prepared.add(item_id)
            return set(prepared)

    def unmark(self, order_id: uuid.UUID, item_id: uuid.UUID) -> set[uuid.UUID]:
        with self._lock:
            prepared = self._prepared.get(order_id, set())
            prepared.discard(item_id)
            return set(prepared)

    def prepared(self, order_id: uuid.UUID) -> set[uuid.UUID]:
        with self._lock:
            return set(self._prepared.get(order_id, set()))

    def reconcile(
        self, order_id: uuid.UUID, current_item_ids: Iterable[uuid.UUID]
    ) -> set[uuid.UUID]:
        """Drop ids that are no longer on the order."""
        current = set(current_item_ids)
        with self._lock:
            prepared = self._prepared.get(order_id)
            if prepared is None:
                return set()
            prepared &= current
            return set(prepared)

    def all_prepared(
        self, order_id: uuid.UUID, current_item_ids: Iterable[uuid.UUID]
    ) -> bool:
        current = set(current_item_ids)
        if not current:
            return False
        return current <= self.reconcile(order_id, current)

    def clear(self, order_id: uuid.UUID) -> None:
        with self._lock:
            self._prepared.pop(order_id, None)


prepared_items = PreparedItemTracker()
