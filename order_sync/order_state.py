# Order State - the single owned state object shared by the sync components
# Every change is a whole-value replace under the lock; readers get copies

import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple

from .local_store import LocalStore
from .models import Order, TERMINAL_STATUSES

logger = logging.getLogger(__name__)

OVERLAY_KEY = 'accepted_orders'


class AckOverlay:
    """Locally recorded acknowledgement timestamps, keyed by order id.

    Persisted under ``accepted_orders``. Until ``load()`` has run the
    overlay is considered unknown and reconciliation leaves snapshots alone.
    """

    def __init__(self, store: LocalStore):
        self.store = store
        self.lock = threading.Lock()
        # Held across snapshot and write so the stored map never lags memory
        self._write_lock = threading.Lock()
        self._entries: Dict[str, str] = {}
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    def load(self) -> Dict[str, str]:
        stored = self.store.load_state(OVERLAY_KEY, {})
        if not isinstance(stored, dict):
            logger.warning("Ignoring malformed acknowledgement overlay in storage")
            stored = {}
        with self.lock:
            # Entries recorded before the load finished win over stored ones
            merged = dict(stored)
            merged.update(self._entries)
            early = bool(self._entries)
            self._entries = merged
            self._loaded = True
        if early:
            self._persist()
        logger.info(f"Loaded {len(stored)} local acknowledgements")
        return self.snapshot()

    def snapshot(self) -> Dict[str, str]:
        with self.lock:
            return dict(self._entries)

    def get(self, order_id: str) -> Optional[str]:
        with self.lock:
            return self._entries.get(order_id)

    def record(self, order_id: str, acknowledged_at: str) -> str:
        """Record an acknowledgement. An existing timestamp is kept and returned."""
        with self.lock:
            existing = self._entries.get(order_id)
            if existing is not None:
                return existing
            entries = dict(self._entries)
            entries[order_id] = acknowledged_at
            self._entries = entries
            loaded = self._loaded
        # Before load() the stored map is unknown; load() merges and persists
        if loaded:
            self._persist()
        return acknowledged_at

    def prune(self, keep_ids) -> List[str]:
        """Drop entries whose order is not in keep_ids; returns removed ids."""
        keep_ids = set(keep_ids)
        with self.lock:
            removed = [oid for oid in self._entries if oid not in keep_ids]
            if not removed:
                return []
            self._entries = {oid: ts for oid, ts in self._entries.items() if oid in keep_ids}
        self._persist()
        return removed

    def _persist(self):
        with self._write_lock:
            self.store.save_state(OVERLAY_KEY, self.snapshot())

    def __contains__(self, order_id: str) -> bool:
        with self.lock:
            return order_id in self._entries

    def __len__(self) -> int:
        with self.lock:
            return len(self._entries)


class OrderState:
    """Orders, selection, connectivity and session shared across components"""

    def __init__(self, store: LocalStore, is_online: bool = True):
        self.lock = threading.Lock()
        self.overlay = AckOverlay(store)
        self._orders: Tuple[Order, ...] = ()
        self._selected: Optional[Order] = None
        self._generations: Dict[str, int] = {}
        self.is_online = is_online
        self.is_authenticated = True
        self.last_fetch_time: Optional[str] = None
        self.error: Optional[str] = None

    # Orders

    @property
    def orders(self) -> List[Order]:
        with self.lock:
            return list(self._orders)

    @property
    def selected_order(self) -> Optional[Order]:
        with self.lock:
            return self._selected

    def get_order(self, order_id: str) -> Optional[Order]:
        with self.lock:
            for order in self._orders:
                if order.id == order_id:
                    return order
        return None

    def select_order(self, order_id: Optional[str]) -> Optional[Order]:
        with self.lock:
            self._selected = None
            if order_id is not None:
                self._selected = next((o for o in self._orders if o.id == order_id), None)
            return self._selected

    def replace_orders(self, orders: List[Order]) -> None:
        """Swap in a new order set. The selection follows its id or is cleared."""
        with self.lock:
            self._orders = tuple(orders)
            if self._selected is not None:
                self._selected = next((o for o in self._orders if o.id == self._selected.id), None)

    def update_order(self, order_id: str, change: Callable[[Order], Order]) -> Optional[Order]:
        """Apply change to one order and to the selected mirror. Others are untouched."""
        with self.lock:
            updated = None
            orders = []
            for order in self._orders:
                if order.id == order_id:
                    order = change(order)
                    updated = order
                orders.append(order)
            if updated is None:
                return None
            self._orders = tuple(orders)
            if self._selected is not None and self._selected.id == order_id:
                self._selected = change(self._selected)
            return updated

    # Request fencing

    def begin_request(self, order_id: str) -> int:
        """Start a mutation on order_id; returns its generation number."""
        with self.lock:
            generation = self._generations.get(order_id, 0) + 1
            self._generations[order_id] = generation
            return generation

    def is_latest_request(self, order_id: str, generation: int) -> bool:
        with self.lock:
            return self._generations.get(order_id, 0) == generation

    def record_fetch(self, fetched_at: Optional[str], error: Optional[str] = None) -> None:
        with self.lock:
            if fetched_at is not None:
                self.last_fetch_time = fetched_at
            self.error = error

    # Session

    def restore_session(self) -> None:
        with self.lock:
            self.is_authenticated = True

    def clear_session(self) -> None:
        """Forget everything tied to the signed-in device"""
        with self.lock:
            self.is_authenticated = False
            self._orders = ()
            self._selected = None
            self._generations = {}
            self.last_fetch_time = None

    def get_status(self) -> Dict:
        with self.lock:
            return {
                'orders': len(self._orders),
                'active_orders': sum(1 for o in self._orders if o.status not in TERMINAL_STATUSES),
                'selected_order_id': self._selected.id if self._selected else None,
                'is_online': self.is_online,
                'is_authenticated': self.is_authenticated,
                'last_fetch_time': self.last_fetch_time,
                'error': self.error,
                'overlay_loaded': self.overlay.loaded,
            }
