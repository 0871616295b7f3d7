# Print Ledger - persisted record of printed / failed order tickets
# Keeps restarts from printing the same kitchen ticket twice

import logging
import threading
from typing import Dict, Iterable, List, Optional, Set

from .local_store import LocalStore
from .models import Order, PENDING

logger = logging.getLogger(__name__)

PRINTED_KEY = 'printed_order_ids'
FAILED_KEY = 'failed_print_order_ids'


class PrintLedger:
    """Two disjoint id sets: printed and print-failed.

    Loaded once at startup; every change rewrites both sets. Ids are never
    removed from the printed set.
    """

    def __init__(self, store: LocalStore):
        self.store = store
        self.lock = threading.Lock()
        self._write_lock = threading.Lock()
        self.printed: Set[str] = set()
        self.failed: Set[str] = set()
        self.loaded = False

    def load(self):
        printed = self.store.load_state(PRINTED_KEY, [])
        failed = self.store.load_state(FAILED_KEY, [])
        with self.lock:
            self.printed = set(printed or []) | self.printed
            self.failed = (set(failed or []) | self.failed) - self.printed
            self.loaded = True
        logger.info(f"Loaded {len(self.printed)} printed order ids, {len(self.failed)} failed")

    def _save(self):
        # Snapshot and write under one lock so the stored sets never lag memory
        with self._write_lock:
            with self.lock:
                printed, failed = sorted(self.printed), sorted(self.failed)
            self.store.save_state(PRINTED_KEY, printed)
            self.store.save_state(FAILED_KEY, failed)

    def mark_printed(self, order_id: str):
        with self.lock:
            self.failed = self.failed - {order_id}
            self.printed = self.printed | {order_id}
        self._save()

    def mark_failed(self, order_id: str):
        with self.lock:
            if order_id in self.printed:
                # A reprint failing does not undo the earlier print
                logger.info(f"Print failed for already printed order {order_id}")
                return
            self.failed = self.failed | {order_id}
        self._save()

    def is_printed(self, order_id: str) -> bool:
        with self.lock:
            return order_id in self.printed

    def is_failed(self, order_id: str) -> bool:
        with self.lock:
            return order_id in self.failed

    def is_handled(self, order_id: str) -> bool:
        with self.lock:
            return order_id in self.printed or order_id in self.failed

    def needs_auto_print(self, orders: Iterable[Order],
                         known_ids: Optional[Set[str]] = None) -> List[Order]:
        """New pending orders that have neither printed nor failed.

        With ``known_ids`` only orders not seen before count as new.
        """
        with self.lock:
            handled = self.printed | self.failed
        return [
            o for o in orders
            if o.status == PENDING
            and o.id not in handled
            and (known_ids is None or o.id not in known_ids)
        ]

    def pending_reprints(self, orders: Iterable[Order]) -> List[Order]:
        """Orders still waiting for a ticket: not printed and pending or failed"""
        with self.lock:
            printed, failed = set(self.printed), set(self.failed)
        return [o for o in orders if o.id not in printed and (o.status == PENDING or o.id in failed)]

    def get_status(self) -> Dict:
        with self.lock:
            return {
                'loaded': self.loaded,
                'printed': len(self.printed),
                'failed': len(self.failed),
            }
