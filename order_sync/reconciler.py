# Reconciler - folds fresh server snapshots into local order state
#
# Membership and every field except acknowledged_at are server-owned. For
# orders still pending/confirmed/preparing the acknowledgement comes from the
# local overlay, because the server marks orders acknowledged as soon as the
# tablet fetches them and the kitchen alert depends on the local flag.

import logging
from typing import Dict, Iterable, List

from .models import Order
from .order_state import OrderState

logger = logging.getLogger(__name__)


class Reconciler:
    """Merges server snapshots with the local acknowledgement overlay"""

    def __init__(self, state: OrderState):
        self.state = state

    def merge(self, snapshot: Iterable[Order]) -> List[Order]:
        """Compute the reconciled order list without storing it"""
        snapshot = list(snapshot)
        overlay = self.state.overlay

        if overlay.loaded:
            newish_ids = {o.id for o in snapshot if o.is_newish}
            removed = overlay.prune(newish_ids)
            if removed:
                logger.info(f"Pruned {len(removed)} acknowledgements for orders past new: {removed}")
            acks = overlay.snapshot()
            merged = [
                o.with_changes(acknowledged_at=acks.get(o.id)) if o.is_newish else o
                for o in snapshot
            ]
        else:
            logger.debug("Acknowledgement overlay not loaded yet, using snapshot as-is")
            merged = snapshot

        merged.sort(key=lambda o: o.created, reverse=True)
        return merged

    def reconcile(self, snapshot: Iterable[Order]) -> List[Order]:
        """Replace local orders with the reconciled snapshot and return it"""
        previous_ids = {o.id for o in self.state.orders}
        merged = self.merge(snapshot)
        self.state.replace_orders(merged)

        dropped = previous_ids - {o.id for o in merged}
        if dropped:
            logger.info(f"Dropped {len(dropped)} orders no longer on the server")
        return merged

    def get_status(self) -> Dict:
        return {
            'overlay_loaded': self.state.overlay.loaded,
            'overlay_entries': len(self.state.overlay),
        }
