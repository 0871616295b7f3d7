# Action Queue - durable FIFO of mutations awaiting the order service
# Survives restarts so offline work is never silently dropped

import logging
import uuid
from typing import Dict, List, Optional, Any

from .local_store import LocalStore
from .models import QueuedAction, utc_now_iso

logger = logging.getLogger(__name__)

# Attempts allowed before an action is dropped
MAX_RETRIES = 5


class ActionQueue:
    """Ordered list of pending acknowledge / status_update actions"""

    def __init__(self, store: LocalStore, max_retries: int = MAX_RETRIES):
        self.store = store
        self.max_retries = max_retries

    def enqueue(self, action_type: str, order_id: str,
                payload: Optional[Dict[str, Any]] = None) -> QueuedAction:
        """Append a new action with retry_count 0. Actions are never coalesced."""
        action = QueuedAction(
            id=uuid.uuid4().hex,
            type=action_type,
            order_id=order_id,
            payload=dict(payload or {}),
            created_at=utc_now_iso(),
            retry_count=0,
        )
        self.store.insert_action(action.to_dict())
        logger.info(f"Queued {action_type} for order {order_id} ({len(self)} pending)")
        return action

    def pending(self) -> List[QueuedAction]:
        """Queued actions in submission order"""
        return [QueuedAction(**row) for row in self.store.list_actions()]

    def get(self, action_id: str) -> Optional[QueuedAction]:
        row = self.store.get_action(action_id)
        return QueuedAction(**row) if row else None

    def has_pending(self, action_type: str, order_id: str) -> bool:
        return any(a.type == action_type and a.order_id == order_id for a in self.pending())

    def dequeue_on_success(self, action_id: str) -> bool:
        removed = self.store.delete_action(action_id)
        if removed:
            logger.info(f"Action {action_id} confirmed, removed from queue")
        return removed

    def dequeue_on_exhaustion(self, action_id: str) -> bool:
        removed = self.store.delete_action(action_id)
        if removed:
            logger.warning(f"Action {action_id} dropped after {self.max_retries} retries")
        return removed

    def record_failure(self, action_id: str) -> Optional[int]:
        """Bump retry_count for an action that failed again; returns the new count."""
        count = self.store.increment_action_retry(action_id)
        if count is not None:
            logger.info(f"Action {action_id} failed, retry {count}/{self.max_retries}")
        return count

    def is_exhausted(self, action: QueuedAction) -> bool:
        return action.retry_count >= self.max_retries

    def __len__(self) -> int:
        return len(self.store.list_actions())

    def get_status(self) -> Dict:
        return {
            'pending': len(self),
            'max_retries': self.max_retries,
            'stats': self.store.get_stats(),
        }
