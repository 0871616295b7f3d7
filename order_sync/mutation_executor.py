# Mutation Executor - applies acknowledgements and status changes
# Optimistic local apply, remote call, per-order rollback, offline queueing

import logging
import threading
from dataclasses import fields as dataclass_fields
from typing import Callable, Dict, Optional, Any

from .action_queue import ActionQueue
from .errors import ErrorKind, failure
from .models import (
    ACTION_ACKNOWLEDGE, ACTION_STATUS_UPDATE, ORDER_STATUSES,
    Order, QueuedAction, StatusUpdateFailure, utc_now_iso,
)
from .optimistic import OptimisticUpdate
from .order_state import OrderState

logger = logging.getLogger(__name__)

_ORDER_FIELDS = {f.name for f in dataclass_fields(Order)} - {'id'}


def _log_alert(notice: StatusUpdateFailure):
    logger.error(
        f"Status update failed: could not update order {notice.order_id} "
        f"to {notice.target_status}: {notice.error}"
    )


class MutationExecutor:
    """Sends local order mutations to the order service.

    Calls are independent of each other; two updates to different orders never
    interfere. The queue drain is single-flight.
    """

    def __init__(self, state: OrderState, queue: ActionQueue, client,
                 alert_sink: Optional[Callable[[StatusUpdateFailure], None]] = None,
                 on_auth_failure: Optional[Callable[[Dict[str, Any]], None]] = None):
        self.state = state
        self.queue = queue
        self.client = client
        self.alert_sink = alert_sink or _log_alert
        self.on_auth_failure = on_auth_failure
        self._drain_lock = threading.Lock()

    def acknowledge(self, order_id: str) -> bool:
        """Acknowledge an order. The local acknowledgement always stands."""
        order = self.state.get_order(order_id)
        numeric_id = order.numeric_id if order else None
        acknowledged_at = self.state.overlay.record(order_id, utc_now_iso())

        if not self.state.is_online:
            if self.queue.has_pending(ACTION_ACKNOWLEDGE, order_id):
                logger.debug(f"Acknowledge for {order_id} already queued")
            else:
                self.queue.enqueue(ACTION_ACKNOWLEDGE, order_id, {
                    'acknowledged_at': acknowledged_at,
                    'numeric_id': numeric_id,
                })
            return True

        result = self._call(self.client.acknowledge, order_id, acknowledged_at)
        if result['success']:
            self._merge_fields(order_id, result.get('fields') or {})
            logger.info(f"Order {order_id} acknowledged")
            return True

        kind = result.get('error_kind')
        if kind == ErrorKind.AUTH:
            self._auth_failed(result)
        elif kind == ErrorKind.NETWORK and not self.queue.has_pending(ACTION_ACKNOWLEDGE, order_id):
            self.queue.enqueue(ACTION_ACKNOWLEDGE, order_id, {
                'acknowledged_at': acknowledged_at,
                'numeric_id': numeric_id,
            })
        logger.warning(f"Acknowledge failed for order {order_id}: {result.get('error')}")
        return False

    def update_status(self, order_id: str, status: str) -> bool:
        """Move an order to a new status, rolling back only that order on failure"""
        if status not in ORDER_STATUSES:
            logger.warning(f"Rejected unknown status {status!r} for order {order_id}")
            return False

        order = self.state.get_order(order_id)
        if order is None:
            logger.warning(f"Rejected status update for unknown order {order_id}")
            return False

        generation = self.state.begin_request(order_id)
        update = OptimisticUpdate(
            read=lambda: (self.state.get_order(order_id) or order).status,
            write=lambda value: self.state.update_order(
                order_id, lambda o: o.with_changes(status=value)),
            guard=lambda: self.state.is_latest_request(order_id, generation),
            label=f"{order_id}->{status}",
        )
        update.attempt(status)
        numeric_id = order.numeric_id

        if not self.state.is_online:
            self.queue.enqueue(ACTION_STATUS_UPDATE, order_id, {
                'status': status,
                'numeric_id': numeric_id,
            })
            update.commit()
            return True

        if numeric_id is None:
            update.rollback()
            self._alert(status, 'Order has no numeric reference', order_id)
            return False

        result = self._call(self.client.update_status, numeric_id, status)
        if result['success']:
            update.commit()
            logger.info(f"Order {order_id} updated to {status}")
            return True

        update.rollback()
        if result.get('error_kind') == ErrorKind.AUTH:
            self._auth_failed(result)
        self._alert(status, result.get('error') or 'Unknown error', order_id)
        return False

    def drain_queue(self) -> Dict[str, Any]:
        """Process every queued action once, oldest first"""
        if not self._drain_lock.acquire(blocking=False):
            logger.info("Queue drain already in progress, skipping")
            return {'skipped': True}

        report = {'skipped': False, 'processed': 0, 'succeeded': 0,
                  'retried': 0, 'dropped': 0, 'halted': False}
        try:
            if not self.state.is_online:
                return report

            actions = self.queue.pending()
            if actions:
                logger.info(f"Draining {len(actions)} queued actions")

            for action in actions:
                report['processed'] += 1
                result = self._dispatch(action)

                if result['success']:
                    self.queue.dequeue_on_success(action.id)
                    report['succeeded'] += 1
                elif result.get('error_kind') == ErrorKind.AUTH:
                    # Session is gone; keep the action for after re-login
                    self._auth_failed(result)
                    report['halted'] = True
                    break
                elif self.queue.is_exhausted(action):
                    self.queue.dequeue_on_exhaustion(action.id)
                    report['dropped'] += 1
                else:
                    self.queue.record_failure(action.id)
                    report['retried'] += 1
        finally:
            self._drain_lock.release()

        return report

    def _dispatch(self, action: QueuedAction) -> Dict[str, Any]:
        if action.type == ACTION_ACKNOWLEDGE:
            result = self._call(self.client.acknowledge, action.order_id,
                                action.payload.get('acknowledged_at'))
            if result['success']:
                self._merge_fields(action.order_id, result.get('fields') or {})
            return result

        if action.type == ACTION_STATUS_UPDATE:
            numeric_id = self._resolve_numeric_id(action)
            if numeric_id is None:
                logger.warning(f"No numeric reference for queued update of {action.order_id}")
                return failure('Order has no numeric reference', ErrorKind.MISSING_REFERENCE)
            return self._call(self.client.update_status, numeric_id, action.payload.get('status'))

        logger.error(f"Unknown queued action type {action.type!r} ({action.id})")
        return failure(f'Unknown action type {action.type}', ErrorKind.UNKNOWN)

    def _resolve_numeric_id(self, action: QueuedAction) -> Optional[int]:
        numeric_id = action.payload.get('numeric_id')
        if numeric_id:
            return numeric_id
        order = self.state.get_order(action.order_id)
        return order.numeric_id if order else None

    def _call(self, func, *args) -> Dict[str, Any]:
        """Invoke a client method, turning an unexpected exception into a result"""
        try:
            return func(*args)
        except Exception as e:
            logger.exception(f"Order service call {func.__name__} raised")
            return failure(str(e), ErrorKind.UNKNOWN)

    def _merge_fields(self, order_id: str, server_fields: Dict[str, Any]):
        changes = {k: v for k, v in server_fields.items() if k in _ORDER_FIELDS and v is not None}
        if changes:
            self.state.update_order(order_id, lambda o: o.with_changes(**changes))

    def _alert(self, status: str, error: str, order_id: str):
        self.alert_sink(StatusUpdateFailure(target_status=status, error=error, order_id=order_id))

    def _auth_failed(self, result: Dict[str, Any]):
        logger.error(f"Order service rejected the session: {result.get('error')}")
        if self.on_auth_failure:
            self.on_auth_failure(result)
