# Stuck Order Detector - flags orders sitting in one status too long

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from .models import Order, PENDING, CONFIRMED, PREPARING, READY, try_parse_timestamp

logger = logging.getLogger(__name__)

# Minutes an order may stay in a status before it counts as stuck.
# Statuses not listed (delivery, terminal) are never stuck.
STUCK_THRESHOLDS = {
    PENDING: 5,
    CONFIRMED: 15,
    PREPARING: 30,
    READY: 20,
}


def _minutes_in_status(order: Order, now: datetime) -> Optional[int]:
    """Minutes since the last status change; None when the order has no usable timestamp"""
    since = try_parse_timestamp(order.updated_at) or try_parse_timestamp(order.created_at)
    if since is None:
        return None
    return int((now - since).total_seconds() // 60)


class StuckOrderDetector:
    """Detects orders exceeding their status threshold and alerts once per order"""

    def __init__(self, alert_callback: Optional[Callable[[Dict], None]] = None,
                 thresholds: Dict[str, int] = None):
        self.alert_callback = alert_callback
        self.thresholds = dict(thresholds or STUCK_THRESHOLDS)
        # order id -> status it was reported stuck in
        self.alerted: Dict[str, str] = {}

    def threshold_for(self, status: str) -> Optional[int]:
        return self.thresholds.get(status)

    def is_stuck(self, order: Order, now: datetime = None) -> bool:
        threshold = self.threshold_for(order.status)
        if threshold is None:
            return False
        now = now or datetime.now(timezone.utc)
        minutes = _minutes_in_status(order, now)
        return minutes is not None and minutes >= threshold

    def minutes_until_stuck(self, order: Order, now: datetime = None) -> Optional[int]:
        """Minutes left before the order is stuck; zero or negative once it is"""
        threshold = self.threshold_for(order.status)
        if threshold is None:
            return None
        now = now or datetime.now(timezone.utc)
        minutes = _minutes_in_status(order, now)
        return None if minutes is None else threshold - minutes

    def detect(self, orders: List[Order], now: datetime = None) -> List[Dict]:
        """Return stuck orders, most stuck first, alerting for newly stuck ones"""
        now = now or datetime.now(timezone.utc)
        stuck = []

        for order in orders:
            threshold = self.threshold_for(order.status)
            if threshold is None:
                continue
            minutes = _minutes_in_status(order, now)
            if minutes is None or minutes < threshold:
                continue
            stuck.append({
                'order_id': order.id,
                'order_number': order.order_number,
                'status': order.status,
                'minutes_stuck': minutes,
                'created_at': order.created_at,
            })

        stuck.sort(key=lambda info: info['minutes_stuck'], reverse=True)

        current = {info['order_id'] for info in stuck}
        self.alerted = {oid: status for oid, status in self.alerted.items() if oid in current}
        for info in stuck:
            if self.alerted.get(info['order_id']) == info['status']:
                continue
            self.alerted[info['order_id']] = info['status']
            logger.warning(
                f"STUCK: order {info['order_number'] or info['order_id']} "
                f"{info['status']} for {info['minutes_stuck']} min"
            )
            if self.alert_callback:
                self.alert_callback(info)

        return stuck

    def get_status(self) -> Dict:
        return {
            'thresholds': dict(self.thresholds),
            'alerted': len(self.alerted),
        }
