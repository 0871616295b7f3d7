# Sync Engine - wires the order sync components together
# Polls snapshots, probes connectivity, auto-prints new orders

import logging
import threading
from collections import deque
from typing import Callable, Dict, List, Optional, Set, Any

from .action_queue import ActionQueue
from .connectivity import ConnectivityGate, PROBE_INTERVAL
from .errors import ErrorKind
from .local_store import LocalStore
from .models import Order, StatusUpdateFailure, utc_now_iso
from .mutation_executor import MutationExecutor
from .order_state import OrderState
from .print_ledger import PrintLedger
from .reconciler import Reconciler
from .recovery_manager import RecoveryManager
from .stuck_orders import StuckOrderDetector

logger = logging.getLogger(__name__)

# Seconds between order snapshot fetches
POLL_INTERVAL = 5

# Recent error alerts kept for the status endpoint
MAX_ALERTS = 20


class OrderSyncEngine:
    """Owns the order state and every component that operates on it"""

    def __init__(self, client, store: LocalStore,
                 print_order: Optional[Callable[[Order], bool]] = None,
                 alert_sink: Optional[Callable[[StatusUpdateFailure], None]] = None,
                 stuck_alert: Optional[Callable[[Dict], None]] = None,
                 auto_print: bool = True,
                 poll_interval: float = POLL_INTERVAL,
                 probe_interval: float = PROBE_INTERVAL,
                 is_online: bool = True):
        self.client = client
        self.store = store
        self.print_order = print_order
        self.auto_print = auto_print
        self.poll_interval = poll_interval

        self.state = OrderState(store, is_online=is_online)
        self.queue = ActionQueue(store)
        self.reconciler = Reconciler(self.state)
        self.executor = MutationExecutor(
            self.state, self.queue, client,
            alert_sink=alert_sink,
            on_auth_failure=self.deauthenticate,
        )
        self.gate = ConnectivityGate(
            self.state, client.check_health,
            on_online=self.executor.drain_queue,
            interval=probe_interval,
        )
        self.ledger = PrintLedger(store)
        self.stuck = StuckOrderDetector(stuck_alert)
        self.recovery = RecoveryManager(store, self.queue, self.executor)

        # None until the first snapshot; orders already present then are not auto-printed
        self.known_order_ids: Optional[Set[str]] = None
        self.alerts = deque(maxlen=MAX_ALERTS)
        self.running = False
        self.thread = None
        self._stop = threading.Event()

    def start(self, background: bool = True) -> Dict[str, Any]:
        """Load persisted state, run recovery, then start polling"""
        logger.info("Order sync engine starting...")
        self.ledger.load()
        self.state.overlay.load()
        # Connectivity is unknown until the first probe answers; queued work waits for it
        reachable = self.gate.probe_once()
        if reachable is None:
            self.state.is_online = False
        report = self.recovery.on_startup()

        if background:
            self.gate.start()
            self.running = True
            self._stop.clear()
            self.thread = threading.Thread(target=self._poll_loop, daemon=True)
            self.thread.start()
            logger.info(f"Polling orders every {self.poll_interval}s")
        return report

    def stop(self):
        self.running = False
        self._stop.set()
        self.gate.stop()
        if self.thread:
            self.thread.join(timeout=self.poll_interval + 1)
            self.thread = None
        self.recovery.on_shutdown()

    def _poll_loop(self):
        while self.running:
            try:
                self.fetch_orders()
            except Exception:
                logger.exception("Order poll failed")
            if self._stop.wait(self.poll_interval):
                break

    def fetch_orders(self) -> bool:
        """Fetch and reconcile one snapshot. Skipped while offline or signed out."""
        if not self.state.is_online:
            logger.debug("Skipping fetch - offline")
            return False
        if not self.state.is_authenticated:
            logger.debug("Skipping fetch - not authenticated")
            return False

        result = self.client.fetch_snapshot()
        if not result['success']:
            self.state.record_fetch(None, result.get('error') or 'Failed to fetch orders')
            if result.get('error_kind') == ErrorKind.AUTH:
                self.deauthenticate(result)
            else:
                logger.warning(f"Order fetch failed: {result.get('error')}")
            return False

        orders = self.reconciler.reconcile(result['orders'])
        self.state.record_fetch(utc_now_iso())
        self._handle_new_orders(orders)
        self.stuck.detect(orders)
        return True

    def _handle_new_orders(self, orders: List[Order]):
        current_ids = {o.id for o in orders}
        if self.known_order_ids is None:
            self.known_order_ids = current_ids
            logger.info(f"Initial load: {len(orders)} existing orders")
            return

        new_orders = self.ledger.needs_auto_print(orders, self.known_order_ids)
        self.known_order_ids = current_ids
        if not new_orders:
            return

        logger.info(f"Found {len(new_orders)} new orders")
        if self.auto_print:
            for order in new_orders:
                self.print_ticket(order)

    def print_ticket(self, order: Order) -> bool:
        """Print a ticket through the printer callable and record the outcome"""
        if self.print_order is None:
            logger.warning(f"No printer configured, order {order.id} not printed")
            self.ledger.mark_failed(order.id)
            return False
        try:
            printed = bool(self.print_order(order))
        except Exception:
            logger.exception(f"Printer raised for order {order.id}")
            printed = False

        if printed:
            self.ledger.mark_printed(order.id)
            logger.info(f"Order {order.order_number or order.id} printed")
        else:
            self.ledger.mark_failed(order.id)
            logger.warning(f"Order {order.order_number or order.id} print failed")
        return printed

    def retry_failed_prints(self) -> int:
        """Print every order still waiting on a ticket; returns how many printed"""
        return sum(1 for order in self.ledger.pending_reprints(self.state.orders) if self.print_ticket(order))

    # Operations driven by the UI

    def acknowledge(self, order_id: str) -> bool:
        return self.executor.acknowledge(order_id)

    def update_status(self, order_id: str, status: str) -> bool:
        return self.executor.update_status(order_id, status)

    def select_order(self, order_id: Optional[str]) -> Optional[Order]:
        return self.state.select_order(order_id)

    def set_online(self, is_online: bool) -> bool:
        return self.gate.report(is_online)

    def process_queue(self) -> Dict[str, Any]:
        return self.executor.drain_queue()

    def add_alert(self, message: str, level: str = 'ERROR'):
        """Keep an alert for the status endpoint. Signature matches the log alert callback."""
        self.alerts.append({'time': utc_now_iso(), 'level': level, 'message': message})

    def deauthenticate(self, result: Dict[str, Any] = None):
        """Drop the session and local order view after the server rejects it"""
        reason = (result or {}).get('error', 'signed out')
        logger.error(f"De-authenticating tablet: {reason}")
        self.state.clear_session()
        self.known_order_ids = None

    def resume_session(self):
        """Called after a successful sign-in; replays work queued meanwhile"""
        self.state.restore_session()
        logger.info("Session restored")
        return self.executor.drain_queue()

    def get_status(self) -> Dict:
        return {
            'state': self.state.get_status(),
            'queue': self.queue.get_status(),
            'connectivity': self.gate.get_status(),
            'ledger': self.ledger.get_status(),
            'reconciler': self.reconciler.get_status(),
            'recovery': self.recovery.get_recovery_status(),
            'stuck_orders': [o.id for o in self.state.orders if self.stuck.is_stuck(o)],
            'alerts': list(self.alerts),
            'running': self.running,
        }
