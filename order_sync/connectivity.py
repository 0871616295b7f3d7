# Connectivity Gate - online/offline tracking for the order sync agent
# Drains the action queue whenever the tablet comes back online

import logging
import threading
from typing import Callable, Dict, Optional

from .order_state import OrderState

logger = logging.getLogger(__name__)

# Seconds between reachability probes
PROBE_INTERVAL = 10


class ConnectivityGate:
    """Online/offline state machine driven only by probe results"""

    def __init__(self, state: OrderState, probe: Callable[[], bool],
                 on_online: Optional[Callable[[], object]] = None,
                 interval: float = PROBE_INTERVAL):
        self.state = state
        self.probe = probe
        self.on_online = on_online
        self.interval = interval
        self.lock = threading.Lock()
        self.running = False
        self.thread = None
        self._stop = threading.Event()

    @property
    def is_online(self) -> bool:
        return self.state.is_online

    def report(self, reachable: bool) -> bool:
        """Record a probe result. Returns True when it was an offline->online transition."""
        reachable = bool(reachable)
        with self.lock:
            was_online = self.state.is_online
            self.state.is_online = reachable

        if was_online == reachable:
            return False

        if reachable:
            logger.info("Connectivity restored")
            if self.on_online:
                self.on_online()
            return True

        logger.warning("Connectivity lost, mutations will be queued")
        return False

    def probe_once(self) -> Optional[bool]:
        """Run the probe once. A probe that raises gives no result and no transition."""
        try:
            reachable = bool(self.probe())
        except Exception as e:
            logger.error(f"Connectivity probe failed: {e}")
            return None
        self.report(reachable)
        return reachable

    def start(self):
        """Start probing on a background thread"""
        if self.running:
            return
        self.running = True
        self._stop.clear()
        self.thread = threading.Thread(target=self._probe_loop, daemon=True)
        self.thread.start()
        logger.info(f"Connectivity probe started (every {self.interval}s)")

    def stop(self):
        self.running = False
        self._stop.set()
        if self.thread:
            self.thread.join(timeout=self.interval + 1)
            self.thread = None

    def _probe_loop(self):
        while self.running:
            self.probe_once()
            if self._stop.wait(self.interval):
                break

    def get_status(self) -> Dict:
        return {
            'is_online': self.state.is_online,
            'probing': self.running,
            'interval': self.interval,
        }
