# Recovery Manager - restart recovery for the order sync agent
# Reports work left over from the previous run and replays the queue

import logging
from datetime import datetime
from typing import Dict, Any

from .action_queue import ActionQueue
from .local_store import LocalStore

logger = logging.getLogger(__name__)


class RecoveryManager:
    """Manages crash recovery and replay of queued actions"""

    def __init__(self, store: LocalStore, queue: ActionQueue, executor):
        self.store = store
        self.queue = queue
        self.executor = executor
        self.last_shutdown = None
        self.downtime_logged = False

    def on_startup(self) -> Dict[str, Any]:
        """Run recovery process on startup"""
        recovery_report = {
            'started_at': datetime.now().isoformat(),
            'queued_actions': len(self.queue),
            'drain': None,
            'downtime_logged': False,
        }

        self.last_shutdown = self.store.load_state('last_shutdown', None)
        if self.last_shutdown:
            logger.info(f"Last shutdown was at {self.last_shutdown}")
            self._log_downtime()
            recovery_report['downtime_logged'] = True
        elif self.store.load_state('last_recovery') is not None:
            logger.warning("No clean shutdown recorded - previous run may have crashed")

        queued = recovery_report['queued_actions']
        if queued and self.executor.state.is_online:
            logger.info(f"Found {queued} queued actions from last run")
            recovery_report['drain'] = self.executor.drain_queue()
        elif queued:
            # Replayed by the connectivity gate once a probe succeeds
            logger.info(f"Found {queued} queued actions from last run, offline - deferring replay")

        recovery_report['completed_at'] = datetime.now().isoformat()
        self.store.save_state('last_recovery', recovery_report)
        # Cleared so a crash before the next shutdown is detectable
        self.store.save_state('last_shutdown', None)

        return recovery_report

    def _log_downtime(self):
        downtime_info = {
            'last_shutdown': self.last_shutdown,
            'restart_at': datetime.now().isoformat(),
            'message': 'Tablet was off - orders placed meanwhile arrive with the next fetch',
        }
        self.store.save_state('downtime_log', downtime_info)
        self.downtime_logged = True
        logger.warning(f"DOWNTIME: tablet offline since {self.last_shutdown}")

    def on_shutdown(self):
        """Save state before shutdown"""
        pending = len(self.queue)
        self.store.save_state('last_shutdown', datetime.now().isoformat())
        self.store.save_state('pending_on_shutdown', pending)
        logger.info(f"Shutdown: {pending} actions still queued")

    def get_recovery_status(self) -> Dict:
        return {
            'last_shutdown': self.last_shutdown,
            'downtime_logged': self.downtime_logged,
            'queued_actions': len(self.queue),
            'last_recovery': self.store.load_state('last_recovery'),
        }
