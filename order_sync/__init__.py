# Order Sync Agent
# Offline-tolerant order synchronization for kitchen tablets

__version__ = '0.1.0'

from .models import Order, OrderItem, QueuedAction, StatusUpdateFailure
from .errors import ErrorKind, SyncError
from .local_store import LocalStore
from .action_queue import ActionQueue
from .order_state import OrderState, AckOverlay
from .reconciler import Reconciler
from .mutation_executor import MutationExecutor
from .connectivity import ConnectivityGate
from .print_ledger import PrintLedger
from .stuck_orders import StuckOrderDetector
from .order_client import OrderServiceClient, StubOrderClient
from .recovery_manager import RecoveryManager
from .sync_engine import OrderSyncEngine

__all__ = [
    'Order',
    'OrderItem',
    'QueuedAction',
    'StatusUpdateFailure',
    'ErrorKind',
    'SyncError',
    'LocalStore',
    'ActionQueue',
    'OrderState',
    'AckOverlay',
    'Reconciler',
    'MutationExecutor',
    'ConnectivityGate',
    'PrintLedger',
    'StuckOrderDetector',
    'OrderServiceClient',
    'StubOrderClient',
    'RecoveryManager',
    'OrderSyncEngine',
]
