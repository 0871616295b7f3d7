# Order Client - REST API client for the tablet order service
# Fetches order snapshots and sends acknowledgements / status changes

import requests
import logging
import threading
from typing import Dict, Any, List, Optional

from .errors import ErrorKind, failure
from .models import Order, utc_now_iso

logger = logging.getLogger(__name__)


class OrderServiceClient:
    """REST API client for the remote order service.

    Every call returns a result dict with ``success`` and, on failure,
    ``error`` and ``error_kind``. Calls never raise.
    """

    def __init__(self, base_url: str, api_key: str = None, timeout: int = 15,
                 orders_path: str = '/api/tablet/orders'):
        self.base_url = base_url.rstrip('/')
        self.orders_path = orders_path if orders_path.startswith('/') else '/' + orders_path
        self.api_key = api_key
        self.timeout = timeout
        self.session = requests.Session()

        if api_key:
            self.session.headers.update({'Authorization': f'Bearer {api_key}'})

        self.session.headers.update({
            'Content-Type': 'application/json',
            'User-Agent': 'OrderSync-Tablet/1.0'
        })

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """Send a request and classify the outcome"""
        endpoint = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, endpoint, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout:
            logger.warning(f"Timeout on {method} {path}")
            return failure('Request timed out', ErrorKind.NETWORK)
        except requests.exceptions.ConnectionError as e:
            logger.warning(f"Connection error on {method} {path}: {e}")
            return failure('Connection error', ErrorKind.NETWORK)
        except requests.exceptions.RequestException as e:
            logger.error(f"Unexpected request error on {method} {path}: {e}")
            return failure(str(e), ErrorKind.UNKNOWN)

        if response.status_code in (401, 403):
            logger.error("Authentication failed - session rejected by order service")
            return failure(f'Authentication failed (HTTP {response.status_code})',
                           ErrorKind.AUTH, response.status_code)

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.ok:
            message = self._error_message(body) or response.text or response.reason
            logger.warning(f"{method} {path} failed: HTTP {response.status_code} {message}")
            return failure(f"{message} (HTTP {response.status_code})",
                           ErrorKind.REJECTED, response.status_code)

        return {'success': True, 'body': body, 'status_code': response.status_code}

    @staticmethod
    def _error_message(body: Any) -> Optional[str]:
        if isinstance(body, dict):
            return body.get('error') or body.get('message')
        return None

    def fetch_snapshot(self) -> Dict[str, Any]:
        """Fetch the current order list. Result carries ``orders`` on success."""
        result = self._request('GET', self.orders_path)
        if not result['success']:
            return result

        body = result['body']
        raw_orders = body.get('orders') if isinstance(body, dict) else None
        if not isinstance(raw_orders, list):
            raw_orders = []
        orders = [Order.from_dict(raw) for raw in raw_orders if isinstance(raw, dict)]
        logger.debug(f"Fetched {len(orders)} orders")
        return {
            'success': True,
            'orders': orders,
            'total': body.get('total_count', len(orders)) if isinstance(body, dict) else len(orders),
            'status_code': result['status_code'],
        }

    def acknowledge(self, order_id: str, acknowledged_at: str = None) -> Dict[str, Any]:
        """Acknowledge an order. Result carries the server's ``fields`` on success."""
        payload = {'acknowledged_at': acknowledged_at} if acknowledged_at else None
        result = self._request('POST', f"{self.orders_path}/{order_id}", json=payload)
        if not result['success']:
            return result

        body = result['body'] if isinstance(result['body'], dict) else {}
        if not body.get('success'):
            return failure(body.get('error') or 'Failed to acknowledge order', ErrorKind.REJECTED,
                           result['status_code'])
        return {
            'success': True,
            'fields': {'acknowledged_at': body.get('acknowledged_at') or acknowledged_at},
            'status_code': result['status_code'],
        }

    def update_status(self, numeric_id: int, status: str) -> Dict[str, Any]:
        """Change an order's status by its legacy numeric reference"""
        result = self._request('PATCH', f"{self.orders_path}/{numeric_id}/status",
                               json={'status': status})
        if not result['success']:
            return result

        body = result['body'] if isinstance(result['body'], dict) else {}
        if not body.get('success'):
            return failure(body.get('error') or 'Unknown error', ErrorKind.REJECTED,
                           result['status_code'])
        logger.info(f"Order {numeric_id} status updated to {status}")
        return {'success': True, 'status_code': result['status_code']}

    def check_health(self) -> bool:
        """Check if server is reachable"""
        try:
            response = self.session.get(f"{self.base_url}/api/health", timeout=5)
            return response.status_code == 200
        except requests.exceptions.RequestException:
            return False

    def get_status(self) -> Dict:
        return {
            'base_url': self.base_url,
            'timeout': self.timeout,
        }


class StubOrderClient:
    """In-memory order service for tests and demo mode"""

    def __init__(self, orders: List[Dict] = None):
        self.lock = threading.Lock()
        self.orders: Dict[str, Dict] = {}
        self.reachable = True
        self.fail_with: Optional[ErrorKind] = None
        self.calls: List[tuple] = []
        for raw in orders or []:
            self.add_order(raw)

    def add_order(self, raw: Dict):
        with self.lock:
            self.orders[str(raw['id'])] = dict(raw)

    def remove_order(self, order_id: str):
        with self.lock:
            self.orders.pop(order_id, None)

    def _unavailable(self) -> Optional[Dict[str, Any]]:
        if not self.reachable:
            return failure('Connection error', ErrorKind.NETWORK)
        if self.fail_with is not None:
            return failure(f'[STUB] forced {self.fail_with.value} failure', self.fail_with)
        return None

    def fetch_snapshot(self) -> Dict[str, Any]:
        self.calls.append(('fetch_snapshot',))
        error = self._unavailable()
        if error:
            return error
        with self.lock:
            orders = [Order.from_dict(raw) for raw in self.orders.values()]
        return {'success': True, 'orders': orders, 'total': len(orders)}

    def acknowledge(self, order_id: str, acknowledged_at: str = None) -> Dict[str, Any]:
        self.calls.append(('acknowledge', order_id, acknowledged_at))
        error = self._unavailable()
        if error:
            return error
        with self.lock:
            raw = self.orders.get(order_id)
            if raw is None:
                return failure('Order not found', ErrorKind.REJECTED, 404)
            if not raw.get('acknowledged_at'):
                raw['acknowledged_at'] = acknowledged_at or utc_now_iso()
            stamp = raw['acknowledged_at']
        logger.info(f"[STUB] Acknowledged order {order_id}")
        return {'success': True, 'fields': {'acknowledged_at': stamp}}

    def update_status(self, numeric_id: int, status: str) -> Dict[str, Any]:
        self.calls.append(('update_status', numeric_id, status))
        error = self._unavailable()
        if error:
            return error
        with self.lock:
            for raw in self.orders.values():
                if Order.from_dict(raw).numeric_id == numeric_id:
                    raw['status'] = status
                    raw['updated_at'] = utc_now_iso()
                    logger.info(f"[STUB] Order {numeric_id} -> {status}")
                    return {'success': True}
        return failure('Order not found', ErrorKind.REJECTED, 404)

    def check_health(self) -> bool:
        return self.reachable
