# Shared fixtures for order sync tests

import pytest

from order_sync.errors import ErrorKind, failure
from order_sync.local_store import LocalStore
from order_sync.models import Order


def make_order(order_id, status='pending', numeric_id=None, created_at='2026-10-19T10:00:00+00:00',
               **extra) -> Order:
    return Order(id=order_id, status=status, numeric_id=numeric_id, created_at=created_at, **extra)


class RecordingClient:
    """Order service double that records calls and returns canned results"""

    def __init__(self):
        self.calls = []
        self.ack_result = {'success': True, 'fields': {}}
        self.status_results = {}
        self.on_update_status = None

    def acknowledge(self, order_id, acknowledged_at=None):
        self.calls.append(('acknowledge', order_id, acknowledged_at))
        return self.ack_result

    def update_status(self, numeric_id, status):
        self.calls.append(('update_status', numeric_id, status))
        if self.on_update_status:
            hook, self.on_update_status = self.on_update_status, None
            hook(numeric_id, status)
        return self.status_results.get(numeric_id, {'success': True})

    def check_health(self):
        return True


def network_failure():
    return failure('Connection error', ErrorKind.NETWORK)


@pytest.fixture
def store(tmp_path):
    return LocalStore(str(tmp_path / 'order_sync_test.db'))
