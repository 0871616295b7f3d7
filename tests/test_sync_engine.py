# End-to-end tests for the order sync engine against the in-memory service

from order_sync.action_queue import ActionQueue
from order_sync.errors import ErrorKind
from order_sync.local_store import LocalStore
from order_sync.order_client import StubOrderClient
from order_sync.sync_engine import OrderSyncEngine


def _raw(order_id, numeric_id, status='pending', created_at='2026-10-19T10:00:00+00:00'):
    return {'id': order_id, 'numeric_id': numeric_id, 'status': status, 'created_at': created_at}


class TestOrderSyncEngine:
    """Test fetch, auto-print, offline replay and restart recovery"""

    def setup_method(self):
        self.printed = []
        self.printer_ok = True

    def _print(self, order):
        if not self.printer_ok:
            return False
        self.printed.append(order.id)
        return True

    def _engine(self, store, stub, **kwargs):
        engine = OrderSyncEngine(stub, store, print_order=self._print, **kwargs)
        engine.start(background=False)
        return engine

    def test_first_snapshot_is_not_auto_printed(self, store):
        stub = StubOrderClient([_raw('a', 1)])
        engine = self._engine(store, stub)

        assert engine.fetch_orders() is True
        assert self.printed == []

        stub.add_order(_raw('b', 2, created_at='2026-10-19T10:05:00+00:00'))
        engine.fetch_orders()

        assert self.printed == ['b']
        assert engine.ledger.is_printed('b')
        assert [o.id for o in engine.state.orders] == ['b', 'a']

    def test_failed_print_is_retried(self, store):
        stub = StubOrderClient([])
        engine = self._engine(store, stub)
        engine.fetch_orders()

        self.printer_ok = False
        stub.add_order(_raw('a', 1))
        engine.fetch_orders()
        assert engine.ledger.is_failed('a')

        self.printer_ok = True
        assert engine.retry_failed_prints() == 1
        assert engine.ledger.is_printed('a')
        assert not engine.ledger.is_failed('a')

    def test_auth_failure_signs_out(self, store):
        stub = StubOrderClient([_raw('a', 1)])
        engine = self._engine(store, stub)
        engine.fetch_orders()
        engine.select_order('a')

        stub.fail_with = ErrorKind.AUTH
        assert engine.fetch_orders() is False

        assert engine.state.is_authenticated is False
        assert engine.state.orders == []
        assert engine.state.selected_order is None

        # Signed out: no further fetches until the session is restored
        stub.fail_with = None
        calls = len(stub.calls)
        assert engine.fetch_orders() is False
        assert len(stub.calls) == calls

        engine.resume_session()
        assert engine.fetch_orders() is True

    def test_offline_fetch_is_skipped(self, store):
        stub = StubOrderClient([_raw('a', 1)])
        stub.reachable = False
        engine = self._engine(store, stub)

        assert engine.fetch_orders() is False
        assert stub.calls == []

    def test_offline_acknowledge_replays_when_online(self, store):
        stub = StubOrderClient([_raw('a', 1)])
        engine = self._engine(store, stub)
        engine.fetch_orders()

        engine.set_online(False)
        assert engine.acknowledge('a') is True
        assert len(engine.queue) == 1
        assert not stub.orders['a'].get('acknowledged_at')

        assert engine.set_online(True) is True

        assert len(engine.queue) == 0
        assert stub.orders['a']['acknowledged_at'] == engine.state.overlay.get('a')

    def test_overlay_survives_refetch(self, store):
        stub = StubOrderClient([_raw('a', 1)])
        engine = self._engine(store, stub)
        engine.fetch_orders()
        engine.set_online(False)
        engine.acknowledge('a')
        engine.state.is_online = True

        # Server has not seen the acknowledgement yet
        engine.fetch_orders()

        assert engine.state.get_order('a').acknowledged_at == engine.state.overlay.get('a')

    def test_queued_update_replayed_after_restart(self, store):
        stub = StubOrderClient([_raw('a', 7)])
        engine = self._engine(store, stub)
        engine.fetch_orders()
        engine.set_online(False)

        assert engine.update_status('a', 'preparing') is True
        assert engine.state.get_order('a').status == 'preparing'
        engine.stop()
        assert stub.orders['a']['status'] == 'pending'

        restarted = OrderSyncEngine(stub, LocalStore(store.db_path), print_order=self._print)
        report = restarted.start(background=False)

        assert report['queued_actions'] == 1
        assert report['downtime_logged'] is True
        assert report['drain']['succeeded'] == 1
        assert stub.orders['a']['status'] == 'preparing'
        assert len(restarted.queue) == 0

    def test_restarts_while_offline_keep_queued_work(self, store):
        stub = StubOrderClient([_raw('a', 7)])
        engine = self._engine(store, stub)
        engine.fetch_orders()
        engine.set_online(False)
        engine.acknowledge('a')
        engine.stop()

        stub.reachable = False
        for _ in range(7):
            restarted = OrderSyncEngine(stub, LocalStore(store.db_path), print_order=self._print)
            report = restarted.start(background=False)
            assert report['drain'] is None
            assert restarted.state.is_online is False
            restarted.stop()

        actions = ActionQueue(LocalStore(store.db_path)).pending()
        assert len(actions) == 1
        assert actions[0].retry_count == 0

        stub.reachable = True
        restarted = OrderSyncEngine(stub, LocalStore(store.db_path), print_order=self._print)
        report = restarted.start(background=False)

        assert report['drain']['succeeded'] == 1
        assert stub.orders['a']['acknowledged_at']

    def test_failing_probe_at_startup_counts_as_offline(self, store):
        stub = StubOrderClient([_raw('a', 7)])
        stub.check_health = lambda: 1 / 0
        engine = self._engine(store, stub)

        assert engine.state.is_online is False
        assert engine.fetch_orders() is False

    def test_get_status(self, store):
        engine = self._engine(store, StubOrderClient([_raw('a', 1), _raw('b', 2, status='completed')]))
        engine.fetch_orders()

        status = engine.get_status()

        assert status['state']['orders'] == 2
        assert status['state']['active_orders'] == 1
        assert status['queue']['pending'] == 0
        assert status['recovery']['queued_actions'] == 0
        assert status['running'] is False
