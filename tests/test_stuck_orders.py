# Tests for stuck order detection

from datetime import datetime, timedelta, timezone

from conftest import make_order
from order_sync.stuck_orders import StuckOrderDetector

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def minutes_ago(minutes):
    return (NOW - timedelta(minutes=minutes)).isoformat()


class TestStuckOrderDetector:
    """Test status age thresholds"""

    def setup_method(self):
        self.alerts = []
        self.detector = StuckOrderDetector(self.alerts.append)

    def test_thresholds(self):
        assert self.detector.is_stuck(make_order('a', 'pending', updated_at=minutes_ago(5)), NOW)
        assert not self.detector.is_stuck(make_order('b', 'pending', updated_at=minutes_ago(4)), NOW)
        assert not self.detector.is_stuck(make_order('c', 'preparing', updated_at=minutes_ago(29)), NOW)
        assert self.detector.is_stuck(make_order('d', 'ready', updated_at=minutes_ago(20)), NOW)

    def test_untracked_statuses_never_stuck(self):
        for status in ('out_for_delivery', 'delivered', 'completed', 'cancelled'):
            order = make_order('x', status, updated_at=minutes_ago(600))
            assert not self.detector.is_stuck(order, NOW)
            assert self.detector.minutes_until_stuck(order, NOW) is None

    def test_falls_back_to_created_at(self):
        order = make_order('a', 'confirmed', created_at=minutes_ago(16))

        assert self.detector.is_stuck(order, NOW)
        assert self.detector.minutes_until_stuck(order, NOW) == -1

    def test_unparseable_updated_at_uses_created_at(self):
        fresh = make_order('a', 'pending', created_at=minutes_ago(1), updated_at='garbage')
        old = make_order('b', 'pending', created_at=minutes_ago(9), updated_at='garbage')

        assert not self.detector.is_stuck(fresh, NOW)
        assert self.detector.minutes_until_stuck(fresh, NOW) == 4
        assert self.detector.is_stuck(old, NOW)

    def test_no_usable_timestamp_is_never_stuck(self):
        order = make_order('a', 'pending', created_at='not a date', updated_at=None)

        assert not self.detector.is_stuck(order, NOW)
        assert self.detector.minutes_until_stuck(order, NOW) is None
        assert self.detector.detect([order], NOW) == []
        assert self.alerts == []

    def test_detect_sorts_and_alerts_once(self):
        orders = [
            make_order('a', 'pending', updated_at=minutes_ago(6)),
            make_order('b', 'preparing', updated_at=minutes_ago(45)),
            make_order('c', 'ready', updated_at=minutes_ago(3)),
        ]

        stuck = self.detector.detect(orders, NOW)
        self.detector.detect(orders, NOW)

        assert [s['order_id'] for s in stuck] == ['b', 'a']
        assert stuck[0]['minutes_stuck'] == 45
        assert [a['order_id'] for a in self.alerts] == ['b', 'a']

    def test_alerts_again_after_status_change(self):
        self.detector.detect([make_order('a', 'pending', updated_at=minutes_ago(6))], NOW)
        self.detector.detect([make_order('a', 'ready', updated_at=minutes_ago(25))], NOW)

        assert [(a['order_id'], a['status']) for a in self.alerts] == [('a', 'pending'), ('a', 'ready')]
