# Tests for order payload parsing

from datetime import datetime, timezone

from order_sync.models import Order, parse_timestamp, try_parse_timestamp


class TestOrderFromDict:
    """Test mapping server payloads onto orders"""

    def test_field_aliases(self):
        order = Order.from_dict({
            'uuid': 'abc-123',
            'id': 77,
            'order_status': 'preparing',
            'created_at': '2026-10-19T10:00:00Z',
            'total_amount': '31.50',
            'tax_amount': 2.5,
            'special_instructions': 'no peanuts',
            'items': [{'dish_id': 4, 'name': 'Curry', 'unit_price': 14, 'quantity': 2}],
        })

        assert order.id == 'abc-123'
        assert order.numeric_id == 77
        assert order.status == 'preparing'
        assert order.total == 31.5
        assert order.tax == 2.5
        assert order.notes == 'no peanuts'
        assert order.updated_at == '2026-10-19T10:00:00Z'
        assert order.items[0].id == '4'
        assert order.items[0].price == 14.0

    def test_numeric_reference(self):
        assert Order.from_dict({'id': 'o1', 'numeric_id': '1005'}).numeric_id == 1005
        assert Order.from_dict({'id': '42'}).numeric_id == 42
        assert Order.from_dict({'id': 'o1', 'numeric_id': 0}).numeric_id is None
        assert Order.from_dict({'id': 'o1'}).numeric_id is None

    def test_defaults(self):
        order = Order.from_dict({'id': 'o1'})

        assert order.status == 'pending'
        assert order.is_newish
        assert order.acknowledged_at is None
        assert order.customer == {'name': 'Customer', 'phone': ''}

    def test_with_changes_leaves_original(self):
        order = Order.from_dict({'id': 'o1', 'status': 'pending'})

        changed = order.with_changes(status='ready')

        assert order.status == 'pending'
        assert changed.status == 'ready'
        assert not changed.is_newish

    def test_parse_timestamp_orders_bad_values_first(self):
        assert parse_timestamp('garbage') < parse_timestamp('2026-10-19T10:00:00Z')
        assert parse_timestamp(None) < parse_timestamp('2000-01-01T00:00:00')

    def test_parse_timestamp_any_fraction_length(self):
        expected = datetime(2026, 10, 19, 10, 0, 0, 123450, tzinfo=timezone.utc)

        assert try_parse_timestamp('2026-10-19T10:00:00.12345+00:00') == expected
        assert try_parse_timestamp('2026-10-19T10:00:00.1234567Z') == expected.replace(microsecond=123456)
        assert try_parse_timestamp('garbage') is None
        assert try_parse_timestamp('') is None
