# Tests for the print dedup ledger

from conftest import make_order
from order_sync.print_ledger import PrintLedger, PRINTED_KEY, FAILED_KEY


class TestPrintLedger:
    """Test printed / failed bookkeeping"""

    def test_only_unhandled_new_pending_orders_need_print(self, store):
        """o3 already printed, o4 new pending: only o4 needs auto-print"""
        ledger = PrintLedger(store)
        ledger.load()
        ledger.mark_printed('o3')

        needs = ledger.needs_auto_print([make_order('o3'), make_order('o4')])

        assert [o.id for o in needs] == ['o4']

    def test_failed_and_non_pending_orders_skipped(self, store):
        ledger = PrintLedger(store)
        ledger.mark_failed('o1')

        needs = ledger.needs_auto_print([
            make_order('o1'),
            make_order('o2', 'confirmed'),
            make_order('o3'),
        ])

        assert [o.id for o in needs] == ['o3']

    def test_known_ids_exclude_previously_seen(self, store):
        ledger = PrintLedger(store)

        needs = ledger.needs_auto_print([make_order('o1'), make_order('o2')], known_ids={'o1'})

        assert [o.id for o in needs] == ['o2']

    def test_success_moves_id_out_of_failed(self, store):
        ledger = PrintLedger(store)
        ledger.mark_failed('o1')
        ledger.mark_printed('o1')

        assert ledger.is_printed('o1')
        assert not ledger.is_failed('o1')

    def test_printed_is_never_removed(self, store):
        ledger = PrintLedger(store)
        ledger.mark_printed('o1')
        ledger.mark_failed('o1')

        assert ledger.is_printed('o1')
        assert not ledger.is_failed('o1')

    def test_persists_across_restart(self, store):
        ledger = PrintLedger(store)
        ledger.mark_printed('o1')
        ledger.mark_failed('o2')

        assert store.load_state(PRINTED_KEY) == ['o1']
        assert store.load_state(FAILED_KEY) == ['o2']

        reloaded = PrintLedger(store)
        reloaded.load()
        assert reloaded.is_printed('o1')
        assert reloaded.is_failed('o2')
        assert reloaded.is_handled('o2')

    def test_pending_reprints(self, store):
        ledger = PrintLedger(store)
        ledger.mark_printed('p')
        ledger.mark_failed('f')

        reprints = ledger.pending_reprints([
            make_order('p'),
            make_order('f', 'preparing'),
            make_order('n'),
            make_order('r', 'ready'),
        ])

        assert [o.id for o in reprints] == ['f', 'n']
