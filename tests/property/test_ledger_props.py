"""
Property-based tests for the credit ledger.

A balance never goes negative, and a rejected adjustment changes nothing.
"""

from hypothesis import given, strategies as st, settings

from casino_bot.services.ledger import Ledger, TransactionKind


delta_strategy = st.integers(min_value=-5000, max_value=5000)
kind_strategy = st.sampled_from(list(TransactionKind))


class TestLedgerNonNegative:
    """
    *For any* sequence of adjustments, every balance stays at or above zero
    and equals the starting balance plus the accepted deltas.
    """

    @settings(max_examples=100)
    @given(
        starting=st.integers(min_value=0, max_value=5000),
        deltas=st.lists(st.tuples(delta_strategy, kind_strategy), max_size=30),
    )
    def test_balance_never_negative(self, starting, deltas):
        ledger = Ledger(starting_balance=starting)
        ledger.get_or_create_account(1, "Alice")
        expected = starting

        for delta, kind in deltas:
            result = ledger.adjust_balance(1, delta, kind, chat_id=-1)
            if expected + delta >= 0:
                assert result.success
                expected += delta
            else:
                assert not result.success
                assert result.error_code == "INSUFFICIENT_FUNDS"
            assert ledger.get_balance(1) == expected
            assert ledger.get_balance(1) >= 0


class TestLedgerRejectionIsSideEffectFree:
    """
    *For any* overdrawing debit, the account, its chat stats and the journal
    are left exactly as they were.
    """

    @settings(max_examples=100)
    @given(
        balance=st.integers(min_value=0, max_value=1000),
        overdraw=st.integers(min_value=1, max_value=1000),
        kind=kind_strategy,
    )
    def test_rejected_debit_leaves_no_trace(self, balance, overdraw, kind):
        ledger = Ledger(starting_balance=balance)
        account = ledger.get_or_create_account(7, "Bob")
        journal_before = len(ledger.journal)
        stats_before = dict(account.chat_stats)

        result = ledger.adjust_balance(7, -(balance + overdraw), kind, chat_id=-5, game_id="g")

        assert not result.success
        assert result.balance == balance
        assert account.balance == balance
        assert len(ledger.journal) == journal_before
        assert account.chat_stats == stats_before
