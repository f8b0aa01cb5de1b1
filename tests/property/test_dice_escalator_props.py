"""
Property-based tests for Dice Escalator payouts.
"""

import asyncio

from hypothesis import given, strategies as st, settings

from casino_bot.services.roll_oracle import MemoryRollRequestStore
from tests.fakes import FixedClock, make_casino, never_wake


bet_strategy = st.integers(min_value=5, max_value=1000)
safe_roll_strategy = st.integers(min_value=2, max_value=6)
house_strategy = st.lists(
    st.floats(min_value=0.0, max_value=0.999, allow_nan=False), min_size=1, max_size=5
)


def run_async(coro):
    """Helper to run async code in sync tests."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _roll(casino, store, game_id, value):
    await casino.dice_escalator.request_roll(game_id, 1)
    await store.complete(game_id, value)
    await casino.wait_idle()


class TestCashoutPayout:
    """
    *For any* run of safe rolls and any house outcome, cashing out pays
    exactly ``bet + score``.
    """

    @settings(max_examples=100, deadline=None)
    @given(
        bet=bet_strategy,
        rolls=st.lists(safe_roll_strategy, min_size=1, max_size=6),
        house=house_strategy,
    )
    def test_cashout_independent_of_house(self, bet, rolls, house):
        async def _test():
            store = MemoryRollRequestStore()
            casino = make_casino(store=store, random_values=house)
            try:
                start = await casino.dice_escalator.start(1, "Alice", -10, "Den", bet)
                game_id = start.game.game_id
                for value in rolls:
                    await _roll(casino, store, game_id, value)

                result = await casino.dice_escalator.cash_out(game_id, 1)
                assert result.success
                await casino.wait_idle()

                assert casino.ledger.get_balance(1) == 1000 + sum(rolls)
                assert casino.games.get(game_id) is None
            finally:
                casino.shutdown()
                await asyncio.sleep(0)

        run_async(_test())


class TestBustForfeits:
    """
    *For any* score built before a bust, the bet and score are lost.
    """

    @settings(max_examples=100, deadline=None)
    @given(bet=bet_strategy, rolls=st.lists(safe_roll_strategy, max_size=6))
    def test_bust_loses_bet(self, bet, rolls):
        async def _test():
            store = MemoryRollRequestStore()
            casino = make_casino(store=store)
            try:
                start = await casino.dice_escalator.start(1, "Alice", -10, "Den", bet)
                game_id = start.game.game_id
                for value in rolls:
                    await _roll(casino, store, game_id, value)
                await _roll(casino, store, game_id, 1)

                assert casino.ledger.get_balance(1) == 1000 - bet
                assert casino.games.get(game_id) is None
                assert casino.groups.active_game_id(-10) is None
            finally:
                casino.shutdown()
                await asyncio.sleep(0)

        run_async(_test())


class TestReaperRefundsOnce:
    """
    *For any* abandoned game, repeated sweeps refund the stake exactly once.
    """

    @settings(max_examples=50, deadline=None)
    @given(bet=bet_strategy, sweeps=st.integers(min_value=1, max_value=4))
    def test_single_refund(self, bet, sweeps):
        async def _test():
            clock = FixedClock()
            casino = make_casino(sleep=never_wake, clock=clock)
            try:
                await casino.coinflip.start(1, "Alice", -10, "Den", bet)
                await casino.over_under.start(2, "Bob", -20, "Hall", bet)
                clock.advance(hours=2)
                for _ in range(sweeps):
                    await casino.reaper.sweep()

                assert casino.ledger.get_balance(1) == 1000
                assert casino.ledger.get_balance(2) == 1000
                assert len(casino.games) == 0
            finally:
                casino.shutdown()
                await asyncio.sleep(0)

        run_async(_test())
