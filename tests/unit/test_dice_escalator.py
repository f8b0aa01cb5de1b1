"""Tests for Dice Escalator and its round trip through the roll oracle."""

import pytest

from casino_bot.services.game_session import GameStatus
from casino_bot.services.roll_oracle import RollStatus
from tests.fakes import ALICE, BOB, GROUP, die, make_casino


async def _start(casino, bet=100):
    result = await casino.dice_escalator.start(ALICE, "Alice", GROUP, "Dice Den", bet)
    assert result.success, result.message
    return result.game


async def _roll(casino, roll_store, game, value):
    result = await casino.dice_escalator.request_roll(game.game_id, ALICE)
    assert result.success, result.message
    await roll_store.complete(game.game_id, value)
    await casino.wait_idle()


@pytest.mark.asyncio
async def test_start_prompts_roll_only(casino):
    game = await _start(casino)

    assert casino.ledger.get_balance(ALICE) == 900
    assert game.status == GameStatus.PLAYER_TURN
    assert casino.display.last.callbacks == [f"de_roll_prompt:{game.game_id}"]


@pytest.mark.asyncio
async def test_roll_request_upserts_pending_and_shows_processing(casino, roll_store):
    game = await _start(casino)

    await casino.dice_escalator.request_roll(game.game_id, ALICE)

    row = roll_store.rows[game.game_id]
    assert row.status == RollStatus.PENDING.value
    assert row.user_id == ALICE
    assert game.status == GameStatus.WAITING_FOR_ROLL
    assert casino.display.last.callbacks == []
    assert "Rolling" in casino.display.last.body

    await roll_store.complete(game.game_id, 3)
    await casino.wait_idle()


@pytest.mark.asyncio
async def test_rolls_accumulate_and_offer_cashout(casino, roll_store):
    game = await _start(casino)

    await _roll(casino, roll_store, game, 4)
    await _roll(casino, roll_store, game, 6)

    assert game.score == 10
    assert game.status == GameStatus.PLAYER_TURN
    assert game.game_id not in roll_store.rows
    assert f"de_cashout:{game.game_id}" in casino.display.last.callbacks
    assert "110 credits" in casino.display.last.body


@pytest.mark.asyncio
async def test_bust_forfeits_bet_and_ends_game(casino, roll_store):
    game = await _start(casino)
    await _roll(casino, roll_store, game, 5)

    await _roll(casino, roll_store, game, 1)

    assert casino.games.get(game.game_id) is None
    assert casino.groups.active_game_id(GROUP) is None
    assert casino.ledger.get_balance(ALICE) == 900
    assert "BUST" in casino.display.last.body
    assert casino.display.last.callbacks == ["play_again:dice_escalator:100"]


@pytest.mark.asyncio
async def test_second_roll_while_waiting_is_rejected(casino, roll_store):
    game = await _start(casino)
    await casino.dice_escalator.request_roll(game.game_id, ALICE)

    again = await casino.dice_escalator.request_roll(game.game_id, ALICE)

    assert again.error_code == "WRONG_STATE"
    assert game.roll_attempt == 1
    await roll_store.complete(game.game_id, 2)
    await casino.wait_idle()
    assert game.score == 2


@pytest.mark.asyncio
async def test_only_owner_may_act(casino):
    game = await _start(casino)

    roll = await casino.dice_escalator.request_roll(game.game_id, BOB)
    cash = await casino.dice_escalator.cash_out(game.game_id, BOB)

    assert roll.error_code == "NOT_YOUR_GAME"
    assert cash.error_code == "NOT_YOUR_GAME"


@pytest.mark.asyncio
async def test_cash_out_requires_score(casino):
    game = await _start(casino)

    result = await casino.dice_escalator.cash_out(game.game_id, ALICE)

    assert result.error_code == "NO_SCORE"
    assert game.status == GameStatus.PLAYER_TURN


@pytest.mark.asyncio
async def test_cash_out_credits_bet_plus_score_regardless_of_house(casino, roll_store):
    # house rolls 6, 6: passes the player's 9 on the second roll
    casino.ctx.random_func = lambda: die(6)
    game = await _start(casino)
    await _roll(casino, roll_store, game, 4)
    await _roll(casino, roll_store, game, 5)

    result = await casino.dice_escalator.cash_out(game.game_id, ALICE)
    assert result.success
    assert casino.ledger.get_balance(ALICE) == 1009

    await casino.wait_idle()

    assert casino.ledger.get_balance(ALICE) == 1009
    assert game.house_score == 12
    assert game.status == GameStatus.GAME_OVER
    assert casino.games.get(game.game_id) is None
    assert casino.groups.active_game_id(GROUP) is None
    assert "payout stands" in casino.display.last.body


@pytest.mark.asyncio
async def test_house_bust_resets_house_score(casino, roll_store):
    casino.ctx.random_func = lambda: die(1)
    game = await _start(casino)
    await _roll(casino, roll_store, game, 3)

    await casino.dice_escalator.cash_out(game.game_id, ALICE)
    await casino.wait_idle()

    assert game.house_score == 0
    assert "House busts" in casino.display.last.body
    assert casino.ledger.get_balance(ALICE) == 1003


@pytest.mark.asyncio
async def test_house_stops_after_max_rolls(casino, roll_store):
    casino.ctx.random_func = lambda: die(2)
    game = await _start(casino)
    await _roll(casino, roll_store, game, 6)
    await _roll(casino, roll_store, game, 6)

    await casino.dice_escalator.cash_out(game.game_id, ALICE)
    await casino.wait_idle()

    assert game.house_score == 6
    assert "beat the house" in casino.display.last.body


@pytest.mark.asyncio
async def test_duplicate_cash_out_does_not_double_credit(casino, roll_store):
    game = await _start(casino)
    await _roll(casino, roll_store, game, 6)

    first = await casino.dice_escalator.cash_out(game.game_id, ALICE)
    second = await casino.dice_escalator.cash_out(game.game_id, ALICE)
    await casino.wait_idle()
    third = await casino.dice_escalator.cash_out(game.game_id, ALICE)

    assert first.success
    assert second.error_code == "WRONG_STATE"
    assert third.error_code == "NOT_FOUND"
    assert casino.ledger.get_balance(ALICE) == 1006


@pytest.mark.asyncio
async def test_roll_service_error_reverts_to_prompt(casino, roll_store):
    game = await _start(casino)
    await casino.dice_escalator.request_roll(game.game_id, ALICE)

    await roll_store.fail(game.game_id)
    await casino.wait_idle()

    assert game.status == GameStatus.PLAYER_TURN
    assert game.game_id not in roll_store.rows
    assert "reported an error" in casino.display.last.body
    assert f"de_roll_prompt:{game.game_id}" in casino.display.last.callbacks
    assert casino.ledger.get_balance(ALICE) == 900


@pytest.mark.asyncio
async def test_invalid_roll_value_is_discarded(casino, roll_store):
    game = await _start(casino)
    await casino.dice_escalator.request_roll(game.game_id, ALICE)

    await roll_store.complete(game.game_id, 9)
    await casino.wait_idle()

    assert game.score == 0
    assert game.status == GameStatus.PLAYER_TURN
    assert "invalid roll" in casino.display.last.body


@pytest.mark.asyncio
async def test_timeout_reverts_without_touching_funds(casino, roll_store):
    game = await _start(casino)
    await _roll(casino, roll_store, game, 4)
    await casino.dice_escalator.request_roll(game.game_id, ALICE)

    await casino.wait_idle()

    assert game.status == GameStatus.PLAYER_TURN
    assert game.score == 4
    assert roll_store.fetches >= casino.oracle.max_attempts
    assert roll_store.rows[game.game_id].status == RollStatus.PENDING.value
    assert "took too long" in casino.display.last.body
    assert f"de_cashout:{game.game_id}" in casino.display.last.callbacks
    assert casino.ledger.get_balance(ALICE) == 900


@pytest.mark.asyncio
async def test_storage_error_while_polling_keeps_row(casino, roll_store):
    game = await _start(casino)
    await casino.dice_escalator.request_roll(game.game_id, ALICE)
    roll_store.fail_fetch = True

    await casino.wait_idle()

    assert game.status == GameStatus.PLAYER_TURN
    assert game.game_id in roll_store.rows
    assert "Couldn't reach" in casino.display.last.body


@pytest.mark.asyncio
async def test_failed_request_reverts_immediately(casino, roll_store):
    game = await _start(casino)
    roll_store.fail_upsert = True

    result = await casino.dice_escalator.request_roll(game.game_id, ALICE)

    assert result.error_code == "STORAGE_ERROR"
    assert game.status == GameStatus.PLAYER_TURN


@pytest.mark.asyncio
async def test_retry_supersedes_stale_answer(casino, roll_store):
    game = await _start(casino)
    await casino.dice_escalator.request_roll(game.game_id, ALICE)
    await casino.wait_idle()
    assert game.status == GameStatus.PLAYER_TURN

    # late answer to the timed-out request
    await roll_store.complete(game.game_id, 6)
    await casino.dice_escalator.request_roll(game.game_id, ALICE)
    assert roll_store.rows[game.game_id].roll_value is None

    await roll_store.complete(game.game_id, 2)
    await casino.wait_idle()

    assert game.score == 2
    assert casino.ledger.get_balance(ALICE) == 900


@pytest.mark.asyncio
async def test_resolve_roll_ignores_game_not_waiting(casino):
    game = await _start(casino)

    result = await casino.dice_escalator.resolve_roll(game.game_id, 5)

    assert result.error_code == "WRONG_STATE"
    assert game.score == 0


@pytest.mark.asyncio
async def test_card_reposts_when_edit_fails(casino, roll_store):
    game = await _start(casino)
    original_id = game.message_id
    casino.display.fail_edits = True

    await _roll(casino, roll_store, game, 3)

    assert game.message_id != original_id
    assert casino.display.last.message_id == game.message_id
    assert game.score == 3


@pytest.mark.asyncio
async def test_unexpected_request_error_reverts_to_prompt(casino, roll_store):
    game = await _start(casino)
    await _roll(casino, roll_store, game, 4)
    roll_store.crash_upsert = True

    result = await casino.dice_escalator.request_roll(game.game_id, ALICE)

    assert result.error_code == "STORAGE_ERROR"
    assert game.status == GameStatus.PLAYER_TURN
    assert game.score == 4
    assert "Couldn't reach" in casino.display.last.body
    assert f"de_roll_prompt:{game.game_id}" in casino.display.last.callbacks

    roll_store.crash_upsert = False
    await _roll(casino, roll_store, game, 3)
    assert game.score == 7


@pytest.mark.asyncio
async def test_unexpected_poll_error_reverts_to_prompt(casino, roll_store):
    game = await _start(casino)
    await casino.dice_escalator.request_roll(game.game_id, ALICE)
    roll_store.crash_fetch = True

    await casino.wait_idle()

    assert game.status == GameStatus.PLAYER_TURN
    assert "Couldn't reach" in casino.display.last.body
    assert casino.ledger.get_balance(ALICE) == 900


@pytest.mark.asyncio
async def test_every_stake_feeds_the_jackpot(casino):
    game = await _start(casino, bet=500)

    assert casino.jackpot.amount == 5
    assert casino.ledger.get_balance(ALICE) == 500
    assert casino.games.get(game.game_id) is game


@pytest.mark.asyncio
async def test_high_cash_out_wins_the_jackpot(clock, roll_store):
    casino = make_casino(clock=clock, store=roll_store, random_values=[die(6)], jackpot_target_score=10)
    casino.jackpot.amount = 250
    game = await _start(casino, bet=100)
    await _roll(casino, roll_store, game, 6)
    await _roll(casino, roll_store, game, 5)

    result = await casino.dice_escalator.cash_out(game.game_id, ALICE)
    await casino.wait_idle()

    assert result.success
    assert "Jackpot" in result.message
    assert casino.jackpot.amount == 0
    # 900 after the bet, 111 cash-out, 251 pool including this game's share
    assert casino.ledger.get_balance(ALICE) == 900 + 111 + 251
    assert "JACKPOT" in casino.display.last.body
    casino.shutdown()


@pytest.mark.asyncio
async def test_low_cash_out_leaves_the_jackpot(casino, roll_store):
    casino.jackpot.amount = 250
    game = await _start(casino, bet=100)
    await _roll(casino, roll_store, game, 6)

    await casino.dice_escalator.cash_out(game.game_id, ALICE)
    await casino.wait_idle()

    assert casino.jackpot.amount == 251
    assert casino.ledger.get_balance(ALICE) == 1006
