"""Tests for the coinflip lobby and resolution."""

import pytest

from casino_bot.services.game_session import GameStatus
from casino_bot.services.ledger import TransactionKind
from tests.fakes import ALICE, BOB, CAROL, GROUP


async def _start(casino, bet=10, user=ALICE, name="Alice"):
    result = await casino.coinflip.start(user, name, GROUP, "Dice Den", bet)
    assert result.success, result.message
    return result.game


@pytest.mark.asyncio
async def test_start_debits_initiator_and_claims_chat(lobby_casino):
    game = await _start(lobby_casino)

    assert lobby_casino.ledger.get_balance(ALICE) == 990
    assert game.status == GameStatus.WAITING_OPPONENT
    assert lobby_casino.groups.active_game_id(GROUP) == game.game_id
    card = lobby_casino.display.last
    assert f"join_game:{game.game_id}" in card.callbacks
    assert f"cancel_game:{game.game_id}" in card.callbacks
    assert game.message_id == card.message_id


@pytest.mark.asyncio
async def test_second_game_in_same_chat_is_refused(lobby_casino):
    await _start(lobby_casino)

    result = await lobby_casino.rps.start(BOB, "Bob", GROUP, "Dice Den", 10)

    assert result.success is False
    assert result.error_code == "CHAT_BUSY"
    assert lobby_casino.ledger.get_account(BOB) is None


@pytest.mark.asyncio
async def test_heads_pays_initiator_double(lobby_casino):
    game = await _start(lobby_casino)

    result = await lobby_casino.coinflip.join(game.game_id, BOB, "Bob")

    assert result.success
    assert lobby_casino.ledger.get_balance(ALICE) == 1010
    assert lobby_casino.ledger.get_balance(BOB) == 990
    assert game.participants[0].choice == "heads"
    assert game.participants[1].choice == "tails"
    assert lobby_casino.games.get(game.game_id) is None
    assert lobby_casino.groups.active_game_id(GROUP) is None
    assert "Heads" in lobby_casino.display.last.body


@pytest.mark.asyncio
async def test_tails_pays_joiner_double(lobby_casino):
    lobby_casino.ctx.random_func = lambda: 0.9
    game = await _start(lobby_casino)

    await lobby_casino.coinflip.join(game.game_id, BOB, "Bob")

    assert lobby_casino.ledger.get_balance(ALICE) == 990
    assert lobby_casino.ledger.get_balance(BOB) == 1010


@pytest.mark.asyncio
async def test_join_rejections(lobby_casino):
    game = await _start(lobby_casino, bet=500)

    own = await lobby_casino.coinflip.join(game.game_id, ALICE, "Alice")
    assert own.error_code == "SELF_JOIN"

    lobby_casino.ledger.get_or_create_account(BOB, "Bob")
    lobby_casino.ledger.adjust_balance(BOB, -600, TransactionKind.BET)
    poor = await lobby_casino.coinflip.join(game.game_id, BOB, "Bob")
    assert poor.error_code == "INSUFFICIENT_FUNDS"
    assert lobby_casino.ledger.get_balance(BOB) == 400
    assert game.status == GameStatus.WAITING_OPPONENT

    missing = await lobby_casino.coinflip.join("game_missing", CAROL, "Carol")
    assert missing.error_code == "NOT_FOUND"


@pytest.mark.asyncio
async def test_only_initiator_can_cancel(lobby_casino):
    game = await _start(lobby_casino)

    denied = await lobby_casino.coinflip.cancel(game.game_id, BOB)
    assert denied.error_code == "NOT_INITIATOR"

    result = await lobby_casino.coinflip.cancel(game.game_id, ALICE)
    assert result.success
    assert lobby_casino.ledger.get_balance(ALICE) == 1000
    assert lobby_casino.groups.active_game_id(GROUP) is None

    again = await lobby_casino.coinflip.cancel(game.game_id, ALICE)
    assert again.error_code == "NOT_FOUND"
    assert lobby_casino.ledger.get_balance(ALICE) == 1000


@pytest.mark.asyncio
async def test_expire_refunds_once_and_is_noop_afterwards(lobby_casino):
    game = await _start(lobby_casino)

    assert await lobby_casino.coinflip.expire(game.game_id) is True
    assert await lobby_casino.coinflip.expire(game.game_id) is False

    assert lobby_casino.ledger.get_balance(ALICE) == 1000
    assert "Nobody joined" in lobby_casino.display.last.body
    assert lobby_casino.display.last.edited is True


@pytest.mark.asyncio
async def test_expire_after_join_does_nothing(lobby_casino):
    game = await _start(lobby_casino)
    await lobby_casino.coinflip.join(game.game_id, BOB, "Bob")

    assert await lobby_casino.coinflip.expire(game.game_id) is False
    assert lobby_casino.ledger.get_balance(ALICE) == 1010


@pytest.mark.asyncio
async def test_join_timeout_fires_through_sleep(casino):
    game = await _start(casino)

    await casino.wait_idle()

    assert casino.games.get(game.game_id) is None
    assert casino.ledger.get_balance(ALICE) == 1000
    assert casino.groups.active_game_id(GROUP) is None


@pytest.mark.asyncio
async def test_invalid_bet_rejected_without_state_change(lobby_casino):
    result = await lobby_casino.coinflip.start(ALICE, "Alice", GROUP, "Dice Den", 4)

    assert result.error_code == "INVALID_BET"
    assert lobby_casino.ledger.get_account(ALICE) is None
    assert lobby_casino.groups.active_game_id(GROUP) is None
