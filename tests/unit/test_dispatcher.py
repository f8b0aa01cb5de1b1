"""Tests for command/callback parsing and routing."""

import logging

import pytest

from casino_bot.handlers.dispatcher import (
    CallbackEvent,
    CasinoDispatcher,
    CommandEvent,
    GENERIC_FAILURE,
    parse_bet,
    parse_callback,
    parse_command,
)
from tests.fakes import ALICE, BOB, GROUP, ScriptedRandom, die


def command(text, sender=ALICE, name="Alice", chat_type="supergroup"):
    return CommandEvent(
        sender_id=sender, sender_name=name, chat_id=GROUP, chat_type=chat_type,
        chat_title="Dice Den", message_id=1, text=text,
    )


def press(data, sender=ALICE, name="Alice"):
    return CallbackEvent(
        sender_id=sender, sender_name=name, chat_id=GROUP, chat_type="supergroup",
        chat_title="Dice Den", message_id=101, data=data,
    )


def test_parse_command_normalises_case_mention_and_aliases():
    parsed = parse_command("/StartCoinflip@casino_bot 50 extra")
    assert parsed.name == "startcoinflip"
    assert parsed.args == ["50", "extra"]
    assert parse_command("/bal").name == "balance"
    assert parse_command("/start").name == "help"
    assert parse_command("/startdice 10").name == "startdiceescalator"
    assert parse_command("/d21 10").name == "dice21"
    assert parse_command("/s7 10").name == "sevenout"
    assert parse_command("/slots 10").name == "slot"
    assert parse_command("hello") is None
    assert parse_command("/") is None


def test_parse_callback():
    assert parse_callback("rps_choose:game_1_abc:rock") == ("rps_choose", ["game_1_abc", "rock"])
    assert parse_callback("noop") == ("noop", [])


@pytest.mark.parametrize("raw,expected", [
    ("5", 5), ("1000", 1000), ("4", None), ("1001", None),
    ("10.5", None), ("abc", None), ("", None), (None, None), ("-10", None),
])
def test_parse_bet(raw, expected):
    assert parse_bet(raw, 5, 1000) == expected


@pytest.mark.asyncio
async def test_balance_creates_account(lobby_casino):
    dispatcher = CasinoDispatcher(lobby_casino)

    result = await dispatcher.handle_command(command("/balance"))

    assert "1,000 credits" in result.text
    assert lobby_casino.ledger.get_account(ALICE) is not None


@pytest.mark.asyncio
async def test_help_lists_commands(lobby_casino):
    result = await CasinoDispatcher(lobby_casino).handle_command(command("/help"))

    for name in (
        "/balance", "/startcoinflip", "/startrps", "/startdiceescalator",
        "/dice21", "/ladder", "/sevenout", "/slot", "/jackpot",
    ):
        assert name in result.text


@pytest.mark.asyncio
async def test_bad_bet_rejected_without_state_change(lobby_casino):
    dispatcher = CasinoDispatcher(lobby_casino)

    result = await dispatcher.handle_command(command("/startcoinflip lots"))

    assert result.error_code == "INVALID_BET"
    assert "Usage" in result.text
    assert len(lobby_casino.games) == 0
    assert lobby_casino.ledger.get_balance(ALICE) == 1000


@pytest.mark.asyncio
async def test_group_only_games_refused_in_private(lobby_casino):
    dispatcher = CasinoDispatcher(lobby_casino)

    rps = await dispatcher.handle_command(command("/startrps 10", chat_type="private"))
    dice = await dispatcher.handle_command(command("/startdiceescalator 10", chat_type="private"))
    house = [
        await dispatcher.handle_command(command(f"/{name} 10", chat_type="private"))
        for name in ("ou7", "duel", "d21", "ladder", "s7", "slot")
    ]
    flip = await dispatcher.handle_command(command("/startcoinflip 10", chat_type="private"))

    assert rps.error_code == "GROUP_ONLY"
    assert dice.error_code == "GROUP_ONLY"
    assert [r.error_code for r in house] == ["GROUP_ONLY"] * 6
    assert flip.error_code is None
    assert len(lobby_casino.games) == 1


@pytest.mark.asyncio
async def test_full_coinflip_through_dispatcher(lobby_casino):
    dispatcher = CasinoDispatcher(lobby_casino)
    await dispatcher.handle_command(command("/startcoinflip 20"))
    game_id = lobby_casino.groups.active_game_id(GROUP)

    result = await dispatcher.handle_callback(press(f"join_game:{game_id}", sender=BOB, name="Bob"))

    assert result.handled
    assert lobby_casino.ledger.get_balance(ALICE) == 1020
    assert lobby_casino.ledger.get_balance(BOB) == 980


@pytest.mark.asyncio
async def test_busy_chat_message(lobby_casino):
    dispatcher = CasinoDispatcher(lobby_casino)
    await dispatcher.handle_command(command("/startcoinflip 20"))

    result = await dispatcher.handle_command(command("/startrps 20", sender=BOB, name="Bob"))

    assert result.error_code == "CHAT_BUSY"
    assert lobby_casino.ledger.get_balance(BOB) == 1000


@pytest.mark.asyncio
async def test_unknown_callback_is_logged_and_ignored(lobby_casino, caplog):
    dispatcher = CasinoDispatcher(lobby_casino)

    with caplog.at_level(logging.WARNING):
        result = await dispatcher.handle_callback(press("teleport:now"))

    assert result.handled is False
    assert result.text is None
    assert any("Unknown callback" in r.message for r in caplog.records)


@pytest.mark.asyncio
async def test_expired_game_callback(lobby_casino):
    result = await CasinoDispatcher(lobby_casino).handle_callback(press("de_cashout:game_gone"))

    assert result.error_code == "NOT_FOUND"
    assert result.alert is True


@pytest.mark.asyncio
async def test_handler_exception_becomes_generic_failure(lobby_casino, monkeypatch):
    dispatcher = CasinoDispatcher(lobby_casino)

    async def explode(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(lobby_casino.coinflip, "start", explode)

    result = await dispatcher.handle_command(command("/startcoinflip 10"))

    assert result.text == GENERIC_FAILURE
    assert result.error_code == "INTERNAL"


@pytest.mark.asyncio
async def test_play_again_starts_same_game(lobby_casino):
    dispatcher = CasinoDispatcher(lobby_casino)

    result = await dispatcher.handle_callback(press("play_again:over_under_7:40", sender=BOB, name="Bob"))

    assert result.error_code is None
    game = lobby_casino.games.get(lobby_casino.groups.active_game_id(GROUP))
    assert game.bet == 40
    assert game.initiator_id == BOB


@pytest.mark.asyncio
async def test_play_again_respects_group_only(lobby_casino):
    event = press("play_again:duel:40")
    event.chat_type = "private"

    result = await CasinoDispatcher(lobby_casino).handle_callback(event)

    assert result.error_code == "GROUP_ONLY"
    assert len(lobby_casino.games) == 0


@pytest.mark.asyncio
async def test_jackpot_shows_pool_and_target(lobby_casino):
    lobby_casino.jackpot.amount = 1234

    result = await CasinoDispatcher(lobby_casino).handle_command(command("/jackpot"))

    assert "1,234 credits" in result.text
    assert "120" in result.text


@pytest.mark.asyncio
async def test_dice21_through_dispatcher(casino):
    dispatcher = CasinoDispatcher(casino)
    casino.ctx.random_func = lambda: die(6)
    await dispatcher.handle_command(command("/d21 50"))
    game_id = casino.groups.active_game_id(GROUP)

    hit = await dispatcher.handle_callback(press(f"d21_hit:{game_id}"))
    stand = await dispatcher.handle_callback(press(f"d21_stand:{game_id}"))
    await casino.wait_idle()

    assert hit.text == "Total 18."
    assert stand.error_code is None
    assert casino.ledger.get_balance(ALICE) == 1000
    assert casino.display.last.callbacks == ["play_again:dice21:50"]


@pytest.mark.asyncio
async def test_sevens_out_roll_through_dispatcher(casino):
    dispatcher = CasinoDispatcher(casino)
    casino.ctx.random_func = ScriptedRandom([die(v) for v in (2, 3, 1, 4)])
    await dispatcher.handle_command(command("/s7 30"))
    game_id = casino.groups.active_game_id(GROUP)

    result = await dispatcher.handle_callback(press(f"s7_roll:{game_id}"))

    assert result.text == "Rolled 5."
    assert casino.ledger.get_balance(ALICE) == 1030


@pytest.mark.asyncio
@pytest.mark.parametrize("game_type", ["ladder", "slots"])
async def test_play_again_for_instant_games(casino, game_type):
    result = await CasinoDispatcher(casino).handle_callback(press(f"play_again:{game_type}:25"))

    assert result.error_code is None
    assert casino.groups.active_game_id(GROUP) is None
    assert casino.display.last.callbacks == [f"play_again:{game_type}:25"]


@pytest.mark.asyncio
async def test_missing_bet_shows_usage(lobby_casino):
    result = await CasinoDispatcher(lobby_casino).handle_command(command("/dice21"))

    assert result.error_code == "INVALID_BET"
    assert "/dice21 &lt;bet&gt;" in result.text
    assert len(lobby_casino.games) == 0
    assert lobby_casino.ledger.get_balance(ALICE) == 1000
