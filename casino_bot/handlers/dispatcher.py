"""
Command/callback dispatcher.

Takes transport-neutral events (sender, chat, command or callback payload,
message ID) and routes them to the casino services. Any exception raised
by a route is logged and turned into a generic failure reply so one bad
event never takes the update loop down.
"""

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from casino_bot.services.casino import Casino
from casino_bot.services.game_session import ActionResult, GameType
from casino_bot.utils import escape_html, format_credits

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Something went wrong handling that. Please try again."
GROUP_CHAT_TYPES = ("group", "supergroup")

COMMAND_ALIASES = {
    "start": "help",
    "bal": "balance",
    "startdice": "startdiceescalator",
    "ou7": "overunder7",
    "d21": "dice21",
    "s7": "sevenout",
    "slots": "slot",
}

START_COMMANDS = {
    "startcoinflip": (GameType.COINFLIP, False),
    "startrps": (GameType.RPS, True),
    "startdiceescalator": (GameType.DICE_ESCALATOR, True),
    "overunder7": (GameType.OVER_UNDER_7, True),
    "duel": (GameType.DUEL, True),
    "dice21": (GameType.DICE_21, True),
    "ladder": (GameType.LADDER, True),
    "sevenout": (GameType.SEVENS_OUT, True),
    "slot": (GameType.SLOTS, True),
}

USAGE = {
    GameType.COINFLIP: "/startcoinflip &lt;bet&gt;",
    GameType.RPS: "/startrps &lt;bet&gt;",
    GameType.DICE_ESCALATOR: "/startdiceescalator &lt;bet&gt;",
    GameType.OVER_UNDER_7: "/overunder7 &lt;bet&gt;",
    GameType.DUEL: "/duel &lt;bet&gt;",
    GameType.DICE_21: "/dice21 &lt;bet&gt;",
    GameType.LADDER: "/ladder &lt;bet&gt;",
    GameType.SEVENS_OUT: "/sevenout &lt;bet&gt;",
    GameType.SLOTS: "/slot &lt;bet&gt;",
}


@dataclass
class ChatEvent:
    """Fields every inbound event carries."""
    sender_id: int
    sender_name: str
    chat_id: int
    chat_type: str = "group"
    chat_title: Optional[str] = None
    message_id: Optional[int] = None

    @property
    def is_group(self) -> bool:
        return self.chat_type in GROUP_CHAT_TYPES


@dataclass
class CommandEvent(ChatEvent):
    text: str = ""


@dataclass
class CallbackEvent(ChatEvent):
    data: str = ""


@dataclass
class DispatchResult:
    """What the transport should answer with."""
    handled: bool
    text: Optional[str] = None
    alert: bool = False
    error_code: Optional[str] = None


@dataclass
class ParsedCommand:
    name: str
    args: List[str] = field(default_factory=list)


def parse_command(text: str) -> Optional[ParsedCommand]:
    """``/Cmd@bot a b`` -> ParsedCommand("cmd", ["a", "b"]); None if not a command."""
    if not text or not text.startswith("/"):
        return None
    parts = text.strip().split()
    name = parts[0][1:].split("@", 1)[0].lower()
    if not name:
        return None
    return ParsedCommand(name=COMMAND_ALIASES.get(name, name), args=parts[1:])


def parse_callback(data: str) -> Tuple[str, List[str]]:
    """``action:p1:p2`` -> ("action", ["p1", "p2"])."""
    parts = (data or "").split(":")
    return parts[0], parts[1:]


def parse_bet(raw: Optional[str], min_bet: int, max_bet: int) -> Optional[int]:
    """Strict integer in ``[min_bet, max_bet]`` or None."""
    if raw is None:
        return None
    raw = raw.strip()
    if not raw or not (raw.isdigit() or (raw[0] in "+-" and raw[1:].isdigit())):
        return None
    value = int(raw)
    if not min_bet <= value <= max_bet:
        return None
    return value


class CasinoDispatcher:
    """Routes commands and button presses to the casino."""

    def __init__(self, casino: Casino):
        self.casino = casino
        self._callbacks: Dict[str, Callable[[CallbackEvent, List[str]], Awaitable[DispatchResult]]] = {
            "join_game": self._on_join,
            "cancel_game": self._on_cancel,
            "rps_choose": self._on_rps_choose,
            "de_roll_prompt": self._on_de_roll,
            "de_cashout": self._on_de_cashout,
            "ou7_choice": self._on_ou7_choice,
            "duel_roll": self._on_duel_roll,
            "d21_hit": self._on_d21_hit,
            "d21_stand": self._on_d21_stand,
            "s7_roll": self._on_s7_roll,
            "play_again": self._on_play_again,
        }

    # --- entry points ----------------------------------------------------

    async def handle_command(self, event: CommandEvent) -> DispatchResult:
        command = parse_command(event.text)
        if command is None:
            return DispatchResult(handled=False)
        try:
            return await self._route_command(event, command)
        except Exception:
            logger.exception(f"[DISPATCH] /{command.name} from {event.sender_id} in {event.chat_id} failed")
            return DispatchResult(handled=True, text=GENERIC_FAILURE, error_code="INTERNAL")

    async def handle_callback(self, event: CallbackEvent) -> DispatchResult:
        action, params = parse_callback(event.data)
        route = self._callbacks.get(action)
        if route is None:
            logger.warning(f"[DISPATCH] Unknown callback action {event.data!r} from {event.sender_id}")
            return DispatchResult(handled=False)
        try:
            self.casino.ledger.get_or_create_account(event.sender_id, event.sender_name)
            return await route(event, params)
        except Exception:
            logger.exception(f"[DISPATCH] Callback {event.data!r} from {event.sender_id} failed")
            return DispatchResult(handled=True, text=GENERIC_FAILURE, alert=True, error_code="INTERNAL")

    # --- commands --------------------------------------------------------

    async def _route_command(self, event: CommandEvent, command: ParsedCommand) -> DispatchResult:
        account = self.casino.ledger.get_or_create_account(event.sender_id, event.sender_name)

        if command.name == "help":
            return DispatchResult(handled=True, text=self.help_text())
        if command.name == "balance":
            return DispatchResult(
                handled=True,
                text=f"💰 {escape_html(account.display_name)}, your balance is "
                     f"<b>{format_credits(account.balance)}</b>.",
            )
        if command.name == "jackpot":
            return DispatchResult(handled=True, text=self.jackpot_text())
        if command.name in START_COMMANDS:
            game_type, group_only = START_COMMANDS[command.name]
            if group_only and not event.is_group:
                return DispatchResult(
                    handled=True,
                    text="This game can only be played in group chats.",
                    error_code="GROUP_ONLY",
                )
            raw_bet = command.args[0] if command.args else None
            return await self.start_game(event, game_type, raw_bet)

        logger.debug(f"[DISPATCH] Ignoring unknown command /{command.name}")
        return DispatchResult(handled=False)

    async def start_game(self, event: ChatEvent, game_type: GameType, raw_bet: Optional[str]) -> DispatchResult:
        casino = self.casino
        bet = parse_bet(raw_bet, casino.ctx.min_bet, casino.ctx.max_bet)
        if bet is None:
            return DispatchResult(
                handled=True,
                text=f"Usage: {USAGE[game_type]} (bet {casino.ctx.min_bet}-{casino.ctx.max_bet})",
                error_code="INVALID_BET",
            )
        service = casino.service_for(game_type)
        result = await service.start(
            event.sender_id, event.sender_name, event.chat_id, event.chat_title, bet
        )
        return self._reply(result, alert=False)

    def help_text(self) -> str:
        ctx = self.casino.ctx
        return (
            "🎰 <b>Casino</b>\n\n"
            "/balance - show your credits (alias /bal)\n"
            "/startcoinflip &lt;bet&gt; - heads or tails against another player\n"
            "/startrps &lt;bet&gt; - rock paper scissors\n"
            "/startdiceescalator &lt;bet&gt; - push your luck against the house (alias /startdice)\n"
            "/overunder7 &lt;bet&gt; - call the total of two dice (alias /ou7)\n"
            "/duel &lt;bet&gt; - two dice each against the house\n"
            "/dice21 &lt;bet&gt; - hit or stand, closest to 21 wins (alias /d21)\n"
            "/ladder &lt;bet&gt; - three dice, avoid the 1s\n"
            "/sevenout &lt;bet&gt; - craps-style point game (alias /s7)\n"
            "/slot &lt;bet&gt; - spin the reel (alias /slots)\n"
            "/jackpot - current Dice Escalator jackpot\n\n"
            "Games other than coin flip are for group chats only.\n"
            f"Bets: {ctx.min_bet}-{ctx.max_bet} credits. One game per chat at a time."
        )

    def jackpot_text(self) -> str:
        jackpot = self.casino.jackpot
        return (
            f"🏆 Jackpot: <b>{format_credits(jackpot.amount)}</b>\n"
            f"Cash out of Dice Escalator at {jackpot.target_score}+ points to win it."
        )

    # --- callbacks -------------------------------------------------------

    def _reply(self, result: ActionResult, alert: bool = True) -> DispatchResult:
        if result.success:
            return DispatchResult(handled=True, text=result.message or None)
        return DispatchResult(handled=True, text=result.message, alert=alert, error_code=result.error_code)

    def _lookup(self, game_id: str):
        return self.casino.games.get(game_id)

    def _expired(self) -> DispatchResult:
        return DispatchResult(
            handled=True, text="This game has ended or expired.", alert=True, error_code="NOT_FOUND"
        )

    async def _on_join(self, event: CallbackEvent, params: List[str]) -> DispatchResult:
        game = self._lookup(params[0]) if params else None
        if game is None:
            return self._expired()
        if game.chat_id != event.chat_id:
            return DispatchResult(handled=True, text="That game belongs to another chat.", alert=True, error_code="WRONG_CHAT")
        service = self.casino.service_for(game.game_type)
        if not hasattr(service, "join"):
            return DispatchResult(handled=True, text="Nobody can join this game.", alert=True, error_code="WRONG_STATE")
        return self._reply(await service.join(game.game_id, event.sender_id, event.sender_name))

    async def _on_cancel(self, event: CallbackEvent, params: List[str]) -> DispatchResult:
        game = self._lookup(params[0]) if params else None
        if game is None:
            return self._expired()
        service = self.casino.service_for(game.game_type)
        if not hasattr(service, "cancel"):
            return DispatchResult(handled=True, text="This game can't be cancelled.", alert=True, error_code="WRONG_STATE")
        return self._reply(await service.cancel(game.game_id, event.sender_id))

    async def _on_rps_choose(self, event: CallbackEvent, params: List[str]) -> DispatchResult:
        if len(params) < 2:
            return self._expired()
        return self._reply(await self.casino.rps.choose(params[0], event.sender_id, params[1]))

    async def _on_de_roll(self, event: CallbackEvent, params: List[str]) -> DispatchResult:
        if not params:
            return self._expired()
        return self._reply(await self.casino.dice_escalator.request_roll(params[0], event.sender_id))

    async def _on_de_cashout(self, event: CallbackEvent, params: List[str]) -> DispatchResult:
        if not params:
            return self._expired()
        return self._reply(await self.casino.dice_escalator.cash_out(params[0], event.sender_id))

    async def _on_ou7_choice(self, event: CallbackEvent, params: List[str]) -> DispatchResult:
        if len(params) < 2:
            return self._expired()
        return self._reply(await self.casino.over_under.choose(params[0], event.sender_id, params[1]))

    async def _on_duel_roll(self, event: CallbackEvent, params: List[str]) -> DispatchResult:
        if not params:
            return self._expired()
        return self._reply(await self.casino.duel.roll(params[0], event.sender_id))

    async def _on_d21_hit(self, event: CallbackEvent, params: List[str]) -> DispatchResult:
        if not params:
            return self._expired()
        return self._reply(await self.casino.dice21.hit(params[0], event.sender_id))

    async def _on_d21_stand(self, event: CallbackEvent, params: List[str]) -> DispatchResult:
        if not params:
            return self._expired()
        return self._reply(await self.casino.dice21.stand(params[0], event.sender_id))

    async def _on_s7_roll(self, event: CallbackEvent, params: List[str]) -> DispatchResult:
        if not params:
            return self._expired()
        return self._reply(await self.casino.sevens_out.roll(params[0], event.sender_id))

    async def _on_play_again(self, event: CallbackEvent, params: List[str]) -> DispatchResult:
        if len(params) < 2:
            return self._expired()
        try:
            game_type = GameType(params[0])
        except ValueError:
            logger.warning(f"[DISPATCH] play_again for unknown game type {params[0]!r}")
            return DispatchResult(handled=False)
        _, group_only = next(v for v in START_COMMANDS.values() if v[0] == game_type)
        if group_only and not event.is_group:
            return DispatchResult(handled=True, text="This game can only be played in group chats.", alert=True, error_code="GROUP_ONLY")
        result = await self.start_game(event, game_type, params[1])
        result.alert = result.error_code is not None
        return result
