"""
Rock-Paper-Scissors.

After the second player joins, both pick a hand via buttons. A pick is
final. Once both hands are in, the game resolves: winner takes ``2 x bet``;
a draw refunds both.
"""

import logging
from enum import Enum
from typing import List

from casino_bot.services.display import Button
from casino_bot.services.game_session import ActionResult, GameSession, GameStatus, GameType
from casino_bot.services.ledger import TransactionKind
from casino_bot.services.pvp import TwoPlayerGameService
from casino_bot.utils import escape_html

logger = logging.getLogger(__name__)

CHOOSE_PREFIX = "rps_choose"


class RpsChoice(str, Enum):
    ROCK = "rock"
    PAPER = "paper"
    SCISSORS = "scissors"


class RpsOutcome(str, Enum):
    FIRST_WINS = "first_wins"
    SECOND_WINS = "second_wins"
    DRAW = "draw"
    INVALID = "invalid"


# key beats value
BEATS = {
    RpsChoice.ROCK: RpsChoice.SCISSORS,
    RpsChoice.PAPER: RpsChoice.ROCK,
    RpsChoice.SCISSORS: RpsChoice.PAPER,
}

EMOJI = {
    RpsChoice.ROCK: "🪨",
    RpsChoice.PAPER: "📄",
    RpsChoice.SCISSORS: "✂️",
}


def parse_choice(value: str):
    try:
        return RpsChoice((value or "").lower())
    except ValueError:
        return None


def determine_rps_outcome(first: str, second: str) -> RpsOutcome:
    """Apply the rule table to two hands (strings or RpsChoice)."""
    a, b = parse_choice(first), parse_choice(second)
    if a is None or b is None:
        return RpsOutcome.INVALID
    if a == b:
        return RpsOutcome.DRAW
    if BEATS[a] == b:
        return RpsOutcome.FIRST_WINS
    if BEATS[b] == a:
        return RpsOutcome.SECOND_WINS
    return RpsOutcome.INVALID


def _label(choice: str) -> str:
    parsed = parse_choice(choice)
    return f"{EMOJI[parsed]} {parsed.value.capitalize()}" if parsed else "?"


class RpsService(TwoPlayerGameService):
    game_type = GameType.RPS
    icon = "✊"

    def choice_controls(self, game: GameSession) -> List[List[Button]]:
        return [[
            Button(f"{EMOJI[c]} {c.value.capitalize()}", f"{CHOOSE_PREFIX}:{game.game_id}:{c.value}")
            for c in RpsChoice
        ]]

    def _choices_body(self, game: GameSession) -> str:
        lines = [f"✊ <b>Rock Paper Scissors</b> | bet {self.money(game.bet)}\n"]
        for p in game.participants:
            mark = "✅ locked in" if p.choice else "🤔 choosing..."
            lines.append(f"{escape_html(p.name)}: {mark}")
        lines.append("\nPick your move. Choices stay hidden until both are in.")
        return "\n".join(lines)

    async def on_opponent_joined(self, game: GameSession) -> ActionResult:
        game.status = GameStatus.WAITING_CHOICES
        await self.ctx.display.render(game, self._choices_body(game), self.choice_controls(game))
        return ActionResult(success=True, message="You're in! Pick your move.", game=game)

    async def choose(self, game_id: str, user_id: int, choice: str) -> ActionResult:
        """Record a participant's hand; resolve once both are in."""
        parsed = parse_choice(choice)
        if parsed is None:
            return ActionResult.fail("INVALID_CHOICE", "Pick rock, paper or scissors.")

        game = self.get_game(game_id)
        if game is None:
            return self._not_found()
        if game.status != GameStatus.WAITING_CHOICES:
            return ActionResult.fail("WRONG_STATE", "This game isn't taking choices right now.")
        player = game.participant(user_id)
        if player is None:
            return ActionResult.fail("NOT_PARTICIPANT", "You're not playing in this game.")
        if player.choice is not None:
            return ActionResult.fail("ALREADY_CHOSEN", "You already chose. Wait for your opponent.")

        player.choice = parsed.value
        self._touch(game)
        logger.info(f"[RPS] {game_id}: {user_id} locked in")

        if all(p.choice for p in game.participants) and len(game.participants) == 2:
            return await self._resolve(game)

        await self.ctx.display.render(game, self._choices_body(game), self.choice_controls(game))
        return ActionResult(success=True, message=f"You chose {parsed.value}.", game=game)

    async def _resolve(self, game: GameSession) -> ActionResult:
        first, second = game.participants[0], game.participants[1]
        outcome = determine_rps_outcome(first.choice, second.choice)
        pot = game.bet * 2
        header = (
            f"✊ <b>Rock Paper Scissors</b>\n\n"
            f"{escape_html(first.name)}: {_label(first.choice)}\n"
            f"{escape_html(second.name)}: {_label(second.choice)}\n\n"
        )

        if outcome in (RpsOutcome.FIRST_WINS, RpsOutcome.SECOND_WINS):
            winner = first if outcome == RpsOutcome.FIRST_WINS else second
            self._pay(game, winner.user_id, pot, TransactionKind.WIN)
            body = header + f"🏆 {escape_html(winner.name)} wins <b>{self.money(pot)}</b>!"
            message = f"{winner.name} wins {pot}!"
        else:
            if outcome == RpsOutcome.INVALID:
                logger.warning(
                    f"[RPS] {game.game_id}: unrecognised pairing {first.choice!r}/{second.choice!r}; refunding both"
                )
                body = header + "Something went wrong resolving this round. Both bets refunded."
                message = "Round voided, bets refunded."
            else:
                body = header + f"🤝 Draw! Both players get {self.money(game.bet)} back."
                message = "Draw! Bets refunded."
            self.refund_charged(game)

        self.finish_game(game, GameStatus.RESOLVED)
        logger.info(f"[RPS] {game.game_id} resolved: {outcome.value}")
        await self.ctx.display.render(game, body)
        return ActionResult(success=True, message=message, game=game)
