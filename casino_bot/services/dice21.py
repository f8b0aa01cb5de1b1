"""
Dice 21: blackjack with a single die.

The player starts with two dice and hits one die at a time, trying to get
as close to 21 as possible without going over. On stand the house rolls
until it reaches 17 or busts. The whole house hand is settled at once;
only its narration is paced afterwards.
"""

import logging
from enum import Enum
from typing import Callable, List, Optional

from casino_bot.services.display import Button
from casino_bot.services.game_session import ActionResult, GameSession, GameStatus, GameType
from casino_bot.services.house_games import HouseGameService
from casino_bot.services.ledger import TransactionKind
from casino_bot.utils import escape_html

logger = logging.getLogger(__name__)

DICE21_HIT_PREFIX = "d21_hit"
DICE21_STAND_PREFIX = "d21_stand"

TARGET_SCORE = 21
HOUSE_STAND_SCORE = 17
HOUSE_MAX_ROLLS = 10


class Dice21Outcome(str, Enum):
    PLAYER_WINS = "player_wins"
    HOUSE_BUST = "house_bust"
    PUSH = "push"
    HOUSE_WINS = "house_wins"


def play_house_hand(roll_die: Callable[[], int]) -> List[int]:
    """Roll for the house until it stands on 17+, busts, or runs out of rolls."""
    rolls: List[int] = []
    while sum(rolls) < HOUSE_STAND_SCORE and len(rolls) < HOUSE_MAX_ROLLS:
        rolls.append(roll_die())
    return rolls


def settle_dice21(player_score: int, house_score: int) -> Dice21Outcome:
    if house_score > TARGET_SCORE:
        return Dice21Outcome.HOUSE_BUST
    if player_score > house_score:
        return Dice21Outcome.PLAYER_WINS
    if player_score == house_score:
        return Dice21Outcome.PUSH
    return Dice21Outcome.HOUSE_WINS


class Dice21Service(HouseGameService):
    game_type = GameType.DICE_21
    icon = "🃏"

    def roll_die(self) -> int:
        return self.roll_dice(1)[0]

    def turn_controls(self, game: GameSession) -> List[List[Button]]:
        return [[
            Button("🎲 Hit", f"{DICE21_HIT_PREFIX}:{game.game_id}"),
            Button("✋ Stand", f"{DICE21_STAND_PREFIX}:{game.game_id}"),
        ]]

    def _header(self, game: GameSession) -> str:
        return f"🃏 <b>Dice 21</b> | {escape_html(game.initiator.name)} | bet {self.money(game.bet)}\n\n"

    async def start(
        self,
        user_id: int,
        name: str,
        chat_id: int,
        chat_title: Optional[str],
        bet: int,
    ) -> ActionResult:
        result = self._open_game(user_id, name, chat_id, chat_title, bet, GameStatus.PLAYER_TURN)
        if not result.success:
            return result
        game = result.game
        dice = self.roll_dice(2)
        game.score = sum(dice)
        await self.ctx.display.render(
            game,
            self._header(game) + f"Your dice: 🎲 {dice[0]} + {dice[1]} = <b>{game.score}</b>\n"
            f"Hit or stand? The house stands on {HOUSE_STAND_SCORE}.",
            self.turn_controls(game),
        )
        return result

    def _claim_player_turn(self, game_id: str, user_id: int):
        game = self.get_game(game_id)
        if game is None:
            return None, self._not_found()
        if user_id != game.initiator_id:
            return None, ActionResult.fail("NOT_YOUR_GAME", "This isn't your game.")
        if game.status != GameStatus.PLAYER_TURN:
            return None, ActionResult.fail("WRONG_STATE", "Wait for the current roll to finish.")
        return game, None

    async def hit(self, game_id: str, user_id: int) -> ActionResult:
        game, error = self._claim_player_turn(game_id, user_id)
        if error:
            return error

        value = self.roll_die()
        game.score += value
        self._touch(game)

        if game.score > TARGET_SCORE:
            self.finish_game(game, GameStatus.PLAYER_BUST)
            logger.info(f"[DICE21] {game_id}: bust at {game.score}")
            await self.ctx.display.render(
                game,
                self._header(game) + f"🎲 Rolled {value}. Total <b>{game.score}</b>.\n"
                f"💥 Bust! {self.money(game.bet)} lost.",
                self.play_again_controls(game),
            )
            return ActionResult(success=True, message=f"Bust at {game.score}.", game=game)

        if game.score == TARGET_SCORE:
            return await self._stand(game, f"🎲 Rolled {value}. <b>21!</b>")

        await self.ctx.display.render(
            game,
            self._header(game) + f"🎲 Rolled {value}. Total <b>{game.score}</b>.\nHit or stand?",
            self.turn_controls(game),
        )
        return ActionResult(success=True, message=f"Total {game.score}.", game=game)

    async def stand(self, game_id: str, user_id: int) -> ActionResult:
        game, error = self._claim_player_turn(game_id, user_id)
        if error:
            return error
        return await self._stand(game, f"You stand on <b>{game.score}</b>.")

    async def _stand(self, game: GameSession, opening: str) -> ActionResult:
        game.status = GameStatus.BOT_TURN
        house_rolls = play_house_hand(self.roll_die)
        game.house_score = sum(house_rolls)
        outcome = settle_dice21(game.score, game.house_score)
        if outcome in (Dice21Outcome.PLAYER_WINS, Dice21Outcome.HOUSE_BUST):
            self._pay(game, game.initiator_id, game.bet * 2, TransactionKind.WIN)
        elif outcome == Dice21Outcome.PUSH:
            self._pay(game, game.initiator_id, game.bet, TransactionKind.REFUND)
        self.finish_game(game, GameStatus.GAME_OVER)
        logger.info(
            f"[DICE21] {game.game_id}: player {game.score} vs house {house_rolls} = {game.house_score}, "
            f"{outcome.value}"
        )
        self._spawn(game.game_id, self._narrate_house(game, opening, house_rolls, outcome))
        return ActionResult(success=True, message=f"{game.score} vs {game.house_score}.", game=game)

    async def _narrate_house(
        self,
        game: GameSession,
        opening: str,
        house_rolls: List[int],
        outcome: Dice21Outcome,
    ) -> None:
        lines = [opening, "House is rolling..."]
        await self.ctx.display.render(game, self._header(game) + "\n".join(lines))
        total = 0
        for value in house_rolls:
            await self.ctx.sleep(self.reveal_delay)
            total += value
            lines.append(f"House: 🎲 {value} (total {total})")
            await self.ctx.display.render(game, self._header(game) + "\n".join(lines))

        if outcome == Dice21Outcome.HOUSE_BUST:
            lines.append(f"💥 House busts! You win <b>{self.money(game.bet * 2)}</b>!")
        elif outcome == Dice21Outcome.PLAYER_WINS:
            lines.append(f"🎉 {game.score} beats {total}. You win <b>{self.money(game.bet * 2)}</b>!")
        elif outcome == Dice21Outcome.PUSH:
            lines.append(f"🤝 Push at {total}. {self.money(game.bet)} refunded.")
        else:
            lines.append(f"🏠 House wins with {total}. {self.money(game.bet)} lost.")
        await self.ctx.display.render(game, self._header(game) + "\n".join(lines), self.play_again_controls(game))
