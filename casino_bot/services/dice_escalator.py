"""
Dice Escalator: push-your-luck against the house.

The player banks die rolls into a running score. Rolling the bust value
forfeits the bet; cashing out credits ``bet + score`` at once. After a
cash-out the house takes a short narrated turn that has no effect on the
payout already credited.

Rolls for the player come from the external roll service through
``RollOracleBridge``; the house rolls locally.
"""

import logging
from typing import List, Optional

from casino_bot.services.display import Button
from casino_bot.services.game_base import BaseGameService, GameContext
from casino_bot.services.game_session import ActionResult, GameSession, GameStatus, GameType
from casino_bot.services.jackpot import Jackpot
from casino_bot.services.ledger import TransactionKind
from casino_bot.services.roll_oracle import (
    DIE_MAX,
    DIE_MIN,
    PollOutcome,
    PollResult,
    RollOracleBridge,
    RollStoreError,
)
from casino_bot.utils import escape_html

logger = logging.getLogger(__name__)

ROLL_PREFIX = "de_roll_prompt"
CASHOUT_PREFIX = "de_cashout"
PLAY_AGAIN_PREFIX = "play_again"

DIE_FACES = {1: "⚀", 2: "⚁", 3: "⚂", 4: "⚃", 5: "⚄", 6: "⚅"}

REVERT_NOTICES = {
    PollOutcome.ERROR: "⚠️ The dice service reported an error. Your score is safe, try again.",
    PollOutcome.INVALID: "⚠️ The dice service returned an invalid roll. It was discarded, try again.",
    PollOutcome.TIMEOUT: "⌛ The dice service took too long. Your score is safe, try again.",
    PollOutcome.STORAGE_ERROR: "⚠️ Couldn't reach the dice service. Your score is safe, try again.",
}


class DiceEscalatorService(BaseGameService):
    game_type = GameType.DICE_ESCALATOR

    DEFAULT_BUST_VALUE: int = 1
    DEFAULT_HOUSE_MAX_ROLLS: int = 3
    DEFAULT_HOUSE_DELAY_SECONDS: float = 1.5

    def __init__(
        self,
        ctx: GameContext,
        oracle: RollOracleBridge,
        bust_value: Optional[int] = None,
        house_max_rolls: Optional[int] = None,
        house_delay: Optional[float] = None,
        jackpot: Optional[Jackpot] = None,
    ):
        """
        Args:
            ctx: Shared game context
            oracle: Bridge to the external roll service
            bust_value: Die face that busts a turn
            house_max_rolls: Cap on house rolls after a cash-out
            house_delay: Pause between narrated house rolls
            jackpot: Pool fed by every stake and won by a high cash-out
        """
        super().__init__(ctx)
        self.oracle = oracle
        self.bust_value = self.DEFAULT_BUST_VALUE if bust_value is None else bust_value
        self.house_max_rolls = self.DEFAULT_HOUSE_MAX_ROLLS if house_max_rolls is None else house_max_rolls
        self.house_delay = self.DEFAULT_HOUSE_DELAY_SECONDS if house_delay is None else house_delay
        self.jackpot = jackpot

    # --- cards -----------------------------------------------------------

    def _header(self, game: GameSession) -> str:
        return (
            f"🎲 <b>Dice Escalator</b> | {escape_html(game.initiator.name)} | "
            f"bet {self.money(game.bet)}\n"
        )

    def prompt_body(self, game: GameSession, notice: str = "") -> str:
        lines = [self._header(game)]
        if notice:
            lines.append(notice + "\n")
        lines.append(f"Score: <b>{game.score}</b>")
        if game.score > 0:
            lines.append(f"Cash out now for <b>{self.money(game.bet + game.score)}</b>.")
        lines.append(f"Rolling a {self.bust_value} busts and loses the bet.")
        return "\n".join(lines)

    def prompt_controls(self, game: GameSession) -> List[List[Button]]:
        row = [Button("🎲 Roll", f"{ROLL_PREFIX}:{game.game_id}")]
        if game.score > 0:
            row.append(Button(f"💰 Cash out {game.bet + game.score}", f"{CASHOUT_PREFIX}:{game.game_id}"))
        return [row]

    def play_again_controls(self, game: GameSession) -> List[List[Button]]:
        return [[Button("🔁 Play again", f"{PLAY_AGAIN_PREFIX}:{self.game_type.value}:{game.bet}")]]

    def _is_awaiting(self, game_id: str, attempt: int) -> bool:
        game = self.get_game(game_id)
        return (
            game is not None
            and game.status == GameStatus.WAITING_FOR_ROLL
            and game.roll_attempt == attempt
        )

    def roll_house_die(self) -> int:
        return min(DIE_MAX, int(self.ctx.random_func() * DIE_MAX) + DIE_MIN)

    # --- player turn -----------------------------------------------------

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
        if self.jackpot is not None:
            self.jackpot.contribute(bet, game.game_id)
        await self.ctx.display.render(game, self.prompt_body(game), self.prompt_controls(game))
        return result

    async def request_roll(self, game_id: str, user_id: int) -> ActionResult:
        """Ask the roll service for a die value and start polling for it."""
        game = self.get_game(game_id)
        if game is None:
            return self._not_found()
        if user_id != game.initiator_id:
            return ActionResult.fail("NOT_YOUR_GAME", "This isn't your game.")
        if game.status != GameStatus.PLAYER_TURN:
            return ActionResult.fail("WRONG_STATE", "A roll is already in progress.")

        game.status = GameStatus.WAITING_FOR_ROLL
        game.roll_attempt += 1
        attempt = game.roll_attempt
        self._touch(game)

        try:
            await self.oracle.request(game_id, game.chat_id, user_id)
        except RollStoreError as e:
            logger.error(f"[DICE_ESCALATOR] {game_id}: roll request failed: {e}")
            return await self._request_failed(game_id, attempt)
        except Exception:
            logger.exception(f"[DICE_ESCALATOR] {game_id}: unexpected error requesting a roll")
            return await self._request_failed(game_id, attempt)

        game = self.get_game(game_id)
        if not self._is_awaiting(game_id, attempt):
            return ActionResult(success=True, message="Rolling...")
        await self.ctx.display.render(game, self._header(game) + "\n🎲 Rolling... waiting for the dice service.")

        if self._is_awaiting(game_id, attempt):
            self._spawn(game_id, self._await_roll(game_id, attempt))
        return ActionResult(success=True, message="Rolling...", game=game)

    async def _request_failed(self, game_id: str, attempt: int) -> ActionResult:
        await self._revert(game_id, attempt, REVERT_NOTICES[PollOutcome.STORAGE_ERROR])
        return ActionResult.fail("STORAGE_ERROR", "Couldn't reach the dice service. Try again.")

    async def _await_roll(self, game_id: str, attempt: int) -> None:
        try:
            result = await self.oracle.poll(game_id, lambda: self._is_awaiting(game_id, attempt))
        except Exception:
            logger.exception(f"[DICE_ESCALATOR] {game_id}: unexpected error polling for a roll")
            result = PollResult(PollOutcome.STORAGE_ERROR)
        if result.outcome == PollOutcome.ABANDONED:
            return
        if result.outcome == PollOutcome.COMPLETED:
            await self.resolve_roll(game_id, result.value, attempt)
            return
        await self._revert(game_id, attempt, REVERT_NOTICES[result.outcome])

    async def _revert(self, game_id: str, attempt: int, notice: str) -> None:
        """Return a waiting game to the actionable prompt."""
        if not self._is_awaiting(game_id, attempt):
            return
        game = self.get_game(game_id)
        game.status = GameStatus.PLAYER_TURN
        logger.info(f"[DICE_ESCALATOR] {game_id}: reverted to prompt ({notice})")
        await self.ctx.display.render(game, self.prompt_body(game, notice), self.prompt_controls(game))

    async def resolve_roll(self, game_id: str, value: int, attempt: Optional[int] = None) -> ActionResult:
        """Apply a die value delivered by the roll service."""
        game = self.get_game(game_id)
        if game is None or game.status != GameStatus.WAITING_FOR_ROLL:
            return ActionResult.fail("WRONG_STATE", "No roll is pending for this game.")
        if attempt is not None and game.roll_attempt != attempt:
            return ActionResult.fail("WRONG_STATE", "That roll was superseded.")
        if not isinstance(value, int) or not DIE_MIN <= value <= DIE_MAX:
            logger.error(f"[DICE_ESCALATOR] {game_id}: rejecting roll value {value!r}")
            await self._revert(game_id, game.roll_attempt, REVERT_NOTICES[PollOutcome.INVALID])
            return ActionResult.fail("INVALID_ROLL", "Invalid roll discarded.")

        face = DIE_FACES[value]
        if value == self.bust_value:
            lost_score = game.score
            game.score = 0
            self.finish_game(game, GameStatus.PLAYER_BUST)
            logger.info(f"[DICE_ESCALATOR] {game_id}: bust on {value}, score {lost_score} and bet lost")
            await self.ctx.display.render(
                game,
                self._header(game)
                + f"\n{face} Rolled a <b>{value}</b>. BUST!\n"
                f"The bet of {self.money(game.bet)} is lost.",
                self.play_again_controls(game),
            )
            return ActionResult(success=True, message=f"Bust on {value}!", game=game)

        game.score += value
        game.status = GameStatus.PLAYER_TURN
        self._touch(game)
        logger.info(f"[DICE_ESCALATOR] {game_id}: rolled {value}, score {game.score}")
        await self.ctx.display.render(
            game,
            self.prompt_body(game, f"{face} Rolled a <b>{value}</b>!"),
            self.prompt_controls(game),
        )
        return ActionResult(success=True, message=f"Rolled {value}.", game=game)

    # --- cash-out and house turn -----------------------------------------

    async def cash_out(self, game_id: str, user_id: int) -> ActionResult:
        """Lock in ``bet + score`` and hand over to the house."""
        game = self.get_game(game_id)
        if game is None:
            return self._not_found()
        if user_id != game.initiator_id:
            return ActionResult.fail("NOT_YOUR_GAME", "This isn't your game.")
        if game.status != GameStatus.PLAYER_TURN:
            return ActionResult.fail("WRONG_STATE", "You can't cash out right now.")
        if game.score <= 0:
            return ActionResult.fail("NO_SCORE", "Roll at least once before cashing out.")

        game.status = GameStatus.PLAYER_CASHED_OUT
        payout = game.bet + game.score
        game.initiator.charged = False
        self._pay(game, user_id, payout, TransactionKind.CASHOUT)
        logger.info(f"[DICE_ESCALATOR] {game_id}: cashed out {payout}")

        jackpot_won = 0
        if self.jackpot is not None and self.jackpot.qualifies(game.score):
            jackpot_won = self.jackpot.award(user_id, game.chat_id, game_id)

        self._spawn(game_id, self.house_turn(game_id, jackpot_won))
        message = f"Cashed out {payout}!"
        if jackpot_won:
            message += f" Jackpot: +{jackpot_won}!"
        return ActionResult(success=True, message=message, game=game)

    async def house_turn(self, game_id: str, jackpot_won: int = 0) -> None:
        """Narrated house rolls after a cash-out. Never touches balances."""
        game = self.get_game(game_id)
        if game is None or game.status != GameStatus.PLAYER_CASHED_OUT:
            return
        game.status = GameStatus.BOT_TURN
        target = game.score
        payout = game.bet + game.score
        lines = [
            self._header(game),
            f"💰 Cashed out <b>{self.money(payout)}</b> at score {target}.",
        ]
        if jackpot_won:
            lines.append(f"🏆 <b>JACKPOT!</b> You also won {self.money(jackpot_won)}!")
        lines.append(f"🏠 The house tries to beat {target}...")
        await self.ctx.display.render(game, "\n".join(lines))

        house_bust = False
        for roll_number in range(1, self.house_max_rolls + 1):
            await self.ctx.sleep(self.house_delay)
            game = self.get_game(game_id)
            if game is None or game.status != GameStatus.BOT_TURN:
                return

            value = self.roll_house_die()
            if value == self.bust_value:
                game.house_score = 0
                house_bust = True
                lines.append(f"House roll {roll_number}: {DIE_FACES[value]} {value}. House busts!")
                break
            game.house_score += value
            lines.append(f"House roll {roll_number}: {DIE_FACES[value]} {value} (total {game.house_score})")
            if game.house_score > target:
                break
            if roll_number < self.house_max_rolls:
                await self.ctx.display.render(game, "\n".join(lines))

        game = self.get_game(game_id)
        if game is None or game.status != GameStatus.BOT_TURN:
            return
        if house_bust or game.house_score <= target:
            lines.append("\n🎉 You beat the house!")
        else:
            lines.append(f"\n🏠 The house reached {game.house_score}. Your payout stands.")
        self.finish_game(game, GameStatus.GAME_OVER)
        logger.info(f"[DICE_ESCALATOR] {game_id}: house finished on {game.house_score} (bust={house_bust})")
        await self.ctx.display.render(game, "\n".join(lines), self.play_again_controls(game))

    # --- reaper ----------------------------------------------------------

    def settle_abandoned(self, game: GameSession) -> int:
        """An idle game with banked score forfeits the bet; otherwise it is refunded."""
        if game.status == GameStatus.PLAYER_TURN and game.score > 0:
            for p in game.participants:
                p.charged = False
            logger.info(f"[DICE_ESCALATOR] {game.game_id}: abandoned at score {game.score}, bet forfeited")
            return 0
        return self.refund_charged(game)
