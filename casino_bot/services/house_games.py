"""
Games against the house, rolled locally.

Over/Under 7: call the total of two dice. Under or over pays ``2 x bet``,
exactly seven pays ``5 x bet``.

High Roller Duel: player and house each roll two dice; higher total
takes ``2 x bet``, a tie refunds the bet.

Greed's Ladder: three dice are rolled for the player at once. Any 1
busts; otherwise the total picks a payout tier.

Sevens Out: craps-style. The come-out roll wins on 7 or 11 and loses on
2, 3 or 12; any other total becomes the point, and the player rolls until
hitting the point (win) or a 7 (lose).

Slots: one spin of a 64-position reel.

Every game settles before any display call, so a duplicate button press
finds the game gone and cannot settle twice.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from casino_bot.services.display import Button
from casino_bot.services.game_base import BaseGameService, GameContext
from casino_bot.services.game_session import ActionResult, GameSession, GameStatus, GameType
from casino_bot.services.ledger import TransactionKind
from casino_bot.utils import escape_html

logger = logging.getLogger(__name__)

OU7_CHOICE_PREFIX = "ou7_choice"
DUEL_ROLL_PREFIX = "duel_roll"
SEVENS_OUT_ROLL_PREFIX = "s7_roll"
PLAY_AGAIN_PREFIX = "play_again"


class OverUnderChoice(str, Enum):
    UNDER = "under"
    EXACT = "exact"
    OVER = "over"


# Total returned to the player (stake included)
OU7_PAYOUT_MULTIPLIERS = {
    OverUnderChoice.UNDER: 2,
    OverUnderChoice.EXACT: 5,
    OverUnderChoice.OVER: 2,
}


def over_under_wins(choice: OverUnderChoice, total: int) -> bool:
    if choice == OverUnderChoice.UNDER:
        return total < 7
    if choice == OverUnderChoice.OVER:
        return total > 7
    return total == 7


class HouseGameService(BaseGameService):
    """Start flow and dice helpers for games against the house."""

    icon: str = "🎲"

    DEFAULT_REVEAL_DELAY_SECONDS: float = 1.5

    def __init__(self, ctx: GameContext, reveal_delay: Optional[float] = None):
        super().__init__(ctx)
        self.reveal_delay = self.DEFAULT_REVEAL_DELAY_SECONDS if reveal_delay is None else reveal_delay

    def roll_dice(self, count: int = 2) -> Tuple[int, ...]:
        return tuple(min(6, int(self.ctx.random_func() * 6) + 1) for _ in range(count))

    def play_again_controls(self, game: GameSession) -> List[List[Button]]:
        return [[Button("🔁 Play again", f"{PLAY_AGAIN_PREFIX}:{self.game_type.value}:{game.bet}")]]

    def start_body(self, game: GameSession) -> str:
        raise NotImplementedError

    def start_controls(self, game: GameSession) -> List[List[Button]]:
        raise NotImplementedError

    async def start(
        self,
        user_id: int,
        name: str,
        chat_id: int,
        chat_title: Optional[str],
        bet: int,
    ) -> ActionResult:
        result = self._open_game(user_id, name, chat_id, chat_title, bet, GameStatus.AWAITING_PLAYER)
        if not result.success:
            return result
        game = result.game
        await self.ctx.display.render(game, self.start_body(game), self.start_controls(game))
        return result

    def _claim_turn(self, game_id: str, user_id: int) -> Tuple[Optional[GameSession], Optional[ActionResult]]:
        game = self.get_game(game_id)
        if game is None:
            return None, self._not_found()
        if user_id != game.initiator_id:
            return None, ActionResult.fail("NOT_YOUR_GAME", "This isn't your game.")
        if game.status != GameStatus.AWAITING_PLAYER:
            return None, ActionResult.fail("WRONG_STATE", "This round is already being played.")
        return game, None


class OverUnderSevenService(HouseGameService):
    game_type = GameType.OVER_UNDER_7
    icon = "🎯"

    def start_body(self, game: GameSession) -> str:
        return (
            f"🎯 <b>Over/Under 7</b> | {escape_html(game.initiator.name)} | bet {self.money(game.bet)}\n\n"
            "Two dice will be rolled. Call the total:\n"
            "Under 7 or Over 7 pays 1:1, Exactly 7 pays 4:1."
        )

    def start_controls(self, game: GameSession) -> List[List[Button]]:
        return [[
            Button("⬇️ Under 7", f"{OU7_CHOICE_PREFIX}:{game.game_id}:{OverUnderChoice.UNDER.value}"),
            Button("🎯 Exactly 7", f"{OU7_CHOICE_PREFIX}:{game.game_id}:{OverUnderChoice.EXACT.value}"),
            Button("⬆️ Over 7", f"{OU7_CHOICE_PREFIX}:{game.game_id}:{OverUnderChoice.OVER.value}"),
        ]]

    async def choose(self, game_id: str, user_id: int, choice: str) -> ActionResult:
        try:
            pick = OverUnderChoice((choice or "").lower())
        except ValueError:
            return ActionResult.fail("INVALID_CHOICE", "Pick under, exact or over.")

        game, error = self._claim_turn(game_id, user_id)
        if error:
            return error

        game.initiator.choice = pick.value
        dice = self.roll_dice(2)
        total = sum(dice)
        won = over_under_wins(pick, total)
        payout = game.bet * OU7_PAYOUT_MULTIPLIERS[pick] if won else 0
        self._pay(game, user_id, payout, TransactionKind.WIN)
        self.finish_game(game, GameStatus.RESOLVED)
        logger.info(f"[OU7] {game_id}: {pick.value} vs {dice} = {total}, payout {payout}")

        verdict = (
            f"🎉 You win <b>{self.money(payout)}</b>!" if won
            else f"😬 No luck. {self.money(game.bet)} lost."
        )
        await self.ctx.display.render(
            game,
            f"🎯 <b>Over/Under 7</b> | {escape_html(game.initiator.name)} called <b>{pick.value}</b>\n\n"
            f"🎲 {dice[0]} + {dice[1]} = <b>{total}</b>\n{verdict}",
            self.play_again_controls(game),
        )
        return ActionResult(success=True, message=f"Total {total}.", game=game)


class DuelService(HouseGameService):
    game_type = GameType.DUEL
    icon = "⚔️"

    def start_body(self, game: GameSession) -> str:
        return (
            f"⚔️ <b>High Roller Duel</b> | {escape_html(game.initiator.name)} | bet {self.money(game.bet)}\n\n"
            "You and the house each roll two dice. Highest total wins 1:1; a tie refunds."
        )

    def start_controls(self, game: GameSession) -> List[List[Button]]:
        return [[Button("🎲 Roll", f"{DUEL_ROLL_PREFIX}:{game.game_id}")]]

    async def roll(self, game_id: str, user_id: int) -> ActionResult:
        game, error = self._claim_turn(game_id, user_id)
        if error:
            return error

        game.status = GameStatus.ROLLING
        player_dice = self.roll_dice(2)
        house_dice = self.roll_dice(2)
        player_total, house_total = sum(player_dice), sum(house_dice)
        if player_total > house_total:
            payout, verdict = game.bet * 2, "🎉 You win <b>{}</b>!"
        elif player_total == house_total:
            payout, verdict = game.bet, "🤝 Tie. {} refunded."
        else:
            payout, verdict = 0, "🏠 The house wins. {} lost."
        kind = TransactionKind.REFUND if player_total == house_total else TransactionKind.WIN
        self._pay(game, user_id, payout, kind)
        self.finish_game(game, GameStatus.RESOLVED)
        logger.info(f"[DUEL] {game_id}: player {player_dice} vs house {house_dice}, payout {payout}")

        header = f"⚔️ <b>High Roller Duel</b> | {escape_html(game.initiator.name)}\n\n"
        player_line = f"You: 🎲 {player_dice[0]} + {player_dice[1]} = <b>{player_total}</b>"
        await self.ctx.display.render(game, header + player_line + "\nHouse is rolling...")
        await self.ctx.sleep(self.reveal_delay)
        house_line = f"House: 🎲 {house_dice[0]} + {house_dice[1]} = <b>{house_total}</b>"
        await self.ctx.display.render(
            game,
            header + player_line + "\n" + house_line + "\n\n" + verdict.format(self.money(payout or game.bet)),
            self.play_again_controls(game),
        )
        return ActionResult(success=True, message=f"{player_total} vs {house_total}.", game=game)


# --- Greed's Ladder ---

LADDER_ROLL_COUNT = 3
LADDER_BUST_VALUE = 1


@dataclass(frozen=True)
class LadderTier:
    low: int
    high: int
    profit_multiplier: Optional[int]  # None loses the bet, 0 returns it
    label: str


def ladder_tiers(roll_count: int = LADDER_ROLL_COUNT) -> Tuple[LadderTier, ...]:
    """Payout tiers for ``roll_count`` non-busting dice, best first."""
    n = roll_count
    return (
        LadderTier(n * 5 + 1, n * 6, 5, "Excellent!"),
        LadderTier(n * 4 + 1, n * 5, 3, "Great!"),
        LadderTier(n * 3 + 1, n * 4, 1, "Good."),
        LadderTier(n * 2 + 1, n * 3, 0, "Okay."),
        LadderTier(n, n * 2, None, "Unlucky."),
    )


def ladder_tier(total: int, roll_count: int = LADDER_ROLL_COUNT) -> LadderTier:
    for tier in ladder_tiers(roll_count):
        if tier.low <= total <= tier.high:
            return tier
    raise ValueError(f"Total {total} is outside the ladder for {roll_count} dice")


class GreedsLadderService(HouseGameService):
    game_type = GameType.LADDER
    icon = "🪜"

    def roll_ladder(self) -> List[int]:
        """Roll up to three dice, stopping at the first bust value."""
        rolls = []
        for _ in range(LADDER_ROLL_COUNT):
            value = self.roll_dice(1)[0]
            rolls.append(value)
            if value == LADDER_BUST_VALUE:
                break
        return rolls

    async def start(
        self,
        user_id: int,
        name: str,
        chat_id: int,
        chat_title: Optional[str],
        bet: int,
    ) -> ActionResult:
        result = self._open_game(user_id, name, chat_id, chat_title, bet, GameStatus.ROLLING)
        if not result.success:
            return result
        game = result.game

        rolls = self.roll_ladder()
        total = sum(rolls)
        if LADDER_BUST_VALUE in rolls:
            payout, label = 0, "💥 Bust!"
            verdict = f"Rolled a {LADDER_BUST_VALUE}. {self.money(bet)} lost."
        else:
            tier = ladder_tier(total)
            label = tier.label
            if tier.profit_multiplier is None:
                payout, verdict = 0, f"{self.money(bet)} lost."
            elif tier.profit_multiplier == 0:
                payout, verdict = bet, f"{self.money(bet)} returned."
            else:
                payout = bet * (1 + tier.profit_multiplier)
                verdict = f"🎉 You win <b>{self.money(payout)}</b>!"
        kind = TransactionKind.REFUND if payout == bet else TransactionKind.WIN
        self._pay(game, user_id, payout, kind)
        self.finish_game(game, GameStatus.RESOLVED)
        logger.info(f"[LADDER] {game.game_id}: rolls {rolls}, payout {payout}")

        header = f"🪜 <b>Greed's Ladder</b> | {escape_html(name)} | bet {self.money(bet)}\n\n"
        await self.ctx.display.render(game, header + "Climbing the ladder...")
        await self.ctx.sleep(self.reveal_delay)
        dice_line = "🎲 " + " + ".join(str(r) for r in rolls) + f" = <b>{total}</b>"
        await self.ctx.display.render(
            game,
            f"{header}{dice_line}\n<b>{label}</b> {verdict}",
            self.play_again_controls(game),
        )
        return ActionResult(success=True, message=f"Total {total}.", game=game)


# --- Sevens Out ---

COME_OUT_WINS = frozenset({7, 11})
COME_OUT_CRAPS = frozenset({2, 3, 12})


def sevens_out_result(point: Optional[int], total: int) -> Optional[bool]:
    """True wins, False loses, None sets or keeps the point."""
    if point is None:
        if total in COME_OUT_WINS:
            return True
        if total in COME_OUT_CRAPS:
            return False
        return None
    if total == point:
        return True
    if total == 7:
        return False
    return None


class SevensOutService(HouseGameService):
    game_type = GameType.SEVENS_OUT
    icon = "🎲"

    def roll_controls(self, game: GameSession) -> List[List[Button]]:
        return [[Button("🎲 Roll", f"{SEVENS_OUT_ROLL_PREFIX}:{game.game_id}")]]

    async def start(
        self,
        user_id: int,
        name: str,
        chat_id: int,
        chat_title: Optional[str],
        bet: int,
    ) -> ActionResult:
        result = self._open_game(user_id, name, chat_id, chat_title, bet, GameStatus.ROLLING)
        if not result.success:
            return result
        return await self._play_roll(result.game, "Come-out roll")

    async def roll(self, game_id: str, user_id: int) -> ActionResult:
        game = self.get_game(game_id)
        if game is None:
            return self._not_found()
        if user_id != game.initiator_id:
            return ActionResult.fail("NOT_YOUR_GAME", "This isn't your game.")
        if game.status != GameStatus.POINT_PHASE:
            return ActionResult.fail("WRONG_STATE", "You can't roll right now.")
        self._touch(game)
        return await self._play_roll(game, f"Point is {game.point}")

    async def _play_roll(self, game: GameSession, caption: str) -> ActionResult:
        dice = self.roll_dice(2)
        total = sum(dice)
        outcome = sevens_out_result(game.point, total)
        header = (
            f"🎲 <b>Sevens Out</b> | {escape_html(game.initiator.name)} | bet {self.money(game.bet)}\n\n"
            f"{caption}: 🎲 {dice[0]} + {dice[1]} = <b>{total}</b>\n"
        )

        if outcome is None:
            if game.point is None:
                game.point = total
            game.status = GameStatus.POINT_PHASE
            logger.info(f"[SEVENS_OUT] {game.game_id}: rolled {total}, point {game.point}")
            await self.ctx.display.render(
                game,
                header + f"Point is <b>{game.point}</b>. Hit it again before a 7.",
                self.roll_controls(game),
            )
            return ActionResult(success=True, message=f"Rolled {total}.", game=game)

        payout = game.bet * 2 if outcome else 0
        self._pay(game, game.initiator_id, payout, TransactionKind.WIN)
        self.finish_game(game, GameStatus.RESOLVED)
        logger.info(f"[SEVENS_OUT] {game.game_id}: rolled {total} (point {game.point}), payout {payout}")

        if outcome:
            verdict = f"🎉 You win <b>{self.money(payout)}</b>!"
        elif game.point is None:
            verdict = f"💥 Craps. {self.money(game.bet)} lost."
        else:
            verdict = f"💥 Seven out. {self.money(game.bet)} lost."
        await self.ctx.display.render(game, header + verdict, self.play_again_controls(game))
        return ActionResult(success=True, message=f"Rolled {total}.", game=game)


# --- Slots ---

SLOT_POSITIONS = 64

# Reel value -> (profit multiplier, symbols)
SLOT_PAYOUTS = {
    64: (50, "💎💎💎 JACKPOT!"),
    1: (20, "🔔🔔🔔"),
    22: (10, "🍊🍊🍊"),
    43: (5, "🍋🍋🍋"),
}


class SlotsService(HouseGameService):
    game_type = GameType.SLOTS
    icon = "🎰"

    def spin(self) -> int:
        return min(SLOT_POSITIONS, int(self.ctx.random_func() * SLOT_POSITIONS) + 1)

    async def start(
        self,
        user_id: int,
        name: str,
        chat_id: int,
        chat_title: Optional[str],
        bet: int,
    ) -> ActionResult:
        result = self._open_game(user_id, name, chat_id, chat_title, bet, GameStatus.ROLLING)
        if not result.success:
            return result
        game = result.game

        value = self.spin()
        multiplier, symbols = SLOT_PAYOUTS.get(value, (None, None))
        payout = bet * (1 + multiplier) if multiplier is not None else 0
        self._pay(game, user_id, payout, TransactionKind.WIN)
        self.finish_game(game, GameStatus.RESOLVED)
        logger.info(f"[SLOTS] {game.game_id}: reel {value}, payout {payout}")

        header = f"🎰 <b>Slots</b> | {escape_html(name)} | bet {self.money(bet)}\n\n"
        await self.ctx.display.render(game, header + "Spinning...")
        await self.ctx.sleep(self.reveal_delay)
        if payout:
            verdict = f"{symbols}\n🎉 You win <b>{self.money(payout)}</b>!"
        else:
            verdict = f"No match. {self.money(bet)} lost."
        await self.ctx.display.render(game, header + verdict, self.play_again_controls(game))
        return ActionResult(success=True, message=f"Reel {value}.", game=game)
