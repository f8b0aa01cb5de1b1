"""
Two-player lobby flow shared by Coinflip and Rock-Paper-Scissors.

States: ``waiting_opponent`` -> game-specific -> resolved (deleted).
The initiator is charged at start; the joiner is charged on join. A lobby
nobody joins expires after the join timeout and refunds the initiator.
"""

import logging
from typing import List, Optional

from casino_bot.services.display import Button
from casino_bot.services.game_base import BaseGameService, GameContext
from casino_bot.services.game_session import ActionResult, GameSession, GameStatus, Participant
from casino_bot.services.ledger import TransactionKind
from casino_bot.utils import escape_html

logger = logging.getLogger(__name__)

JOIN_PREFIX = "join_game"
CANCEL_PREFIX = "cancel_game"


class TwoPlayerGameService(BaseGameService):
    """Start / join / cancel / expire for a two-seat game."""

    DEFAULT_JOIN_TIMEOUT_SECONDS: float = 60.0
    icon: str = "🎲"

    def __init__(self, ctx: GameContext, join_timeout: Optional[float] = None):
        super().__init__(ctx)
        self.join_timeout = self.DEFAULT_JOIN_TIMEOUT_SECONDS if join_timeout is None else join_timeout

    # --- cards -----------------------------------------------------------

    def lobby_body(self, game: GameSession) -> str:
        host = escape_html(game.initiator.name)
        return (
            f"{self.icon} <b>{self.title}</b>\n\n"
            f"{host} wagers <b>{self.money(game.bet)}</b>.\n"
            f"{self.lobby_hint(game)}\n\n"
            f"<i>Open for {int(self.join_timeout)}s.</i>"
        )

    def lobby_hint(self, game: GameSession) -> str:
        return "Who dares to match the bet?"

    def lobby_controls(self, game: GameSession) -> List[List[Button]]:
        return [
            [Button(f"✅ Join ({self.money(game.bet)})", f"{JOIN_PREFIX}:{game.game_id}")],
            [Button("❌ Cancel", f"{CANCEL_PREFIX}:{game.game_id}")],
        ]

    # --- lifecycle -------------------------------------------------------

    async def start(
        self,
        user_id: int,
        name: str,
        chat_id: int,
        chat_title: Optional[str],
        bet: int,
    ) -> ActionResult:
        """Open a lobby: debit the initiator, publish the card, arm the join timeout."""
        result = self._open_game(user_id, name, chat_id, chat_title, bet, GameStatus.WAITING_OPPONENT)
        if not result.success:
            return result
        game = result.game

        await self.ctx.display.render(game, self.lobby_body(game), self.lobby_controls(game))

        if self.get_game(game.game_id) is game and game.status == GameStatus.WAITING_OPPONENT:
            self._spawn(game.game_id, self._join_timeout(game.game_id))
        return result

    async def _join_timeout(self, game_id: str) -> None:
        await self.ctx.sleep(self.join_timeout)
        await self.expire(game_id)

    async def join(self, game_id: str, user_id: int, name: str) -> ActionResult:
        """Seat the second player, charge them, and hand over to the game."""
        game = self.get_game(game_id)
        if game is None:
            return self._not_found()
        if game.status != GameStatus.WAITING_OPPONENT:
            return ActionResult.fail("NOT_WAITING", "This game is no longer open.")
        if user_id == game.initiator_id:
            return ActionResult.fail("SELF_JOIN", "You can't join your own game.")
        if len(game.participants) >= 2:
            return ActionResult.fail("GAME_FULL", "This game is already full.")

        self.ctx.ledger.get_or_create_account(user_id, name)
        debit = self.ctx.ledger.adjust_balance(
            user_id, -game.bet, TransactionKind.BET, chat_id=game.chat_id, game_id=game_id
        )
        if not debit.success:
            return ActionResult.fail(debit.error_code or "INSUFFICIENT_FUNDS", debit.message)

        game.participants.append(Participant(user_id=user_id, name=name, charged=True))
        self._touch(game)
        self._cancel_task(game_id)
        logger.info(f"[{self.game_type.value.upper()}] {game_id}: {user_id} joined")
        return await self.on_opponent_joined(game)

    async def on_opponent_joined(self, game: GameSession) -> ActionResult:
        raise NotImplementedError

    async def cancel(self, game_id: str, user_id: int) -> ActionResult:
        """Initiator withdraws an unjoined lobby; charged players are refunded."""
        game = self.get_game(game_id)
        if game is None:
            return self._not_found()
        if user_id != game.initiator_id:
            return ActionResult.fail("NOT_INITIATOR", "Only the player who started the game can cancel it.")
        if game.status != GameStatus.WAITING_OPPONENT:
            return ActionResult.fail("NOT_WAITING", "The game has already started.")

        self.refund_charged(game)
        self.finish_game(game, GameStatus.RESOLVED)
        await self.ctx.display.render(
            game,
            f"{self.icon} <b>{self.title}</b>\n\n"
            f"Cancelled by {escape_html(game.initiator.name)}. "
            f"{self.money(game.bet)} refunded.",
        )
        return ActionResult(success=True, message="Game cancelled, bet refunded.", game=game)

    async def expire(self, game_id: str) -> bool:
        """Close a lobby nobody joined. No-op if the game has moved on."""
        game = self.get_game(game_id)
        if game is None or game.status != GameStatus.WAITING_OPPONENT:
            return False

        self.refund_charged(game)
        self.finish_game(game, GameStatus.RESOLVED)
        logger.info(f"[{self.game_type.value.upper()}] {game_id} expired with no opponent")
        await self.ctx.display.render(
            game,
            f"{self.icon} <b>{self.title}</b>\n\n"
            f"⌛ Nobody joined in time. {escape_html(game.initiator.name)} "
            f"got {self.money(game.bet)} back.",
        )
        return True
