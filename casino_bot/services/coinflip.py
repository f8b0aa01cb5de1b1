"""Coinflip: initiator takes heads, joiner takes tails, winner takes both bets."""

import logging

from casino_bot.services.game_session import ActionResult, GameSession, GameStatus, GameType
from casino_bot.services.ledger import TransactionKind
from casino_bot.services.pvp import TwoPlayerGameService
from casino_bot.utils import escape_html

logger = logging.getLogger(__name__)

HEADS = "heads"
TAILS = "tails"


class CoinflipService(TwoPlayerGameService):
    game_type = GameType.COINFLIP
    icon = "🪙"

    def lobby_hint(self, game: GameSession) -> str:
        return f"{escape_html(game.initiator.name)} calls <b>Heads</b>. Join to take <b>Tails</b>!"

    def flip(self) -> str:
        return HEADS if self.ctx.random_func() < 0.5 else TAILS

    async def on_opponent_joined(self, game: GameSession) -> ActionResult:
        game.status = GameStatus.PLAYING
        host, guest = game.participants[0], game.participants[1]
        host.choice = HEADS
        guest.choice = TAILS

        outcome = self.flip()
        winner = host if outcome == HEADS else guest
        loser = guest if winner is host else host
        pot = game.bet * 2
        self._pay(game, winner.user_id, pot, TransactionKind.WIN)
        self.finish_game(game, GameStatus.RESOLVED)
        logger.info(f"[COINFLIP] {game.game_id}: {outcome}, winner {winner.user_id}, pot {pot}")

        await self.ctx.display.render(
            game,
            f"🪙 <b>Coinflip</b>\n\n"
            f"{escape_html(host.name)} (Heads) vs {escape_html(guest.name)} (Tails)\n"
            f"The coin lands on <b>{outcome.capitalize()}</b>!\n\n"
            f"🏆 {escape_html(winner.name)} wins <b>{self.money(pot)}</b>. "
            f"Better luck next time, {escape_html(loser.name)}.",
        )
        return ActionResult(
            success=True,
            message=f"{outcome.capitalize()}! {winner.name} wins {pot}.",
            game=game,
        )
