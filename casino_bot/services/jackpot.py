"""
Progressive jackpot for Dice Escalator.

A share of every Dice Escalator stake is added to the pool by the house;
the player is still charged exactly the bet. Cashing out at or above the
target score wins the whole pool on top of the cash-out payout.
"""

import logging
from typing import Optional

from casino_bot.services.ledger import Ledger, TransactionKind

logger = logging.getLogger(__name__)


class Jackpot:
    """In-memory jackpot pool paid through the ledger."""

    DEFAULT_CONTRIBUTION_PERCENT: float = 0.01
    DEFAULT_TARGET_SCORE: int = 120

    def __init__(
        self,
        ledger: Ledger,
        contribution_percent: Optional[float] = None,
        target_score: Optional[int] = None,
        seed: int = 0,
    ):
        self.ledger = ledger
        self.contribution_percent = (
            self.DEFAULT_CONTRIBUTION_PERCENT if contribution_percent is None else contribution_percent
        )
        self.target_score = self.DEFAULT_TARGET_SCORE if target_score is None else target_score
        self.amount = seed

    def contribute(self, bet: int, game_id: str) -> int:
        # basis points keep the share an exact integer
        share = bet * round(self.contribution_percent * 10000) // 10000
        if share > 0:
            self.amount += share
            logger.debug(f"[JACKPOT] +{share} from {game_id}, pool {self.amount}")
        return share

    def qualifies(self, score: int) -> bool:
        return score >= self.target_score

    def award(self, user_id: int, chat_id: int, game_id: str) -> int:
        """Pay the whole pool to ``user_id``; returns the amount won."""
        if self.amount <= 0:
            return 0
        won = self.amount
        result = self.ledger.adjust_balance(
            user_id, won, TransactionKind.JACKPOT, chat_id=chat_id, game_id=game_id
        )
        if not result.success:
            logger.error(f"[JACKPOT] Payout of {won} to {user_id} failed: {result.message}")
            return 0
        self.amount = 0
        logger.info(f"[JACKPOT] {user_id} won {won} in {game_id}")
        return won
