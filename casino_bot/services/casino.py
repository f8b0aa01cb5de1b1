"""
Casino core: builds and holds every game service around one shared context.
"""

import asyncio
import logging
import random
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, Optional

from casino_bot.config import Settings
from casino_bot.services.coinflip import CoinflipService
from casino_bot.services.dice21 import Dice21Service
from casino_bot.services.dice_escalator import DiceEscalatorService
from casino_bot.services.display import DisplaySink
from casino_bot.services.game_base import BaseGameService, GameContext, MAX_BET, MIN_BET
from casino_bot.services.game_session import GameType
from casino_bot.services.group_sessions import GroupSessionRegistry
from casino_bot.services.house_games import (
    DuelService,
    GreedsLadderService,
    OverUnderSevenService,
    SevensOutService,
    SlotsService,
)
from casino_bot.services.jackpot import Jackpot
from casino_bot.services.ledger import Account, Ledger
from casino_bot.services.reaper import StalenessReaper
from casino_bot.services.roll_oracle import MemoryRollRequestStore, RollOracleBridge, RollRequestStore
from casino_bot.services.rps import RpsService
from casino_bot.utils import utc_now

logger = logging.getLogger(__name__)


def _log_new_account(account: Account) -> None:
    logger.info(f"[ANALYTICS] new_player user={account.user_id} balance={account.balance}")


class Casino:
    """Container for the ledger, chat registry, game services and reaper."""

    def __init__(
        self,
        display: DisplaySink,
        roll_store: Optional[RollRequestStore] = None,
        *,
        min_bet: int = MIN_BET,
        max_bet: int = MAX_BET,
        starting_balance: int = Ledger.DEFAULT_STARTING_BALANCE,
        join_timeout: float = 60.0,
        roll_poll_interval: float = 2.0,
        roll_poll_max_attempts: int = 30,
        bust_value: int = 1,
        house_max_rolls: int = 3,
        house_delay: float = 1.5,
        jackpot_contribution_percent: float = Jackpot.DEFAULT_CONTRIBUTION_PERCENT,
        jackpot_target_score: int = Jackpot.DEFAULT_TARGET_SCORE,
        stale_game_multiplier: int = 5,
        stale_session_multiplier: int = 20,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        now_func: Optional[Callable[[], datetime]] = None,
        random_func: Optional[Callable[[], float]] = None,
    ):
        now_func = now_func or utc_now
        sleep = sleep or asyncio.sleep
        self.roll_store = roll_store if roll_store is not None else MemoryRollRequestStore()
        self.ledger = Ledger(
            starting_balance=starting_balance,
            on_account_created=_log_new_account,
            now_func=now_func,
        )
        self.groups = GroupSessionRegistry(now_func=now_func)
        self.ctx = GameContext(
            ledger=self.ledger,
            groups=self.groups,
            display=display,
            min_bet=min_bet,
            max_bet=max_bet,
            sleep=sleep,
            now_func=now_func,
            random_func=random_func or random.random,
        )
        self.oracle = RollOracleBridge(
            self.roll_store,
            interval=roll_poll_interval,
            max_attempts=roll_poll_max_attempts,
            sleep=sleep,
        )

        self.jackpot = Jackpot(
            self.ledger,
            contribution_percent=jackpot_contribution_percent,
            target_score=jackpot_target_score,
        )

        self.coinflip = CoinflipService(self.ctx, join_timeout=join_timeout)
        self.rps = RpsService(self.ctx, join_timeout=join_timeout)
        self.dice_escalator = DiceEscalatorService(
            self.ctx,
            self.oracle,
            bust_value=bust_value,
            house_max_rolls=house_max_rolls,
            house_delay=house_delay,
            jackpot=self.jackpot,
        )
        self.over_under = OverUnderSevenService(self.ctx)
        self.duel = DuelService(self.ctx, reveal_delay=house_delay)
        self.dice21 = Dice21Service(self.ctx, reveal_delay=house_delay)
        self.ladder = GreedsLadderService(self.ctx, reveal_delay=house_delay)
        self.sevens_out = SevensOutService(self.ctx)
        self.slots = SlotsService(self.ctx, reveal_delay=house_delay)

        self.services: Dict[GameType, BaseGameService] = {
            GameType.COINFLIP: self.coinflip,
            GameType.RPS: self.rps,
            GameType.DICE_ESCALATOR: self.dice_escalator,
            GameType.OVER_UNDER_7: self.over_under,
            GameType.DUEL: self.duel,
            GameType.DICE_21: self.dice21,
            GameType.LADDER: self.ladder,
            GameType.SEVENS_OUT: self.sevens_out,
            GameType.SLOTS: self.slots,
        }
        self.reaper = StalenessReaper(
            self.ctx,
            self.services,
            self.roll_store,
            stale_game_after=timedelta(seconds=join_timeout * stale_game_multiplier),
            stale_session_after=timedelta(seconds=join_timeout * stale_session_multiplier),
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        display: DisplaySink,
        roll_store: Optional[RollRequestStore] = None,
    ) -> "Casino":
        return cls(
            display,
            roll_store,
            min_bet=settings.min_bet,
            max_bet=settings.max_bet,
            starting_balance=settings.starting_balance,
            join_timeout=settings.join_timeout_seconds,
            roll_poll_interval=settings.roll_poll_interval_seconds,
            roll_poll_max_attempts=settings.roll_poll_max_attempts,
            bust_value=settings.bust_value,
            house_max_rolls=settings.house_max_rolls,
            house_delay=settings.house_turn_delay_seconds,
            jackpot_contribution_percent=settings.jackpot_contribution_percent,
            jackpot_target_score=settings.jackpot_target_score,
            stale_game_multiplier=settings.stale_game_multiplier,
            stale_session_multiplier=settings.stale_session_multiplier,
        )

    @property
    def games(self):
        return self.ctx.games

    @property
    def display(self) -> DisplaySink:
        return self.ctx.display

    def service_for(self, game_type: GameType) -> BaseGameService:
        return self.services[game_type]

    async def wait_idle(self) -> None:
        """Wait for every background timer, poll and house turn to finish."""
        for service in self.services.values():
            await service.wait_idle()

    def shutdown(self) -> None:
        """Cancel outstanding timers and poll loops."""
        for service in self.services.values():
            service.cancel_all()
        logger.info(f"[CASINO] Shutdown with {len(self.games)} live game(s)")
