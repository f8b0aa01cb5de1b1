"""
Staleness Reaper.

Periodic sweep that reclaims games stuck waiting on an external actor
(an opponent, a choice, a roll, a button press), games whose player
stopped acting at a prompt, and chat sessions that have gone quiet. All
refunds and table removals happen before the first ``await``, so nothing
that interleaves during the follow-up storage and display calls can
observe a half-reaped game.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from casino_bot.services.game_base import BaseGameService, GameContext
from casino_bot.services.game_session import GameSession, GameStatus, GameType, IDLE_STATUSES, STALE_STATUSES
from casino_bot.services.roll_oracle import RollRequestStore, RollStoreError

logger = logging.getLogger(__name__)


@dataclass
class ReapReport:
    """What one sweep removed."""
    games: List[str] = field(default_factory=list)
    refunds: int = 0
    sessions: List[int] = field(default_factory=list)


class StalenessReaper:
    """Sweeps stale games and idle chat sessions."""

    def __init__(
        self,
        ctx: GameContext,
        services: Dict[GameType, BaseGameService],
        roll_store: Optional[RollRequestStore],
        stale_game_after: timedelta,
        stale_session_after: timedelta,
    ):
        """
        Args:
            ctx: Shared game context
            services: Game service per type, used to refund and finish games
            roll_store: Roll request storage for orphaned rows
            stale_game_after: Age past which a waiting game is reaped
            stale_session_after: Idle time past which a gameless chat session, or a
                game left at a player prompt, is dropped
        """
        self.ctx = ctx
        self.services = services
        self.roll_store = roll_store
        self.stale_game_after = stale_game_after
        self.stale_session_after = stale_session_after

    def _is_stale(self, game: GameSession, now) -> bool:
        if game.status in IDLE_STATUSES:
            last_action = game.last_action_at or game.created_at
            return last_action is None or now - last_action > self.stale_session_after
        if game.status not in STALE_STATUSES:
            return False
        if game.created_at is None:
            return True
        return now - game.created_at > self.stale_game_after

    async def sweep(self) -> ReapReport:
        report = ReapReport()
        now = self.ctx.now_func()
        reaped: List[Tuple[GameSession, int]] = []

        for game_id, game in self.ctx.games.items():
            if not isinstance(game, GameSession):
                logger.warning(f"[REAPER] Dropping malformed game entry {game_id!r}")
                self.ctx.games.delete(game_id)
                continue
            if not self._is_stale(game, now):
                continue
            service = self.services.get(game.game_type)
            if service is None:
                logger.warning(f"[REAPER] No service for {game.game_type}; dropping {game_id}")
                self.ctx.games.delete(game_id)
                self.ctx.groups.clear_if_current(game.chat_id, game_id)
                continue

            previous_status = game.status
            refunds = service.settle_abandoned(game)
            service.finish_game(game, GameStatus.RESOLVED)
            report.games.append(game_id)
            report.refunds += refunds
            reaped.append((game, refunds))
            logger.info(
                f"[REAPER] Reaped {game_id} ({game.game_type.value}, {previous_status.value}), "
                f"{refunds} refund(s)"
            )

        for chat_session in self.ctx.groups.sessions():
            if chat_session.current_game_id is not None:
                continue
            idle = chat_session.last_activity is None or now - chat_session.last_activity > self.stale_session_after
            if idle:
                self.ctx.groups.delete(chat_session.chat_id)
                report.sessions.append(chat_session.chat_id)
                logger.info(f"[REAPER] Dropped idle chat session {chat_session.chat_id}")

        for game, refunds in reaped:
            if self.roll_store is not None:
                try:
                    await self.roll_store.delete(game.game_id)
                except RollStoreError as e:
                    logger.warning(f"[REAPER] Could not delete roll request for {game.game_id}: {e}")
            refund_note = f" {self.services[game.game_type].money(game.bet)} refunded." if refunds else ""
            await self.ctx.display.render(
                game,
                f"🧹 This game was cleared due to inactivity.{refund_note}",
            )

        if report.games or report.sessions:
            logger.info(
                f"[REAPER] Sweep done: {len(report.games)} game(s), {report.refunds} refund(s), "
                f"{len(report.sessions)} session(s)"
            )
        return report
