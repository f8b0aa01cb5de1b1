"""
Shared wiring and helpers for game services.

Games only ever mutate in-memory state between suspension points; every
coroutine that resumes after an ``await`` re-reads its game from the
table and re-checks status before acting.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional

from casino_bot.services.display import DisplaySink
from casino_bot.services.game_session import (
    ActionResult,
    GAME_TITLES,
    GameSession,
    GameStatus,
    GameType,
    Participant,
)
from casino_bot.services.group_sessions import GroupSessionRegistry
from casino_bot.services.ledger import Ledger, TransactionKind
from casino_bot.services.store import MemoryStore
from casino_bot.utils import format_credits, generate_game_id, utc_now

logger = logging.getLogger(__name__)

MIN_BET = 5
MAX_BET = 1000


@dataclass
class GameContext:
    """Shared state and collaborators handed to every game service."""
    ledger: Ledger
    groups: GroupSessionRegistry
    display: DisplaySink
    games: MemoryStore[str, GameSession] = field(default_factory=MemoryStore)
    min_bet: int = MIN_BET
    max_bet: int = MAX_BET
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    now_func: Callable[[], datetime] = utc_now
    random_func: Callable[[], float] = random.random


class BaseGameService:
    """Common start/settle plumbing for the concrete games."""

    game_type: GameType

    def __init__(self, ctx: GameContext):
        self.ctx = ctx
        self._tasks: Dict[asyncio.Task, str] = {}

    @property
    def title(self) -> str:
        return GAME_TITLES[self.game_type]

    def validate_bet(self, bet: int) -> Optional[ActionResult]:
        if not isinstance(bet, int) or not self.ctx.min_bet <= bet <= self.ctx.max_bet:
            return ActionResult.fail(
                "INVALID_BET",
                f"Bet must be a whole number between {self.ctx.min_bet} and {self.ctx.max_bet}.",
            )
        return None

    def get_game(self, game_id: str) -> Optional[GameSession]:
        """Return the live game if it exists and is of this service's type."""
        game = self.ctx.games.get(game_id)
        if game is None or game.game_type != self.game_type:
            return None
        return game

    def _not_found(self) -> ActionResult:
        return ActionResult.fail("NOT_FOUND", "This game has ended or expired.")

    def _open_game(
        self,
        user_id: int,
        name: str,
        chat_id: int,
        chat_title: Optional[str],
        bet: int,
        status: GameStatus,
    ) -> ActionResult:
        """
        Validate, debit the initiator and register a new game for the chat.

        Runs without suspending, so the busy check, the debit and the chat
        claim happen as one step.
        """
        invalid = self.validate_bet(bet)
        if invalid:
            return invalid

        self.ctx.groups.get_or_create_session(chat_id, chat_title)
        active = self.ctx.groups.active_game_id(chat_id)
        if active is not None:
            return ActionResult.fail(
                "CHAT_BUSY",
                "A game is already running in this chat. Wait for it to finish.",
            )

        self.ctx.ledger.get_or_create_account(user_id, name)
        game_id = generate_game_id()
        debit = self.ctx.ledger.adjust_balance(
            user_id, -bet, TransactionKind.BET, chat_id=chat_id, game_id=game_id
        )
        if not debit.success:
            return ActionResult.fail(debit.error_code or "INSUFFICIENT_FUNDS", debit.message)

        game = GameSession(
            game_id=game_id,
            game_type=self.game_type,
            chat_id=chat_id,
            initiator_id=user_id,
            bet=bet,
            status=status,
            participants=[Participant(user_id=user_id, name=name, charged=True)],
            created_at=self.ctx.now_func(),
        )
        game.last_action_at = game.created_at
        self.ctx.games.set(game_id, game)
        self.ctx.groups.set_active_game(chat_id, game_id, self.game_type.value, bet)
        logger.info(
            f"[{self.game_type.value.upper()}] {game_id} started by {user_id} in chat {chat_id}, bet {bet}"
        )
        return ActionResult(success=True, game=game)

    def _touch(self, game: GameSession) -> None:
        """Record player activity on the game and its chat."""
        game.last_action_at = self.ctx.now_func()
        self.ctx.groups.touch(game.chat_id)

    def _pay(self, game: GameSession, user_id: int, amount: int, kind: TransactionKind) -> None:
        if amount <= 0:
            return
        result = self.ctx.ledger.adjust_balance(
            user_id, amount, kind, chat_id=game.chat_id, game_id=game.game_id
        )
        if not result.success:
            logger.error(f"[{game.game_type.value.upper()}] Credit of {amount} to {user_id} failed: {result.message}")

    def refund_charged(self, game: GameSession) -> int:
        """Refund every charged participant exactly once; returns refunds issued."""
        refunds = 0
        for p in game.participants:
            if p.charged:
                p.charged = False
                self._pay(game, p.user_id, game.bet, TransactionKind.REFUND)
                refunds += 1
        return refunds

    def settle_abandoned(self, game: GameSession) -> int:
        """Settle a game the reaper is clearing; returns refunds issued."""
        return self.refund_charged(game)

    def finish_game(self, game: GameSession, status: GameStatus) -> None:
        """Terminal transition: drop the game and release the chat."""
        game.status = status
        self.ctx.games.delete(game.game_id)
        self.ctx.groups.clear_if_current(game.chat_id, game.game_id)
        for p in game.participants:
            p.charged = False
        self._cancel_task(game.game_id)
        logger.info(f"[{game.game_type.value.upper()}] {game.game_id} finished: {status.value}")

    def _spawn(self, game_id: str, coro: Awaitable[None]) -> asyncio.Task:
        """Run ``coro`` as a background task tied to ``game_id``."""
        task = asyncio.ensure_future(coro)
        self._tasks[task] = game_id
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        game_id = self._tasks.pop(task, None)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                f"[{self.game_type.value.upper()}] Background task for {game_id} failed",
                exc_info=task.exception(),
            )

    def _cancel_task(self, game_id: str) -> None:
        if not self._tasks:
            return
        current = asyncio.current_task()
        for task, owner in list(self._tasks.items()):
            if owner == game_id and task is not current and not task.done():
                task.cancel()

    async def wait_idle(self) -> None:
        """Wait until every background task of this service has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()

    def money(self, amount: int) -> str:
        return format_credits(amount)
