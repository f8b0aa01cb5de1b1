"""
Roll Oracle Bridge.

Obtains one die value (1-6) from an out-of-process roll service. The
bridge upserts a ``pending`` row keyed by game ID into shared storage and
polls that row on a fixed interval until the service marks it
``completed`` or ``error``, the attempt budget runs out, or the caller
reports it is no longer waiting.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from casino_bot.database.models import DiceRollRequest
from casino_bot.utils import utc_now

logger = logging.getLogger(__name__)

DIE_MIN = 1
DIE_MAX = 6


class RollStatus(str, Enum):
    """Row status as written by the bot and the roll service."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class PollOutcome(str, Enum):
    """How a poll loop ended."""
    COMPLETED = "completed"
    ERROR = "error"
    INVALID = "invalid"
    TIMEOUT = "timeout"
    STORAGE_ERROR = "storage_error"
    ABANDONED = "abandoned"


@dataclass
class RollRecord:
    """Snapshot of a roll request row."""
    game_id: str
    chat_id: int
    user_id: int
    status: str
    roll_value: Optional[int]
    requested_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None


@dataclass
class PollResult:
    """Result of polling for a roll."""
    outcome: PollOutcome
    value: Optional[int] = None
    attempts: int = 0


class RollStoreError(Exception):
    """Shared storage could not be read or written."""


class RollRequestStore:
    """Storage contract for roll requests; one row per game ID."""

    async def upsert_pending(self, game_id: str, chat_id: int, user_id: int) -> None:
        raise NotImplementedError

    async def fetch(self, game_id: str) -> Optional[RollRecord]:
        raise NotImplementedError

    async def delete(self, game_id: str) -> None:
        raise NotImplementedError

    async def list_pending(self, limit: int = 50) -> List[RollRecord]:
        raise NotImplementedError

    async def complete(self, game_id: str, value: int) -> None:
        raise NotImplementedError

    async def fail(self, game_id: str) -> None:
        raise NotImplementedError


class MemoryRollRequestStore(RollRequestStore):
    """Process-local store, for tests and database-less runs."""

    def __init__(self):
        self.rows: Dict[str, RollRecord] = {}

    async def upsert_pending(self, game_id: str, chat_id: int, user_id: int) -> None:
        self.rows[game_id] = RollRecord(
            game_id=game_id,
            chat_id=chat_id,
            user_id=user_id,
            status=RollStatus.PENDING.value,
            roll_value=None,
            requested_at=utc_now(),
        )

    async def fetch(self, game_id: str) -> Optional[RollRecord]:
        return self.rows.get(game_id)

    async def delete(self, game_id: str) -> None:
        self.rows.pop(game_id, None)

    async def list_pending(self, limit: int = 50) -> List[RollRecord]:
        pending = [r for r in self.rows.values() if r.status == RollStatus.PENDING.value]
        return pending[:limit]

    async def complete(self, game_id: str, value: int) -> None:
        row = self.rows.get(game_id)
        if row is not None:
            row.status = RollStatus.COMPLETED.value
            row.roll_value = value
            row.processed_at = utc_now()

    async def fail(self, game_id: str) -> None:
        row = self.rows.get(game_id)
        if row is not None:
            row.status = RollStatus.ERROR.value
            row.processed_at = utc_now()


def _to_record(row: DiceRollRequest) -> RollRecord:
    return RollRecord(
        game_id=row.game_id,
        chat_id=row.chat_id,
        user_id=row.user_id,
        status=row.status,
        roll_value=row.roll_value,
        requested_at=row.requested_at,
        processed_at=row.processed_at,
    )


class SqlRollRequestStore(RollRequestStore):
    """``dice_roll_requests`` table via SQLAlchemy (SQLite or PostgreSQL)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def upsert_pending(self, game_id: str, chat_id: int, user_id: int) -> None:
        now = utc_now()
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(DiceRollRequest).where(DiceRollRequest.game_id == game_id)
                )
                row = result.scalar_one_or_none()
                if row is None:
                    row = DiceRollRequest(game_id=game_id)
                    session.add(row)
                # A retry supersedes any unanswered request for the same game
                row.chat_id = chat_id
                row.user_id = user_id
                row.status = RollStatus.PENDING.value
                row.roll_value = None
                row.requested_at = now
                row.processed_at = None
                await session.commit()
        except SQLAlchemyError as e:
            raise RollStoreError(f"upsert failed for {game_id}: {e}") from e

    async def fetch(self, game_id: str) -> Optional[RollRecord]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(DiceRollRequest).where(DiceRollRequest.game_id == game_id)
                )
                row = result.scalars().first()
                return _to_record(row) if row else None
        except SQLAlchemyError as e:
            raise RollStoreError(f"fetch failed for {game_id}: {e}") from e

    async def delete(self, game_id: str) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(
                    delete(DiceRollRequest).where(DiceRollRequest.game_id == game_id)
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise RollStoreError(f"delete failed for {game_id}: {e}") from e

    async def list_pending(self, limit: int = 50) -> List[RollRecord]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(DiceRollRequest)
                    .where(DiceRollRequest.status == RollStatus.PENDING.value)
                    .order_by(DiceRollRequest.requested_at)
                    .limit(limit)
                )
                return [_to_record(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise RollStoreError(f"list_pending failed: {e}") from e

    async def _set_status(self, game_id: str, status: RollStatus, value: Optional[int]) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(
                    update(DiceRollRequest)
                    .where(
                        DiceRollRequest.game_id == game_id,
                        DiceRollRequest.status == RollStatus.PENDING.value,
                    )
                    .values(status=status.value, roll_value=value, processed_at=utc_now())
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise RollStoreError(f"status update failed for {game_id}: {e}") from e

    async def complete(self, game_id: str, value: int) -> None:
        await self._set_status(game_id, RollStatus.COMPLETED, value)

    async def fail(self, game_id: str) -> None:
        await self._set_status(game_id, RollStatus.ERROR, None)


class RollOracleBridge:
    """
    Request/poll protocol over a RollRequestStore.

    The bridge never generates a value itself; it tolerates the producer
    being slow, failing, or never answering.
    """

    DEFAULT_INTERVAL_SECONDS: float = 2.0
    DEFAULT_MAX_ATTEMPTS: int = 30

    def __init__(
        self,
        store: RollRequestStore,
        interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """
        Args:
            store: Shared roll request storage
            interval: Seconds between polls
            max_attempts: Polls before giving up
            sleep: Sleep primitive, ``asyncio.sleep`` by default (tests inject an instant one)
        """
        self.store = store
        self.interval = self.DEFAULT_INTERVAL_SECONDS if interval is None else interval
        self.max_attempts = self.DEFAULT_MAX_ATTEMPTS if max_attempts is None else max_attempts
        self._sleep = sleep or asyncio.sleep

    async def request(self, game_id: str, chat_id: int, user_id: int) -> None:
        """Upsert a pending request. Raises RollStoreError on storage failure."""
        await self.store.upsert_pending(game_id, chat_id, user_id)
        logger.info(f"[ROLL_REQUEST] Pending roll for {game_id} (user {user_id})")

    async def _discard(self, game_id: str) -> None:
        try:
            await self.store.delete(game_id)
        except RollStoreError as e:
            # The next request's upsert supersedes the row
            logger.warning(f"[ROLL_POLL] Could not delete consumed row for {game_id}: {e}")

    async def poll(self, game_id: str, still_waiting: Callable[[], bool]) -> PollResult:
        """
        Poll until the row resolves or the attempt budget is spent.

        Args:
            game_id: Game whose roll is awaited
            still_waiting: Re-checked after every suspension; False abandons the poll

        Returns:
            PollResult; ``value`` is set only for COMPLETED
        """
        for attempt in range(1, self.max_attempts + 1):
            await self._sleep(self.interval)
            if not still_waiting():
                logger.debug(f"[ROLL_POLL] {game_id} no longer waiting; abandoning at attempt {attempt}")
                return PollResult(PollOutcome.ABANDONED, attempts=attempt)

            try:
                record = await self.store.fetch(game_id)
            except RollStoreError as e:
                logger.error(f"[ROLL_POLL] Storage error for {game_id}: {e}")
                return PollResult(PollOutcome.STORAGE_ERROR, attempts=attempt)

            if not still_waiting():
                logger.debug(f"[ROLL_POLL] {game_id} moved on during fetch; abandoning")
                return PollResult(PollOutcome.ABANDONED, attempts=attempt)

            if record is None:
                continue

            if record.status == RollStatus.COMPLETED.value and record.roll_value is not None:
                await self._discard(game_id)
                value = record.roll_value
                if not isinstance(value, int) or not DIE_MIN <= value <= DIE_MAX:
                    logger.error(f"[ROLL_POLL] Invalid roll value {value!r} for {game_id}")
                    return PollResult(PollOutcome.INVALID, attempts=attempt)
                logger.info(f"[ROLL_POLL] {game_id} rolled {value} (attempt {attempt})")
                return PollResult(PollOutcome.COMPLETED, value=value, attempts=attempt)

            if record.status == RollStatus.ERROR.value:
                await self._discard(game_id)
                logger.warning(f"[ROLL_POLL] Roll service reported error for {game_id}")
                return PollResult(PollOutcome.ERROR, attempts=attempt)

        logger.warning(f"[ROLL_POLL] {game_id} timed out after {self.max_attempts} attempts")
        return PollResult(PollOutcome.TIMEOUT, attempts=self.max_attempts)
