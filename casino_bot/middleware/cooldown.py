"""Per-user command cooldown."""

import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from aiogram import BaseMiddleware
from aiogram.types import Message

logger = logging.getLogger(__name__)


class CommandCooldown:
    """Allows one command per user per cooldown window."""

    def __init__(self, cooldown_seconds: float, clock: Optional[Callable[[], float]] = None):
        """
        Args:
            cooldown_seconds: Minimum gap between two commands from one user
            clock: Monotonic clock, ``time.monotonic`` by default
        """
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock or time.monotonic
        self._last_command: Dict[int, float] = {}

    def is_allowed(self, user_id: int) -> bool:
        if self.cooldown_seconds <= 0:
            return True
        now = self._clock()
        self._prune(now)
        last = self._last_command.get(user_id)
        if last is not None and now - last < self.cooldown_seconds:
            return False
        self._last_command[user_id] = now
        return True

    def _prune(self, now: float) -> None:
        """Forget users whose window has already closed."""
        expired = [uid for uid, last in self._last_command.items() if now - last >= self.cooldown_seconds]
        for uid in expired:
            del self._last_command[uid]

    def get_remaining_time(self, user_id: int) -> float:
        last = self._last_command.get(user_id)
        if last is None:
            return 0.0
        return max(0.0, self.cooldown_seconds - (self._clock() - last))


class CooldownMiddleware(BaseMiddleware):
    """Drops commands a user sends inside their cooldown window."""

    def __init__(self, cooldown: CommandCooldown):
        self.cooldown = cooldown

    async def __call__(
        self,
        handler: Callable[[Message, Dict[str, Any]], Awaitable[Any]],
        event: Message,
        data: Dict[str, Any],
    ) -> Any:
        text = event.text or ""
        if not text.startswith("/") or event.from_user is None:
            return await handler(event, data)

        if not self.cooldown.is_allowed(event.from_user.id):
            logger.info(
                f"Command cooldown: user {event.from_user.id} in {event.chat.id} "
                f"({self.cooldown.get_remaining_time(event.from_user.id):.1f}s left), ignoring {text.split()[0]!r}"
            )
            return None

        return await handler(event, data)
