"""
Group Session Registry.

Tracks, per chat, which game (if any) is active. A chat holds at most
one active game; every game start reads ``active_game_id`` first and
refuses while it is set.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from casino_bot.services.store import MemoryStore
from casino_bot.utils import utc_now

logger = logging.getLogger(__name__)


@dataclass
class GroupSession:
    """Per-chat session state."""
    chat_id: int
    title: str
    current_game_id: Optional[str] = None
    current_game_type: Optional[str] = None
    current_bet: Optional[int] = None
    last_activity: Optional[datetime] = None


class GroupSessionRegistry:
    """Registry of chat sessions and their active-game pointers."""

    def __init__(
        self,
        store: Optional[MemoryStore[int, GroupSession]] = None,
        now_func: Optional[Callable[[], datetime]] = None,
    ):
        self._sessions: MemoryStore[int, GroupSession] = store if store is not None else MemoryStore()
        self._now = now_func or utc_now

    def get(self, chat_id: int) -> Optional[GroupSession]:
        return self._sessions.get(chat_id)

    def get_or_create_session(self, chat_id: int, title: Optional[str] = None) -> GroupSession:
        session = self._sessions.get(chat_id)
        if session is None:
            session = GroupSession(
                chat_id=chat_id,
                title=title or f"Chat {chat_id}",
                last_activity=self._now(),
            )
            self._sessions.set(chat_id, session)
            logger.info(f"[GROUP] Created session for chat {chat_id} ({session.title})")
        elif title and session.title != title:
            session.title = title
        return session

    def set_active_game(
        self,
        chat_id: int,
        game_id: Optional[str] = None,
        game_type: Optional[str] = None,
        bet: Optional[int] = None,
    ) -> GroupSession:
        """Mark or clear (``game_id=None``) the chat's active game."""
        session = self._sessions.get(chat_id)
        if session is None:
            logger.warning(
                f"[GROUP] set_active_game for unknown chat {chat_id}; creating session"
            )
            session = self.get_or_create_session(chat_id)

        session.current_game_id = game_id
        session.current_game_type = game_type if game_id else None
        session.current_bet = bet if game_id else None
        session.last_activity = self._now()
        return session

    def active_game_id(self, chat_id: int) -> Optional[str]:
        session = self._sessions.get(chat_id)
        return session.current_game_id if session else None

    def is_busy(self, chat_id: int) -> bool:
        return self.active_game_id(chat_id) is not None

    def clear_if_current(self, chat_id: int, game_id: str) -> bool:
        """Clear the active game only if it still points at ``game_id``."""
        session = self._sessions.get(chat_id)
        if session is None or session.current_game_id != game_id:
            return False
        self.set_active_game(chat_id, None)
        return True

    def touch(self, chat_id: int) -> None:
        session = self._sessions.get(chat_id)
        if session is not None:
            session.last_activity = self._now()

    def delete(self, chat_id: int) -> Optional[GroupSession]:
        return self._sessions.delete(chat_id)

    def sessions(self) -> List[GroupSession]:
        return self._sessions.values()

    def __len__(self) -> int:
        return len(self._sessions)
