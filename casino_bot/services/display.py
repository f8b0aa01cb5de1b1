"""
Display sink for game cards.

Each game keeps one evolving message in the chat. ``render`` edits the
game's tracked message and, if that fails, posts a new one and retargets
the game to it. Callers never learn which path was taken, and a display
failure never propagates into game logic.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest
from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from casino_bot.services.game_session import GameSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Button:
    """A labelled action bound to a callback payload."""
    text: str
    callback_data: str


Controls = Sequence[Sequence[Button]]


class DisplayError(Exception):
    """The transport refused to show a message."""


class DisplaySink:
    """Base display: subclasses implement ``_edit`` and ``_send``."""

    async def _edit(self, chat_id: int, message_id: int, body: str, controls: Optional[Controls]) -> None:
        raise NotImplementedError

    async def _send(self, chat_id: int, body: str, controls: Optional[Controls]) -> int:
        raise NotImplementedError

    async def render(self, game: GameSession, body: str, controls: Optional[Controls] = None) -> Optional[int]:
        """
        Show ``body`` and ``controls`` on the game's card.

        Returns:
            ID of the message now showing the game, or None if nothing could be shown
        """
        if game.message_id is not None:
            try:
                await self._edit(game.chat_id, game.message_id, body, controls)
                return game.message_id
            except DisplayError as e:
                logger.warning(
                    f"[DISPLAY] Edit of message {game.message_id} for {game.game_id} failed ({e}); reposting"
                )

        message_id = await self.send(game.chat_id, body, controls)
        if message_id is not None:
            game.message_id = message_id
        return message_id

    async def send(self, chat_id: int, body: str, controls: Optional[Controls] = None) -> Optional[int]:
        """Post a new message; returns its ID or None on failure."""
        try:
            return await self._send(chat_id, body, controls)
        except DisplayError as e:
            logger.error(f"[DISPLAY] Send to chat {chat_id} failed: {e}")
            return None


def build_keyboard(controls: Optional[Controls]) -> Optional[InlineKeyboardMarkup]:
    if not controls:
        return None
    rows: List[List[InlineKeyboardButton]] = [
        [InlineKeyboardButton(text=b.text, callback_data=b.callback_data) for b in row]
        for row in controls
        if row
    ]
    return InlineKeyboardMarkup(inline_keyboard=rows) if rows else None


class TelegramDisplay(DisplaySink):
    """DisplaySink over an aiogram Bot (HTML parse mode is the bot default)."""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def _edit(self, chat_id: int, message_id: int, body: str, controls: Optional[Controls]) -> None:
        try:
            await self.bot.edit_message_text(
                text=body,
                chat_id=chat_id,
                message_id=message_id,
                reply_markup=build_keyboard(controls),
            )
        except TelegramBadRequest as e:
            if "message is not modified" in str(e).lower():
                return
            raise DisplayError(str(e)) from e
        except TelegramAPIError as e:
            raise DisplayError(str(e)) from e

    async def _send(self, chat_id: int, body: str, controls: Optional[Controls]) -> int:
        try:
            message = await self.bot.send_message(
                chat_id=chat_id,
                text=body,
                reply_markup=build_keyboard(controls),
            )
        except TelegramAPIError as e:
            raise DisplayError(str(e)) from e
        return message.message_id
