"""Text command handler: normalises aiogram messages for the dispatcher."""

import logging
from aiogram import Router, F
from aiogram.types import Message

from casino_bot.handlers.dispatcher import CasinoDispatcher, CommandEvent

logger = logging.getLogger(__name__)

router = Router()


def display_name(user) -> str:
    if user is None:
        return "Unknown"
    return user.full_name or (f"@{user.username}" if user.username else str(user.id))


@router.message(F.text.startswith("/"))
async def on_command(msg: Message, casino_dispatcher: CasinoDispatcher):
    if msg.from_user is None or msg.from_user.is_bot:
        return
    event = CommandEvent(
        sender_id=msg.from_user.id,
        sender_name=display_name(msg.from_user),
        chat_id=msg.chat.id,
        chat_type=msg.chat.type,
        chat_title=msg.chat.title,
        message_id=msg.message_id,
        text=msg.text,
    )
    result = await casino_dispatcher.handle_command(event)
    if result.text:
        await msg.answer(result.text)
