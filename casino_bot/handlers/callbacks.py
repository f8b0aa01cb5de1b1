"""Inline button handler: every callback goes through the dispatcher."""

import logging
from aiogram import Router
from aiogram.exceptions import TelegramAPIError
from aiogram.types import CallbackQuery

from casino_bot.handlers.commands import display_name
from casino_bot.handlers.dispatcher import CallbackEvent, CasinoDispatcher

logger = logging.getLogger(__name__)

router = Router()

# Telegram caps callback answers at 200 characters
MAX_ANSWER_LENGTH = 200


@router.callback_query()
async def on_callback(callback: CallbackQuery, casino_dispatcher: CasinoDispatcher):
    message = callback.message
    if message is None or not callback.data:
        await callback.answer()
        return

    event = CallbackEvent(
        sender_id=callback.from_user.id,
        sender_name=display_name(callback.from_user),
        chat_id=message.chat.id,
        chat_type=message.chat.type,
        chat_title=message.chat.title,
        message_id=message.message_id,
        data=callback.data,
    )
    result = await casino_dispatcher.handle_callback(event)
    try:
        if result.text:
            await callback.answer(result.text[:MAX_ANSWER_LENGTH], show_alert=result.alert)
        else:
            await callback.answer()
    except TelegramAPIError as e:
        # Answer window (~15s) may have passed while the game was busy
        logger.debug(f"Callback answer failed for {callback.data!r}: {e}")
