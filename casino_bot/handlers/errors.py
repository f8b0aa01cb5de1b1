"""Last-resort error logging for anything that escapes a handler."""

import logging
from aiogram import Router
from aiogram.types import ErrorEvent

logger = logging.getLogger(__name__)

router = Router()


@router.errors()
async def on_error(event: ErrorEvent):
    logger.error(
        f"Unhandled error in update {event.update.update_id}: "
        f"{type(event.exception).__name__}: {event.exception}",
        exc_info=event.exception,
    )
    return True
