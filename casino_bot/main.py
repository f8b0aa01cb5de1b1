import asyncio
import logging
from aiogram import Bot, Dispatcher
from aiogram.enums import ParseMode
from aiogram.client.default import DefaultBotProperties
from aiogram.fsm.storage.memory import MemoryStorage

from casino_bot.config import settings
from casino_bot.logger import setup_logging
from casino_bot.database.session import init_db, close_db
from casino_bot.handlers import callbacks, commands, errors
from casino_bot.handlers.dispatcher import CasinoDispatcher
from casino_bot.jobs.scheduler import setup_scheduler, shutdown_scheduler
from casino_bot.middleware.cooldown import CommandCooldown, CooldownMiddleware
from casino_bot.services.casino import Casino
from casino_bot.services.display import TelegramDisplay
from casino_bot.services.roll_oracle import SqlRollRequestStore

logger = logging.getLogger(__name__)


def _handle_loop_exception(loop: asyncio.AbstractEventLoop, context: dict):
    exc = context.get("exception")
    logger.error(f"Unhandled asyncio error: {context.get('message')}", exc_info=exc)


def build_dp(casino: Casino) -> Dispatcher:
    """Build the dispatcher with middleware, routers and the casino core."""
    dp = Dispatcher(storage=MemoryStorage(), casino_dispatcher=CasinoDispatcher(casino))
    dp.message.outer_middleware(CooldownMiddleware(CommandCooldown(settings.command_cooldown_seconds)))
    dp.include_routers(
        errors.router,
        commands.router,
        callbacks.router,
    )
    return dp


async def main():
    """Start the bot."""
    logger.info("=" * 60)
    logger.info("STARTING CASINO BOT")
    logger.info("=" * 60)
    logger.info(f"Bets: {settings.min_bet}-{settings.max_bet} | join timeout {settings.join_timeout_seconds}s")
    logger.info(f"Log level: {settings.log_level}")

    if not settings.bot_token:
        logger.error("TELEGRAM_BOT_TOKEN is not set!")
        raise RuntimeError("TELEGRAM_BOT_TOKEN is not set")

    asyncio.get_running_loop().set_exception_handler(_handle_loop_exception)

    logger.info("Initialising database...")
    try:
        session_factory = await init_db()
    except Exception:
        logger.critical("Database initialisation failed; refusing to start", exc_info=True)
        raise
    logger.info("Database ready")

    bot = Bot(token=settings.bot_token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
    casino = Casino.from_settings(settings, TelegramDisplay(bot), SqlRollRequestStore(session_factory))
    dp = build_dp(casino)
    await setup_scheduler(casino)

    try:
        await bot.delete_webhook(drop_pending_updates=True)
        bot_info = await bot.get_me()
        logger.info(f"Bot: @{bot_info.username} (id: {bot_info.id})")
        logger.info("Polling...")
        await dp.start_polling(bot)
    except Exception as e:
        logger.error(f"Fatal error: {type(e).__name__}: {e}")
        raise
    finally:
        logger.info("Shutting down...")
        shutdown_scheduler()
        casino.shutdown()
        await bot.session.close()
        await close_db()
        logger.info("Stopped")


def run():
    setup_logging()
    asyncio.run(main())


if __name__ == "__main__":
    run()
