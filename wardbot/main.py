import asyncio
import logging
from aiogram import Bot, Dispatcher
from aiogram.enums import ParseMode
from aiogram.client.default import DefaultBotProperties
from aiogram.fsm.storage.memory import MemoryStorage

from wardbot.config import settings
from wardbot.logger import setup_logging
from wardbot.database.session import init_db, close_db
from wardbot.handlers import moderation, review, verification
from wardbot.jobs.scheduler import setup_scheduler, shutdown_scheduler
from wardbot.middleware.moderation import ModerationMiddleware
from wardbot.moderation.audit import SqlAuditSink
from wardbot.moderation.engine import ModerationEngine
from wardbot.moderation.keywords import load_keywords
from wardbot.moderation.platform import TelegramPlatform
from wardbot.services.admins import AdminDirectory

logger = logging.getLogger(__name__)


async def on_startup(engine: ModerationEngine):
    """Startup steps that need the database."""
    logger.info("Initializing database...")
    await init_db()

    await load_keywords(engine.keyword_filter, settings.keywords)

    if settings.restore_bans_on_startup:
        await engine.restore_bans()
    else:
        logger.info("Ban replay disabled, starting with empty moderation state")

    await setup_scheduler(engine)
    logger.info(f"Verification sweep every {settings.verification_sweep_seconds}s")


def build_dp(engine: ModerationEngine, admins: AdminDirectory, audit: SqlAuditSink) -> Dispatcher:
    """Build the dispatcher with middleware and routers."""
    dp = Dispatcher(storage=MemoryStorage(), engine=engine, admins=admins, audit=audit)
    # Outer: must see every message, not only ones a handler matches
    dp.message.outer_middleware(ModerationMiddleware(engine, admins))
    dp.include_routers(
        moderation.router,
        verification.router,
        review.router,
    )
    return dp


async def main():
    setup_logging()
    logger.info("=" * 60)
    logger.info("STARTING MODERATION WORKER")
    logger.info("=" * 60)

    if not settings.bot_token:
        logger.error("TELEGRAM_BOT_TOKEN is not set!")
        raise RuntimeError("TELEGRAM_BOT_TOKEN is not set")
    if settings.review_chat_id is None:
        logger.warning("TELEGRAM_ADMIN_CHAT_ID is not set: flagged messages will be deleted without review prompts")

    bot = Bot(token=settings.bot_token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
    platform = TelegramPlatform(bot)
    audit = SqlAuditSink()
    engine = ModerationEngine.from_settings(platform, audit, settings)
    admins = AdminDirectory(platform, ttl_seconds=settings.admin_cache_ttl)

    dp = build_dp(engine, admins, audit)
    await on_startup(engine)

    try:
        await bot.delete_webhook(drop_pending_updates=True)
        bot_info = await bot.get_me()
        logger.info(f"Bot: @{bot_info.username} (id: {bot_info.id})")
        logger.info(f"Keywords: {', '.join(engine.keyword_filter.keywords) or '-'}")
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    finally:
        logger.info("Shutting down worker...")
        shutdown_scheduler()
        await close_db()
        await bot.session.close()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
