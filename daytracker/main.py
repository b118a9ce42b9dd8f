"""Main entry point for the Daytracker bot."""

import logging
import sys

from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
)

from daytracker.bot.callbacks import callback_router
from daytracker.bot.conversations import (
    build_add_conversation_handler,
    build_profile_conversation_handler,
)
from daytracker.bot.handlers import (
    finish_command,
    help_command,
    history_command,
    now_command,
    profile_command,
    stats_command,
    today_command,
    upcoming_command,
)
from daytracker.config import Config
from daytracker.db.migrations import run_migrations
from daytracker.db.repository import Repository
from daytracker.engine.heartbeat import EngineRegistry, heartbeat, startup_recovery
from daytracker.utils.error_handler import error_handler

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
    stream=sys.stdout,
)
# The 1 Hz tick would otherwise flood the log
logging.getLogger("apscheduler").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


async def heartbeat_job(context: "ContextTypes.DEFAULT_TYPE") -> None:
    """Job callback for the heartbeat."""
    registry: EngineRegistry = context.bot_data["registry"]
    await heartbeat(registry)


async def post_init(application: Application) -> None:
    """Initialize bot resources after application is created."""
    await run_migrations(Config.DATABASE_PATH)

    repo = Repository(Config.DATABASE_PATH)
    await repo.connect()
    application.bot_data["repo"] = repo

    registry = EngineRegistry(repo, Config.timing_settings(), bot=application.bot)
    application.bot_data["registry"] = registry

    await startup_recovery(repo, registry)

    job_queue = application.job_queue
    if job_queue:
        job_queue.run_repeating(
            heartbeat_job,
            interval=Config.TICK_INTERVAL,
            first=1,
            name="heartbeat",
            job_kwargs={"max_instances": 1, "coalesce": True},
        )
        logger.info(f"Heartbeat job scheduled (interval: {Config.TICK_INTERVAL}s)")
    else:
        logger.error("Job queue unavailable; install python-telegram-bot[job-queue]")

    logger.info("Daytracker initialized successfully")


async def post_shutdown(application: Application) -> None:
    """Cleanup resources on shutdown."""
    registry: EngineRegistry | None = application.bot_data.get("registry")
    if registry:
        await registry.drain()
        registry.close()

    repo: Repository | None = application.bot_data.get("repo")
    if repo:
        await repo.close()

    logger.info("Daytracker shut down")


def main() -> None:
    """Start the bot."""
    try:
        Config.validate()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    application = (
        Application.builder()
        .token(Config.TELEGRAM_BOT_TOKEN)
        .post_init(post_init)
        .post_shutdown(post_shutdown)
        .build()
    )

    # Conversation handlers first so /start and /add reach them
    application.add_handler(build_profile_conversation_handler())
    application.add_handler(build_add_conversation_handler())

    # Commands
    application.add_handler(CommandHandler("help", help_command))
    application.add_handler(CommandHandler("now", now_command))
    application.add_handler(CommandHandler("today", today_command))
    application.add_handler(CommandHandler("upcoming", upcoming_command))
    application.add_handler(CommandHandler("finish", finish_command))
    application.add_handler(CommandHandler("history", history_command))
    application.add_handler(CommandHandler("stats", stats_command))
    application.add_handler(CommandHandler("profile", profile_command))

    # Callback queries (buttons)
    application.add_handler(CallbackQueryHandler(callback_router))

    application.add_error_handler(error_handler)

    logger.info("Starting Daytracker bot...")
    application.run_polling(allowed_updates=["message", "callback_query"])


if __name__ == "__main__":
    main()
