"""Callback query handlers for inline buttons."""

import logging

from telegram import Update
from telegram.ext import ContextTypes

from daytracker.bot.formatters import format_finish_result
from daytracker.db.repository import Repository
from daytracker.engine.heartbeat import EngineRegistry
from daytracker.utils.time_utils import local_now

logger = logging.getLogger(__name__)


async def handle_finish_callback(
    update: Update, context: ContextTypes.DEFAULT_TYPE, block_id: int
) -> None:
    """Handle 'Finish' button press."""
    if not update.effective_user or not update.callback_query:
        return

    query = update.callback_query
    repo: Repository = context.bot_data["repo"]
    profile = await repo.get_profile_by_telegram_id(update.effective_user.id)

    if not profile:
        await query.answer("Please /start the bot first.")
        return

    registry: EngineRegistry = context.bot_data["registry"]
    engine = await registry.get(profile)

    result = await engine.finish_block(block_id, local_now())

    if result is None:
        await query.answer("Already finished.")
    elif result.status_written:
        await query.answer("✓ Finished!")
    else:
        await query.answer("Couldn't save, please retry.")

    if query.message:
        await query.message.edit_text(format_finish_result(result), parse_mode="HTML")


async def handle_dismiss_callback(
    update: Update, context: ContextTypes.DEFAULT_TYPE, block_id: int
) -> None:
    """Handle 'Dismiss' button press on a reminder."""
    if not update.callback_query:
        return

    query = update.callback_query
    if query.message:
        await query.message.edit_reply_markup(reply_markup=None)
    await query.answer("Dismissed. Use /now when you're ready to finish.")
    logger.debug(f"Reminder for block {block_id} dismissed")


async def callback_router(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Route callback queries to appropriate handlers."""
    if not update.callback_query:
        return

    query = update.callback_query
    data = query.data

    if not data:
        return

    parts = data.split(":")

    try:
        if parts[0] == "finish":
            await handle_finish_callback(update, context, int(parts[1]))

        elif parts[0] == "dismiss":
            await handle_dismiss_callback(update, context, int(parts[1]))

        elif parts[0] == "cancel":
            # Generic cancel
            if query.message:
                await query.message.delete()
            await query.answer("Cancelled")

        else:
            await query.answer("Unknown action")

    except (IndexError, ValueError):
        logger.warning(f"Malformed callback data: {data}")
        await query.answer("Unknown action")
