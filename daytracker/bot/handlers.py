"""Command handlers."""

import logging

from telegram import Update
from telegram.ext import ContextTypes

from daytracker.bot.formatters import (
    finish_button_label,
    format_block_list,
    format_finish_result,
    format_help_message,
    format_history,
    format_now,
    format_profile,
)
from daytracker.bot.keyboards import finish_keyboard
from daytracker.bot.stats import format_stats_message, get_history_stats
from daytracker.db.models import Profile
from daytracker.db.repository import Repository
from daytracker.engine.heartbeat import EngineRegistry
from daytracker.engine.timing import upcoming_blocks
from daytracker.utils.constants import HISTORY_PAGE_SIZE
from daytracker.utils.time_utils import local_now

logger = logging.getLogger(__name__)


async def get_profile_or_prompt(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> Profile | None:
    """Load the sender's profile, asking them to /start if there isn't one."""
    if not update.effective_user or not update.effective_message:
        return None

    repo: Repository = context.bot_data["repo"]
    profile = await repo.get_profile_by_telegram_id(update.effective_user.id)

    if not profile:
        await update.effective_message.reply_text("Please /start the bot first.")
        return None

    return profile


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help command."""
    if not update.message:
        return

    await update.message.reply_html(format_help_message())


async def now_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /now command - clock and the block needing attention."""
    profile = await get_profile_or_prompt(update, context)
    if not profile or not update.message:
        return

    registry: EngineRegistry = context.bot_data["registry"]
    engine = await registry.get(profile)

    now = local_now()
    snapshot = engine.get_attention_state(now)
    upcoming = upcoming_blocks(engine.blocks, now)
    if snapshot is not None:
        upcoming = [b for b in upcoming if b.id != snapshot.block.id]

    message = format_now(now, snapshot, upcoming)

    if snapshot is None:
        await update.message.reply_html(message)
        return

    await update.message.reply_html(
        message,
        reply_markup=finish_keyboard(snapshot.block.id, finish_button_label(snapshot)),  # type: ignore
    )


async def today_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /today command - all of today's blocks."""
    profile = await get_profile_or_prompt(update, context)
    if not profile or not update.message:
        return

    registry: EngineRegistry = context.bot_data["registry"]
    engine = await registry.get(profile)
    blocks = await engine.store.list_blocks()

    await update.message.reply_html(format_block_list(blocks, "Today's Schedule"))


async def upcoming_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /upcoming command - the next few unfinished blocks."""
    profile = await get_profile_or_prompt(update, context)
    if not profile or not update.message:
        return

    registry: EngineRegistry = context.bot_data["registry"]
    engine = await registry.get(profile)
    upcoming = upcoming_blocks(engine.blocks, local_now())

    await update.message.reply_html(format_block_list(upcoming, "Upcoming Schedules"))


async def finish_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /finish [id] command."""
    profile = await get_profile_or_prompt(update, context)
    if not profile or not update.message:
        return

    registry: EngineRegistry = context.bot_data["registry"]
    engine = await registry.get(profile)
    now = local_now()

    if context.args:
        try:
            block_id = int(context.args[0])
        except ValueError:
            await update.message.reply_text("Invalid block ID. Must be a number.")
            return
    else:
        snapshot = engine.get_attention_state(now)
        if snapshot is None:
            await update.message.reply_text(
                "No active task right now. Use /finish <block_id> to finish a specific block."
            )
            return
        block_id = snapshot.block.id  # type: ignore

    result = await engine.finish_block(block_id, now)
    await update.message.reply_html(format_finish_result(result))


async def history_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /history command."""
    profile = await get_profile_or_prompt(update, context)
    if not profile or not update.message:
        return

    registry: EngineRegistry = context.bot_data["registry"]
    engine = await registry.get(profile)
    records = await engine.store.list_history(HISTORY_PAGE_SIZE)

    await update.message.reply_html(format_history(records))


async def stats_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /stats command."""
    profile = await get_profile_or_prompt(update, context)
    if not profile or not update.message:
        return

    registry: EngineRegistry = context.bot_data["registry"]
    engine = await registry.get(profile)

    records = await engine.store.list_history()
    today = await engine.store.list_blocks()

    await update.message.reply_html(format_stats_message(get_history_stats(records, today)))


async def profile_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /profile command."""
    profile = await get_profile_or_prompt(update, context)
    if not profile or not update.message:
        return

    await update.message.reply_html(format_profile(profile))
