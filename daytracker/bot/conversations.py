"""Conversation handlers for multi-step flows."""

import logging
from datetime import date
from html import escape

from telegram import Update
from telegram.constants import ParseMode
from telegram.ext import (
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    ConversationHandler,
    MessageHandler,
    filters,
)

from daytracker.bot.formatters import format_welcome_message
from daytracker.bot.handlers import get_profile_or_prompt
from daytracker.bot.keyboards import confirm_cancel_keyboard
from daytracker.db.models import Profile
from daytracker.db.repository import Repository
from daytracker.engine.heartbeat import EngineRegistry
from daytracker.errors import FormatError, StoreWriteError
from daytracker.utils.constants import DEFAULT_END_TIME, DEFAULT_START_TIME
from daytracker.utils.time_utils import (
    normalize_wall_clock,
    parse_wall_clock,
    validate_block_times,
)

logger = logging.getLogger(__name__)

# Conversation states
NAME, NICKNAME, BIRTHDAY = range(3)
ACTIVITY, START_TIME, END_TIME, CONFIRM = range(3, 7)

SKIP_WORDS = ["skip", "no", "none", ""]


# Profile setup

async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Handle /start: welcome back, or begin profile setup."""
    if not update.effective_user or not update.message:
        return ConversationHandler.END

    repo: Repository = context.bot_data["repo"]
    profile = await repo.get_profile_by_telegram_id(update.effective_user.id)

    if profile:
        await update.message.reply_html(format_welcome_message(profile.nickname))
        return ConversationHandler.END

    context.user_data["profile_data"] = {}

    await update.message.reply_html(
        "<b>Welcome! Let's get set up.</b>\n\n"
        "What's your full name?\n\n"
        "Send /cancel to abort."
    )

    return NAME


async def profile_name(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive full name."""
    if not update.message or not update.message.text:
        return NAME

    name = update.message.text.strip()
    if not name:
        await update.message.reply_text("Please enter your name.")
        return NAME

    context.user_data["profile_data"]["name"] = name

    await update.message.reply_text("What nickname should I call you?")
    return NICKNAME


async def profile_nickname(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive nickname."""
    if not update.message or not update.message.text:
        return NICKNAME

    nickname = update.message.text.strip()
    if not nickname:
        await update.message.reply_text("Please enter a nickname.")
        return NICKNAME

    context.user_data["profile_data"]["nickname"] = nickname

    await update.message.reply_html(
        "When's your birthday? (optional)\n\n"
        "Format: <i>1990-05-21</i>, or <i>skip</i>"
    )
    return BIRTHDAY


async def profile_birthday(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive birthday and create the profile."""
    if not update.message or not update.message.text or not update.effective_user:
        return BIRTHDAY

    text = update.message.text.strip().lower()
    birthday = None

    if text not in SKIP_WORDS:
        try:
            birthday = date.fromisoformat(text).isoformat()
        except ValueError:
            await update.message.reply_text(
                "Invalid date. Use YYYY-MM-DD or 'skip'."
            )
            return BIRTHDAY

    data = context.user_data.get("profile_data", {})
    repo: Repository = context.bot_data["repo"]
    registry: EngineRegistry = context.bot_data["registry"]

    profile = await repo.create_profile(
        Profile(
            telegram_id=update.effective_user.id,
            name=data["name"],
            nickname=data["nickname"],
            birthday=birthday,
        )
    )
    await registry.get(profile)

    await update.message.reply_html(format_welcome_message(profile.nickname))

    context.user_data.clear()
    return ConversationHandler.END


# Add block

async def add_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Start the /add conversation, or add directly from arguments."""
    profile = await get_profile_or_prompt(update, context)
    if not profile or not update.message:
        return ConversationHandler.END

    if context.args:
        await quick_add(update, context, profile)
        return ConversationHandler.END

    context.user_data["profile"] = profile
    context.user_data["block_data"] = {}

    await update.message.reply_text(
        "<b>Add Time Block</b>\n\nWhat's the activity?\n\n"
        "Example: <i>Deep work</i>\n\n"
        "Send /cancel to abort.",
        parse_mode=ParseMode.HTML,
    )

    return ACTIVITY


async def quick_add(update: Update, context: ContextTypes.DEFAULT_TYPE, profile: Profile) -> None:
    """Handle /add <start> <end> <activity>."""
    if not update.message:
        return

    args = context.args or []
    if len(args) < 3:
        await update.message.reply_html(
            "Usage: <code>/add 09:00 10:00 Deep work</code>\n\n"
            "Or just /add for the guided version."
        )
        return

    start_time, end_time = args[0], args[1]
    activity = " ".join(args[2:])

    await create_block(update, context, profile, activity, start_time, end_time)


async def create_block(
    update: Update,
    context: ContextTypes.DEFAULT_TYPE,
    profile: Profile,
    activity: str,
    start_time: str,
    end_time: str,
) -> None:
    """Persist a block and report the result."""
    message = update.effective_message
    if not message:
        return

    registry: EngineRegistry = context.bot_data["registry"]
    engine = await registry.get(profile)

    try:
        block = await engine.store.add_block(activity, start_time, end_time)
    except FormatError as e:
        await message.reply_text(f"❌ {e}\n\nPlease try /add again.")
        return
    except StoreWriteError as e:
        logger.error(f"Error creating block: {e}")
        await message.reply_text("❌ Couldn't save that block. Please try again.")
        return

    await message.reply_html(
        f"✓ <b>Block added!</b>\n\n"
        f"ID: {block.id}\n"
        f"<b>{escape(block.activity)}</b> {block.start_time}–{block.end_time}\n\n"
        f"Use /today to see your schedule."
    )


async def add_activity(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive activity name."""
    if not update.message or not update.message.text:
        return ACTIVITY

    activity = update.message.text.strip()

    if not activity:
        await update.message.reply_text("Please enter an activity name.")
        return ACTIVITY

    context.user_data["block_data"]["activity"] = activity

    await update.message.reply_html(
        f"<b>Activity:</b> {escape(activity)}\n\n"
        f"When does it start? (HH:MM, e.g. <i>{DEFAULT_START_TIME}</i>)"
    )

    return START_TIME


async def add_start_time(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive start time."""
    if not update.message or not update.message.text:
        return START_TIME

    text = update.message.text.strip()

    try:
        parse_wall_clock(text)
    except FormatError as e:
        await update.message.reply_text(f"{e}\n\nPlease try again or /cancel.")
        return START_TIME

    context.user_data["block_data"]["start_time"] = normalize_wall_clock(text)

    await update.message.reply_html(
        f"<b>Start:</b> {normalize_wall_clock(text)}\n\n"
        f"When does it finish? (HH:MM, e.g. <i>{DEFAULT_END_TIME}</i>)"
    )

    return END_TIME


async def add_end_time(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive end time and show confirmation."""
    if not update.message or not update.message.text:
        return END_TIME

    text = update.message.text.strip()
    data = context.user_data["block_data"]

    try:
        validate_block_times(data["start_time"], text)
    except FormatError as e:
        await update.message.reply_text(f"{e}\n\nPlease try again or /cancel.")
        return END_TIME

    data["end_time"] = normalize_wall_clock(text)

    await update.message.reply_html(
        "<b>Confirm Time Block</b>\n\n"
        f"<b>{escape(data['activity'])}</b>\n"
        f"{data['start_time']} – {data['end_time']}\n\n"
        "Looks good?",
        reply_markup=confirm_cancel_keyboard("add"),
    )

    return CONFIRM


async def add_confirm(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Handle confirmation callback."""
    if not update.callback_query or not update.effective_user:
        return ConversationHandler.END

    query = update.callback_query

    # Answer first to stop the loading state
    await query.answer()

    if query.data == "confirm:add":
        profile = context.user_data.get("profile")
        data = context.user_data.get("block_data")

        if not profile or not data:
            if query.message:
                await query.message.edit_text(
                    "Error: Session expired. Please use /add again."
                )
            context.user_data.clear()
            return ConversationHandler.END

        if query.message:
            await query.message.edit_reply_markup(reply_markup=None)

        await create_block(
            update, context, profile, data["activity"], data["start_time"], data["end_time"]
        )

    elif query.data == "cancel:add":
        if query.message:
            await query.message.edit_text("❌ Cancelled. Use /add to try again.")

    context.user_data.clear()

    return ConversationHandler.END


async def cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Cancel the current conversation."""
    if not update.message:
        return ConversationHandler.END

    await update.message.reply_text("Cancelled.")
    context.user_data.clear()

    return ConversationHandler.END


def build_profile_conversation_handler() -> ConversationHandler:
    """Build the /start profile setup conversation handler."""
    return ConversationHandler(
        entry_points=[CommandHandler("start", start_command)],
        states={
            NAME: [MessageHandler(filters.TEXT & ~filters.COMMAND, profile_name)],
            NICKNAME: [MessageHandler(filters.TEXT & ~filters.COMMAND, profile_nickname)],
            BIRTHDAY: [MessageHandler(filters.TEXT & ~filters.COMMAND, profile_birthday)],
        },
        fallbacks=[CommandHandler("cancel", cancel)],
        per_message=False,
        conversation_timeout=600,
    )


def build_add_conversation_handler() -> ConversationHandler:
    """Build the /add conversation handler."""
    return ConversationHandler(
        entry_points=[CommandHandler("add", add_start)],
        states={
            ACTIVITY: [MessageHandler(filters.TEXT & ~filters.COMMAND, add_activity)],
            START_TIME: [MessageHandler(filters.TEXT & ~filters.COMMAND, add_start_time)],
            END_TIME: [MessageHandler(filters.TEXT & ~filters.COMMAND, add_end_time)],
            CONFIRM: [
                CallbackQueryHandler(add_confirm, pattern=r"^(confirm|cancel):add$")
            ],
        },
        fallbacks=[CommandHandler("cancel", cancel)],
        per_message=False,  # Track per conversation, not per message
        conversation_timeout=300,  # 5 minute timeout
    )
