"""Global error handler for the bot."""

import logging
import traceback

from telegram import Update
from telegram.ext import ContextTypes

from daytracker.errors import FormatError, NotFoundError, StoreWriteError

logger = logging.getLogger(__name__)


def describe_error(error: BaseException | None) -> str:
    """Pick a user-facing message for an error."""
    if isinstance(error, FormatError):
        return f"❌ {error}\n\nTimes use the 24-hour HH:MM format, e.g. 09:30."
    if isinstance(error, NotFoundError):
        return "❌ That block no longer exists. Use /today to see your schedule."
    if isinstance(error, StoreWriteError):
        return "⚠️ Couldn't save your change. Please try again in a moment."

    if "Timeout" in str(error):
        return "⏱️ Request timed out.\n\nPlease try again in a moment."
    if "Network" in str(error):
        return "🌐 Network error.\n\nPlease check your connection and try again."

    return (
        "😅 Oops! Something went wrong.\n\n"
        "The error has been logged. Please try again or use /help for assistance."
    )


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle errors in the bot."""
    logger.error("Exception while handling an update:", exc_info=context.error)

    if context.error is not None:
        tb_list = traceback.format_exception(None, context.error, context.error.__traceback__)
        logger.debug(f"Traceback:\n{''.join(tb_list)}")

    # Try to notify the user
    if isinstance(update, Update) and update.effective_message:
        try:
            await update.effective_message.reply_text(describe_error(context.error))
        except Exception as e:
            logger.error(f"Failed to send error message to user: {e}")
