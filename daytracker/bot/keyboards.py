"""Inline keyboard builders."""

from telegram import InlineKeyboardButton, InlineKeyboardMarkup


def finish_dismiss_keyboard(block_id: int) -> InlineKeyboardMarkup:
    """Keyboard for reminder messages: Finish, Dismiss."""
    return InlineKeyboardMarkup(
        [
            [
                InlineKeyboardButton("✓ Finish", callback_data=f"finish:{block_id}"),
                InlineKeyboardButton("✗ Dismiss", callback_data=f"dismiss:{block_id}"),
            ]
        ]
    )


def finish_keyboard(block_id: int, label: str) -> InlineKeyboardMarkup:
    """Single finish button for the /now panel."""
    return InlineKeyboardMarkup(
        [[InlineKeyboardButton(label, callback_data=f"finish:{block_id}")]]
    )


def confirm_cancel_keyboard(action: str) -> InlineKeyboardMarkup:
    """Keyboard for confirmations: Confirm, Cancel."""
    return InlineKeyboardMarkup(
        [
            [
                InlineKeyboardButton("✓ Confirm", callback_data=f"confirm:{action}"),
                InlineKeyboardButton("✗ Cancel", callback_data=f"cancel:{action}"),
            ]
        ]
    )
