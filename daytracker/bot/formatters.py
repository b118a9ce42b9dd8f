"""Message text formatters."""

import random
from datetime import datetime
from html import escape
from typing import List

from daytracker.db.models import HistoryRecord, Profile, TimeBlock
from daytracker.engine.timing import AttentionState, EngineSnapshot
from daytracker.engine.timing_engine import FinishResult
from daytracker.utils.constants import MOTIVATIONAL_PHRASES
from daytracker.utils.time_utils import format_clock, format_duration

STATUS_EMOJI = {
    "pending": "🕘",
    "active": "▶️",
    "completed": "✅",
    "overtimed": "⏰",
}

ATTENTION_HEADINGS = {
    AttentionState.RUNNING: "Currently Active",
    AttentionState.GRACE: "Time to Finish!",
    AttentionState.OVERDUE: "Overdue Task",
}


def get_motivational_phrase() -> str:
    return random.choice(MOTIVATIONAL_PHRASES)


def format_block(block: TimeBlock, show_id: bool = True) -> str:
    """Format a block as a single line."""
    emoji = STATUS_EMOJI.get(block.status, "")
    line = f"{emoji} <code>{block.start_time}–{block.end_time}</code> <b>{escape(block.activity)}</b>"
    if show_id:
        line += f" (ID: {block.id})"
    return line


def format_block_list(blocks: List[TimeBlock], title: str) -> str:
    """Format a list of blocks under a heading."""
    if not blocks:
        return f"<b>{title}</b>\n\nNothing scheduled. Use /add to plan your day."

    lines = [f"<b>{title} ({len(blocks)})</b>\n"]
    lines.extend(format_block(block) for block in blocks)
    return "\n".join(lines)


def finish_button_label(snapshot: EngineSnapshot) -> str:
    """Label for the finish button, by attention state."""
    if snapshot.attention_state is AttentionState.RUNNING:
        return "FINISH NOW"
    if snapshot.attention_state is AttentionState.GRACE:
        return "FINISH (ON TIME)"
    return f"FINISH (OVERDUE: +{snapshot.minutes_past_due} min)"


def format_now(now: datetime, snapshot: EngineSnapshot | None, upcoming: List[TimeBlock]) -> str:
    """Format the clock and the block that needs attention."""
    lines = [
        f"🕐 <b>{format_clock(now)}</b>",
        now.strftime("%a %b %d %Y"),
        "",
    ]

    if snapshot is None:
        lines.append("No active task right now. Relax or schedule one!")
    else:
        block = snapshot.block
        heading = ATTENTION_HEADINGS.get(snapshot.attention_state, "")
        lines.append(f"<b>{heading.upper()}</b>")
        lines.append(f"<b>{escape(block.activity)}</b>")
        lines.append(f"Scheduled: <code>{block.start_time} – {block.end_time}</code>")
        if snapshot.minutes_past_due:
            lines.append(f"Past due: {format_duration(snapshot.minutes_past_due)}")

    if upcoming:
        lines.append("\n<b>Upcoming</b>")
        lines.extend(format_block(block, show_id=False) for block in upcoming)

    return "\n".join(lines)


def format_next_up(upcoming: TimeBlock | None) -> str:
    if upcoming is None:
        return "You have no more scheduled tasks."
    return f"Next up: {escape(upcoming.activity)} at {upcoming.start_time}"


def format_reminder_message(
    block: TimeBlock, upcoming: TimeBlock | None, phrase: str | None = None
) -> str:
    """Format the one-time reminder sent when a block's end arrives."""
    phrase = phrase or get_motivational_phrase()
    return (
        f"🔔 <b>{escape(phrase)}</b>\n\n"
        f"Your '<b>{escape(block.activity)}</b>' task is due "
        f"({block.start_time}–{block.end_time}).\n\n"
        f"{format_next_up(upcoming)}"
    )


def format_history_item(record: HistoryRecord) -> str:
    """Format one history record."""
    badge = "🔴 OVERTIME" if record.outcome == "overtime" else "🟢 ON TIME"
    return (
        f"<b>{escape(record.activity)}</b> {badge}\n"
        f"   Scheduled: <code>{record.scheduled_start} - {record.scheduled_end}</code>\n"
        f"   Finished: <code>{format_clock(record.actual_end)}</code> | "
        f"Actual Duration: {format_duration(record.duration_minutes)}"
    )


def format_history(records: List[HistoryRecord]) -> str:
    """Format the history log, newest first."""
    if not records:
        return "No activities recorded yet. Start scheduling!"

    lines = [f"<b>Activity History ({len(records)})</b>\n"]
    lines.extend(format_history_item(record) for record in records)
    return "\n\n".join(lines)


def format_finish_result(result: FinishResult | None) -> str:
    """Describe the outcome of a finish request."""
    if result is None:
        return "That block is already finished or no longer exists."

    activity = escape(result.block.activity)
    logged_at = format_clock(result.record.actual_end)

    if result.outcome == "overtime":
        message = f"⏰ <b>Finished (overtime):</b> <s>{activity}</s>\nLogged at {logged_at}."
    else:
        message = (
            f"✅ <b>Finished on time:</b> <s>{activity}</s>\n"
            f"Logged at {logged_at}. {escape(get_motivational_phrase())}"
        )

    if not result.status_written:
        message += "\n\n⚠️ Couldn't save the new status. Please try /finish again."
    elif not result.ok:
        message += "\n\n⚠️ The history entry may be missing."

    return message


def format_profile(profile: Profile) -> str:
    return (
        f"<b>{escape(profile.nickname)}'s Profile</b>\n\n"
        f"Real Name: {escape(profile.name) or 'N/A'}\n"
        f"Birthday: {escape(profile.birthday or 'N/A')}\n"
        f"User ID: <code>{profile.telegram_id}</code>"
    )


def format_welcome_message(nickname: str) -> str:
    """Format the welcome message for /start."""
    return f"""
<b>Welcome back, {escape(nickname)}!</b> ⏱

Plan your day in time blocks and I'll tell you when each one is due.

<b>Quick Start:</b>
• /add - Add a time block (guided)
• /now - What should I be doing?
• /today - Today's schedule
• /help - Full command list
""".strip()


def format_help_message() -> str:
    """Format the help message."""
    return """
<b>Daytracker Commands ⏱</b>

<b>Planning:</b>
/add - Guided block creation
/add &lt;start&gt; &lt;end&gt; &lt;activity&gt; - Quick add: <code>/add 09:00 10:00 Deep work</code>
/today - Today's blocks
/upcoming - Next blocks

<b>Tracking:</b>
/now - Current block and finish button
/finish [id] - Finish the current block (or a given one)

<b>Looking back:</b>
/history - Finished activities
/stats - On-time rate and totals
/profile - Your profile

<b>Tips:</b>
• Finishing within the grace window after a block ends still counts as on time
• Blocks left unfinished are logged as overtime automatically
""".strip()
