"""Statistics over the history log."""

from collections import Counter
from html import escape
from typing import List

from daytracker.db.models import HistoryRecord, TimeBlock
from daytracker.utils.time_utils import format_duration


def get_history_stats(records: List[HistoryRecord], today: List[TimeBlock]) -> dict:
    """Summarize finished activities and today's schedule.

    Returns:
        Dict with various statistics
    """
    stats = {}

    stats['total_finished'] = len(records)
    on_time = [r for r in records if r.outcome == 'on-time']
    overtime = [r for r in records if r.outcome == 'overtime']
    stats['on_time'] = len(on_time)
    stats['overtime'] = len(overtime)

    if records:
        stats['on_time_rate'] = (len(on_time) / len(records)) * 100
        stats['total_minutes'] = sum(r.duration_minutes for r in records)
        stats['avg_minutes'] = stats['total_minutes'] / len(records)
    else:
        stats['on_time_rate'] = 0.0
        stats['total_minutes'] = 0
        stats['avg_minutes'] = 0.0

    # Activity that ran over most often
    if overtime:
        activity, count = Counter(r.activity for r in overtime).most_common(1)[0]
        stats['most_overtimed'] = {'activity': activity, 'count': count}
    else:
        stats['most_overtimed'] = None

    # Today's schedule by status
    status_counts = Counter(b.status for b in today)
    stats['today_total'] = len(today)
    stats['today_pending'] = status_counts['pending']
    stats['today_active'] = status_counts['active']
    stats['today_completed'] = status_counts['completed']
    stats['today_overtimed'] = status_counts['overtimed']

    return stats


def format_stats_message(stats: dict) -> str:
    """Format statistics into a readable message."""
    lines = ["<b>📊 Your Daytracker Statistics</b>\n"]

    lines.append("<b>📅 Today</b>")
    lines.append(f"Scheduled blocks: {stats['today_total']}")
    lines.append(f"🕘 Pending: {stats['today_pending']}")
    lines.append(f"▶️ Active: {stats['today_active']}")
    lines.append(f"✅ Completed: {stats['today_completed']}")
    lines.append(f"⏰ Overtimed: {stats['today_overtimed']}\n")

    lines.append("<b>🎯 All Time</b>")
    lines.append(f"Finished activities: {stats['total_finished']}")
    lines.append(f"On time: {stats['on_time']} | Overtime: {stats['overtime']}")
    lines.append(f"On-time rate: {stats['on_time_rate']:.1f}%")
    lines.append(f"Time tracked: {format_duration(stats['total_minutes'])}")
    lines.append(f"Average block: {format_duration(int(stats['avg_minutes']))}")

    if stats['most_overtimed']:
        lines.append(
            f"Most overtimed: <i>{escape(stats['most_overtimed']['activity'])}</i> "
            f"({stats['most_overtimed']['count']} times)"
        )

    return "\n".join(lines)
