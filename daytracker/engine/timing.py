"""Attention-state computation for time blocks.

Everything here is pure: the same ``now`` and block set always give the same
answer. The engine and the bot both call into this module instead of doing
their own timing math.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, List, Tuple

from daytracker.db.models import Outcome, TimeBlock
from daytracker.utils.constants import (
    DEFAULT_AUTO_ADVANCE_MINUTES,
    DEFAULT_GRACE_MINUTES,
    DEFAULT_REMINDER_WINDOW_SECONDS,
    UPCOMING_LIMIT,
)
from daytracker.utils.time_utils import minutes_between, wall_clock_to_instant


class AttentionState(Enum):
    SCHEDULED = "scheduled"
    RUNNING = "running"
    GRACE = "grace"
    OVERDUE = "overdue"
    AUTO_RESOLVED = "auto_resolved"


@dataclass(frozen=True)
class TimingSettings:
    grace_minutes: int = DEFAULT_GRACE_MINUTES
    auto_advance_minutes: int = DEFAULT_AUTO_ADVANCE_MINUTES
    reminder_window_seconds: int = DEFAULT_REMINDER_WINDOW_SECONDS

    def __post_init__(self):
        if self.grace_minutes < 0:
            raise ValueError("grace_minutes must not be negative")
        if self.grace_minutes >= self.auto_advance_minutes:
            raise ValueError("grace_minutes must be less than auto_advance_minutes")
        if self.reminder_window_seconds < 1:
            raise ValueError("reminder_window_seconds must be at least 1")

    @property
    def grace(self) -> timedelta:
        return timedelta(minutes=self.grace_minutes)

    @property
    def auto_advance(self) -> timedelta:
        return timedelta(minutes=self.auto_advance_minutes)

    @property
    def reminder_window(self) -> timedelta:
        return timedelta(seconds=self.reminder_window_seconds)


@dataclass(frozen=True)
class EngineSnapshot:
    """The block needing attention on one tick."""

    block: TimeBlock
    attention_state: AttentionState
    minutes_past_due: int


def block_window(block: TimeBlock) -> Tuple[datetime, datetime]:
    """Start and end instants of a block on its own day."""
    return (
        wall_clock_to_instant(block.start_time, block.day),
        wall_clock_to_instant(block.end_time, block.day),
    )


def auto_resolve_at(block: TimeBlock, settings: TimingSettings) -> datetime:
    """Instant at which an unattended block is resolved as overtime."""
    _, end = block_window(block)
    return end + settings.auto_advance


def classify(block: TimeBlock, now: datetime, settings: TimingSettings) -> AttentionState:
    """Lifecycle phase of a block at ``now``, ignoring its persisted status."""
    start, end = block_window(block)

    if now < start:
        return AttentionState.SCHEDULED
    if now < end:
        return AttentionState.RUNNING
    if now < end + settings.grace:
        return AttentionState.GRACE
    if now < end + settings.auto_advance:
        return AttentionState.OVERDUE
    return AttentionState.AUTO_RESOLVED


def minutes_past_due(block: TimeBlock, now: datetime) -> int:
    _, end = block_window(block)
    return max(0, minutes_between(end, now))


def get_attention_state(
    now: datetime, blocks: Iterable[TimeBlock], settings: TimingSettings
) -> EngineSnapshot | None:
    """Pick the single block that needs attention at ``now``.

    A running block wins over any waiting one. Among blocks in their grace or
    overdue window the one with the earliest end is surfaced first. Terminal
    and auto-resolved blocks never qualify.
    """
    running: List[TimeBlock] = []
    waiting: List[TimeBlock] = []

    for block in blocks:
        if block.is_terminal:
            continue
        state = classify(block, now, settings)
        if state is AttentionState.RUNNING:
            running.append(block)
        elif state in (AttentionState.GRACE, AttentionState.OVERDUE):
            waiting.append(block)

    if running:
        chosen = min(running, key=lambda b: (block_window(b)[0], b.id or 0))
    elif waiting:
        chosen = min(waiting, key=lambda b: (block_window(b)[1], block_window(b)[0], b.id or 0))
    else:
        return None

    return EngineSnapshot(
        block=chosen,
        attention_state=classify(chosen, now, settings),
        minutes_past_due=minutes_past_due(chosen, now),
    )


def classify_finish(block: TimeBlock, now: datetime, settings: TimingSettings) -> Outcome:
    """Outcome of finishing ``block`` at ``now``."""
    _, end = block_window(block)
    return "overtime" if now > end + settings.grace else "on-time"


def in_reminder_window(block: TimeBlock, now: datetime, settings: TimingSettings) -> bool:
    _, end = block_window(block)
    return end <= now < end + settings.reminder_window


def next_block(block: TimeBlock, blocks: Iterable[TimeBlock]) -> TimeBlock | None:
    """Earliest unfinished block starting at or after ``block`` ends."""
    _, end = block_window(block)
    candidates = [
        b for b in blocks
        if b.id != block.id and not b.is_terminal and block_window(b)[0] >= end
    ]
    if not candidates:
        return None
    return min(candidates, key=lambda b: (block_window(b)[0], b.id or 0))


def upcoming_blocks(
    blocks: Iterable[TimeBlock], now: datetime, limit: int = UPCOMING_LIMIT
) -> List[TimeBlock]:
    """Unfinished blocks that haven't ended yet, soonest first."""
    pending = [b for b in blocks if not b.is_terminal and block_window(b)[1] > now]
    pending.sort(key=lambda b: (block_window(b)[0], b.id or 0))
    return pending[:limit]
