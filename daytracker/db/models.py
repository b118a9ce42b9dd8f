"""Data models."""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Literal


BlockStatus = Literal["pending", "active", "completed", "overtimed"]
Outcome = Literal["on-time", "overtime"]

TERMINAL_STATUSES = ("completed", "overtimed")


@dataclass
class Profile:
    """Telegram user profile."""

    telegram_id: int
    name: str
    nickname: str
    birthday: str | None = None  # YYYY-MM-DD
    created_at: datetime | None = None
    id: int | None = None


@dataclass
class TimeBlock:
    """A scheduled activity for one day."""

    user_id: int
    activity: str
    start_time: str  # HH:MM, 24-hour
    end_time: str  # HH:MM, 24-hour
    day: date
    status: BlockStatus = "pending"
    created_at: datetime | None = None
    id: int | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(frozen=True)
class HistoryRecord:
    """Log entry for a finished block. Written once, never updated."""

    block_id: int
    user_id: int
    activity: str
    scheduled_start: str
    scheduled_end: str
    actual_end: datetime
    outcome: Outcome
    duration_minutes: int
    id: int | None = None
