"""Heartbeat - ticks every user's timing engine."""

import asyncio
import logging
from datetime import date, datetime
from typing import Callable, Dict, List

from telegram import Bot
from telegram.error import TelegramError

from daytracker.bot.formatters import format_reminder_message
from daytracker.bot.keyboards import finish_dismiss_keyboard
from daytracker.db.models import Profile, TimeBlock
from daytracker.db.repository import Repository
from daytracker.db.store import ScheduleStore
from daytracker.engine.timing import TimingSettings
from daytracker.engine.timing_engine import ReminderCallback, TimingEngine
from daytracker.utils.time_utils import local_now

logger = logging.getLogger(__name__)


def reminder_sender(bot: Bot, profile: Profile) -> ReminderCallback:
    """Build the reminder callback that messages a user."""

    async def send(block: TimeBlock, upcoming: TimeBlock | None) -> None:
        try:
            await bot.send_message(
                chat_id=profile.telegram_id,
                text=format_reminder_message(block, upcoming),
                parse_mode="HTML",
                reply_markup=finish_dismiss_keyboard(block.id),  # type: ignore
            )
        except TelegramError as e:
            # The marker is already set, so this reminder is lost
            logger.error(f"Failed to send reminder for block {block.id}: {e}")

    return send


class EngineRegistry:
    """One timing engine per profile, created on first use."""

    def __init__(
        self,
        repo: Repository,
        settings: TimingSettings,
        bot: Bot | None = None,
        today: Callable[[], date] | None = None,
    ):
        self.repo = repo
        self.settings = settings
        self.bot = bot
        self.today = today
        self._engines: Dict[int, TimingEngine] = {}
        self._lock = asyncio.Lock()
        self._day: date | None = None

    async def get(self, profile: Profile) -> TimingEngine:
        """Get the profile's engine, creating and loading it if needed."""
        engine = self._engines.get(profile.id)  # type: ignore
        if engine is not None:
            return engine

        # Two first-time callers must not each build an engine
        async with self._lock:
            engine = self._engines.get(profile.id)  # type: ignore
            if engine is None:
                store = ScheduleStore(self.repo, profile.id, today=self.today)  # type: ignore
                engine = TimingEngine(store, self.settings)
                if self.bot is not None:
                    engine.on_reminder(reminder_sender(self.bot, profile))
                await engine.start()
                self._engines[profile.id] = engine  # type: ignore
                logger.info(f"Timing engine started for profile {profile.id}")
        return engine

    def engines(self) -> List[TimingEngine]:
        return list(self._engines.values())

    async def roll_day(self, today: date) -> None:
        """Reload every engine's block set when the calendar day changes.

        Unfinished blocks from the previous day stay in the reloaded set, so a
        block still in its grace or overdue window at midnight is resolved.
        """
        if self._day == today:
            return
        if self._day is not None:
            logger.info(f"Day changed to {today}, reloading schedules")
            for engine in self.engines():
                await engine.start()
        self._day = today

    async def drain(self) -> None:
        for engine in self.engines():
            await engine.drain()

    def close(self) -> None:
        for engine in self.engines():
            engine.close()
        self._engines.clear()


async def heartbeat(registry: EngineRegistry, now: datetime | None = None) -> None:
    """Heartbeat job that recomputes every engine.

    Runs once per second. One engine failing never stops the others, and the
    job itself never raises.
    """
    if now is None:
        now = local_now()

    try:
        await registry.roll_day(now.date())
    except Exception as e:
        logger.error(f"Heartbeat day rollover error: {e}")

    for engine in registry.engines():
        try:
            engine.tick(now)
        except Exception as e:
            logger.error(f"Heartbeat error for user {engine.store.user_id}: {e}")


async def startup_recovery(repo: Repository, registry: EngineRegistry) -> None:
    """Recovery on startup: load every profile's engine.

    Reminders already sent before a restart are remembered by their persisted
    markers, and blocks that went overdue while we were down are auto-resolved
    on the first heartbeat.
    """
    try:
        profiles = await repo.get_all_profiles()

        for profile in profiles:
            await registry.get(profile)

        if profiles:
            logger.info(f"Startup recovery: loaded {len(profiles)} schedules")

    except Exception as e:
        logger.error(f"Startup recovery error: {e}")
