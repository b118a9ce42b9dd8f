"""Timing engine - drives block status from the clock and user finishes."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Coroutine, List

from daytracker.db.models import HistoryRecord, Outcome, TimeBlock
from daytracker.db.store import ScheduleStore
from daytracker.engine.timing import (
    AttentionState,
    EngineSnapshot,
    TimingSettings,
    auto_resolve_at,
    block_window,
    classify,
    classify_finish,
    get_attention_state,
    in_reminder_window,
    next_block,
)
from daytracker.errors import NotFoundError, StoreWriteError
from daytracker.utils.time_utils import minutes_between, truncate_to_second

logger = logging.getLogger(__name__)

ReminderCallback = Callable[[TimeBlock, TimeBlock | None], Awaitable[None]]


@dataclass
class FinishResult:
    """What happened when the user finished a block."""

    block: TimeBlock
    outcome: Outcome
    record: HistoryRecord
    history_appended: bool = False
    status_written: bool = False
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class TimingEngine:
    """Per-user engine.

    Every tick is a full recomputation from the latest block set pushed by the
    store. Writes run as background tasks so the tick never waits on the
    database; a block with a write in flight is skipped until it settles.
    """

    def __init__(self, store: ScheduleStore, settings: TimingSettings | None = None):
        self.store = store
        self.settings = settings or TimingSettings()
        self._blocks: List[TimeBlock] = []
        self._reminder_callbacks: List[ReminderCallback] = []
        self._reminded: set[int] = set()
        self._in_flight: set[int] = set()
        self._finishing: set[int] = set()
        self._tasks: set[asyncio.Task] = set()
        self._ticking = False
        self._unsubscribe = store.subscribe_blocks(self._on_blocks)

    @property
    def blocks(self) -> List[TimeBlock]:
        return list(self._blocks)

    def _on_blocks(self, blocks: List[TimeBlock]) -> None:
        self._blocks = list(blocks)

    async def start(self) -> None:
        """Load the initial block set."""
        await self.store.refresh()

    def close(self) -> None:
        self._unsubscribe()

    def on_reminder(self, callback: ReminderCallback) -> None:
        """Register a coroutine called once when a block's end arrives."""
        self._reminder_callbacks.append(callback)

    def get_attention_state(self, now: datetime) -> EngineSnapshot | None:
        return get_attention_state(now, self._blocks, self.settings)

    def find_block(self, block_id: int) -> TimeBlock | None:
        for block in self._blocks:
            if block.id == block_id:
                return block
        return None

    # Tick

    def tick(self, now: datetime) -> None:
        """Recompute every block at ``now`` and schedule any writes.

        Must be called from a running event loop. Not reentrant.
        """
        if self._ticking:
            logger.debug("Tick skipped: previous tick still running")
            return

        self._ticking = True
        try:
            now = truncate_to_second(now)
            for block in list(self._blocks):
                try:
                    self._evaluate(block, now)
                except Exception as e:
                    logger.error(f"Error evaluating block {block.id}: {e}")
        finally:
            self._ticking = False

    def _evaluate(self, block: TimeBlock, now: datetime) -> None:
        if block.id is None or block.is_terminal:
            return

        state = classify(block, now, self.settings)
        if state is AttentionState.SCHEDULED:
            return

        busy = block.id in self._in_flight or block.id in self._finishing

        if state is AttentionState.AUTO_RESOLVED:
            if not busy:
                self._spawn(block.id, self._auto_resolve(block), "auto-resolve")
            return

        if block.status == "pending" and not busy:
            self._spawn(block.id, self._activate(block), "activate")

        if block.id not in self._reminded and in_reminder_window(block, now, self.settings):
            self._reminded.add(block.id)
            self._track(self._remind(block))

    # Background writes

    def _spawn(self, block_id: int, coro: Coroutine, label: str) -> None:
        self._in_flight.add(block_id)
        self._track(self._run_mutation(block_id, coro, label))

    def _track(self, coro: Coroutine) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_mutation(self, block_id: int, coro: Coroutine, label: str) -> None:
        try:
            await coro
        except NotFoundError as e:
            logger.warning(f"{label} for block {block_id} skipped: {e}")
        except StoreWriteError as e:
            logger.error(f"{label} for block {block_id} failed, will retry: {e}")
        except Exception as e:
            logger.error(f"Unexpected error during {label} for block {block_id}: {e}")
        finally:
            self._in_flight.discard(block_id)

    async def _activate(self, block: TimeBlock) -> None:
        current = self.find_block(block.id)
        if current is None or current.status != "pending":
            return
        await self.store.write_block_status(block.id, "active")
        logger.info(f"Block {block.id} '{block.activity}' is now active")

    async def _auto_resolve(self, block: TimeBlock) -> None:
        # Stamped with the deadline, not the tick time, so a late tick
        # writes the same record.
        record = self._history_record(block, auto_resolve_at(block, self.settings), "overtime")

        appended = await self.store.append_history(record)
        if not appended:
            current = self.find_block(block.id)
            if current is None or current.is_terminal:
                logger.info(f"Block {block.id} already resolved, auto-resolve discarded")
                return
            logger.warning(f"Block {block.id} already has history, only updating status")

        await self.store.write_block_status(block.id, "overtimed")
        logger.info(f"Block {block.id} '{block.activity}' auto-resolved as overtime")
        await self._clear_reminder(block.id)

    async def _remind(self, block: TimeBlock) -> None:
        try:
            claimed = await self.store.claim_reminder(block.id)
        except StoreWriteError as e:
            logger.error(f"Could not record reminder for block {block.id}: {e}")
            self._reminded.discard(block.id)
            return

        if not claimed:
            logger.debug(f"Reminder for block {block.id} already sent")
            return

        upcoming = next_block(block, self._blocks)
        logger.info(f"Reminder for block {block.id} '{block.activity}'")

        for callback in list(self._reminder_callbacks):
            try:
                await callback(block, upcoming)
            except Exception as e:
                logger.error(f"Reminder callback failed for block {block.id}: {e}")

    async def _clear_reminder(self, block_id: int) -> None:
        try:
            await self.store.clear_reminder(block_id)
        except StoreWriteError as e:
            logger.error(f"Could not clear reminder marker for block {block_id}: {e}")
        self._reminded.discard(block_id)

    def _history_record(
        self, block: TimeBlock, actual_end: datetime, outcome: Outcome
    ) -> HistoryRecord:
        start, _ = block_window(block)
        return HistoryRecord(
            block_id=block.id,  # type: ignore
            user_id=block.user_id,
            activity=block.activity,
            scheduled_start=block.start_time,
            scheduled_end=block.end_time,
            actual_end=actual_end,
            outcome=outcome,
            duration_minutes=max(0, minutes_between(start, actual_end)),
        )

    # User command

    async def finish_block(self, block_id: int, now: datetime) -> FinishResult | None:
        """Finish a block on the user's request.

        History is appended first; the status write is attempted even if
        that fails so the block doesn't keep demanding attention. Store
        failures are reported on the result, never raised. Not retried.

        Returns:
            FinishResult, or None if the block is unknown or already finished
        """
        block = self.find_block(block_id)
        if block is None:
            logger.warning(f"Finish requested for unknown block {block_id}")
            return None
        if block.is_terminal:
            logger.info(f"Finish requested for block {block_id} already {block.status}")
            return None
        if block_id in self._finishing:
            logger.info(f"Finish already in progress for block {block_id}")
            return None

        self._finishing.add(block_id)
        try:
            now = truncate_to_second(now)
            outcome = classify_finish(block, now, self.settings)
            record = self._history_record(block, now, outcome)
            result = FinishResult(block=block, outcome=outcome, record=record)

            try:
                result.history_appended = await self.store.append_history(record)
                if not result.history_appended:
                    logger.warning(f"Block {block_id} already has history, not appending")
            except StoreWriteError as e:
                logger.error(f"History append failed for block {block_id}: {e}")
                result.errors.append(str(e))

            status = "completed" if outcome == "on-time" else "overtimed"
            try:
                await self.store.write_block_status(block_id, status)
                result.status_written = True
            except NotFoundError as e:
                logger.warning(f"Block {block_id} vanished before status update: {e}")
                result.errors.append(str(e))
            except StoreWriteError as e:
                logger.error(f"Status update failed for block {block_id}: {e}")
                result.errors.append(str(e))

            if result.status_written:
                await self._clear_reminder(block_id)
                logger.info(f"Block {block_id} '{block.activity}' finished {outcome}")

            return result
        finally:
            self._finishing.discard(block_id)

    async def drain(self) -> None:
        """Wait for every in-flight write to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
