"""Schedule store - per-user blocks and history with change notifications."""

import logging
from datetime import date
from typing import Callable, List

import aiosqlite

from daytracker.db.models import BlockStatus, HistoryRecord, TimeBlock
from daytracker.db.repository import Repository
from daytracker.errors import FormatError, NotFoundError, StoreWriteError
from daytracker.utils.constants import MAX_ACTIVITY_LENGTH, MAX_BLOCKS_PER_DAY
from daytracker.utils.time_utils import local_now, normalize_wall_clock, validate_block_times

logger = logging.getLogger(__name__)

BlocksCallback = Callable[[List[TimeBlock]], None]
HistoryCallback = Callable[[List[HistoryRecord]], None]


class ScheduleStore:
    """One user's schedule, pushed to subscribers on every change.

    Subscribers always receive the full current set, never a delta.
    """

    def __init__(
        self,
        repo: Repository,
        user_id: int,
        today: Callable[[], date] | None = None,
    ):
        self.repo = repo
        self.user_id = user_id
        self._today = today or (lambda: local_now().date())
        self._block_subscribers: list[BlocksCallback] = []
        self._history_subscribers: list[HistoryCallback] = []

    # Subscriptions

    def subscribe_blocks(self, callback: BlocksCallback) -> Callable[[], None]:
        """Register for block-set pushes. Returns an unsubscribe function."""
        self._block_subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._block_subscribers:
                self._block_subscribers.remove(callback)

        return unsubscribe

    def subscribe_history(self, callback: HistoryCallback) -> Callable[[], None]:
        """Register for history pushes. Returns an unsubscribe function."""
        self._history_subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._history_subscribers:
                self._history_subscribers.remove(callback)

        return unsubscribe

    async def refresh(self) -> List[TimeBlock]:
        """Load the tracked blocks and push them to all block subscribers."""
        blocks = await self.list_tracked_blocks()
        for callback in list(self._block_subscribers):
            try:
                callback(blocks)
            except Exception as e:
                logger.error(f"Block subscriber failed for user {self.user_id}: {e}")
        return blocks

    async def _publish_history(self) -> None:
        if not self._history_subscribers:
            return
        records = await self.list_history()
        for callback in list(self._history_subscribers):
            try:
                callback(records)
            except Exception as e:
                logger.error(f"History subscriber failed for user {self.user_id}: {e}")

    # Reads

    async def list_blocks(self, day: date | None = None) -> List[TimeBlock]:
        """Get the user's blocks for a day (today by default)."""
        return await self.repo.get_blocks_for_day(self.user_id, day or self._today())

    async def list_tracked_blocks(self) -> List[TimeBlock]:
        """Today's blocks plus unfinished ones carried over from earlier days.

        A block that ends late in the evening is still in its grace or overdue
        window after midnight and must stay visible until it is resolved.
        """
        today = self._today()
        carried = await self.repo.get_unfinished_blocks_before(self.user_id, today)
        if carried:
            logger.debug(f"Carrying {len(carried)} unfinished blocks for user {self.user_id}")
        return carried + await self.repo.get_blocks_for_day(self.user_id, today)

    async def list_history(self, limit: int | None = None) -> List[HistoryRecord]:
        """Get the user's history, newest first."""
        return await self.repo.get_history(self.user_id, limit)

    # Writes

    async def add_block(
        self,
        activity: str,
        start_time: str,
        end_time: str,
        day: date | None = None,
    ) -> TimeBlock:
        """Validate and persist a new pending block.

        Raises:
            FormatError: if the activity is empty or too long, or the times
                are malformed or out of order.
        """
        activity = (activity or "").strip()
        if not activity:
            raise FormatError("Activity name cannot be empty")
        if len(activity) > MAX_ACTIVITY_LENGTH:
            raise FormatError(
                f"Activity name is too long (max {MAX_ACTIVITY_LENGTH} characters)"
            )

        validate_block_times(start_time, end_time)
        day = day or self._today()

        count = await self.repo.count_blocks_for_day(self.user_id, day)
        if count >= MAX_BLOCKS_PER_DAY:
            raise FormatError(f"You can schedule at most {MAX_BLOCKS_PER_DAY} blocks a day")

        block = TimeBlock(
            user_id=self.user_id,
            activity=activity,
            start_time=normalize_wall_clock(start_time),
            end_time=normalize_wall_clock(end_time),
            day=day,
            status="pending",
        )

        try:
            created = await self.repo.create_block(block)
        except aiosqlite.Error as e:
            raise StoreWriteError(f"Could not save block '{activity}': {e}") from e

        logger.info(
            f"Added block {created.id} '{created.activity}' "
            f"{created.start_time}-{created.end_time} for user {self.user_id}"
        )
        await self.refresh()
        return created

    async def write_block_status(self, block_id: int, status: BlockStatus) -> None:
        """Persist a block's status.

        Raises:
            NotFoundError: if the block no longer exists
            StoreWriteError: if the write fails
        """
        try:
            updated = await self.repo.update_block_status(block_id, status)
        except aiosqlite.Error as e:
            raise StoreWriteError(f"Could not set block {block_id} to {status}: {e}") from e

        if not updated:
            raise NotFoundError(f"Block {block_id} not found")

        await self.refresh()

    async def append_history(self, record: HistoryRecord) -> bool:
        """Append a history record.

        Returns:
            False if the block already has a history record

        Raises:
            StoreWriteError: if the write fails
        """
        try:
            inserted = await self.repo.insert_history(record)
        except aiosqlite.Error as e:
            raise StoreWriteError(
                f"Could not append history for block {record.block_id}: {e}"
            ) from e

        if inserted:
            await self._publish_history()
        return inserted

    async def claim_reminder(self, block_id: int) -> bool:
        """Atomically set the reminder marker. True if this call set it."""
        try:
            return await self.repo.claim_reminder(block_id)
        except aiosqlite.Error as e:
            raise StoreWriteError(f"Could not mark reminder for block {block_id}: {e}") from e

    async def clear_reminder(self, block_id: int) -> None:
        """Remove the reminder marker for a block."""
        try:
            await self.repo.clear_reminder(block_id)
        except aiosqlite.Error as e:
            raise StoreWriteError(f"Could not clear reminder for block {block_id}: {e}") from e
