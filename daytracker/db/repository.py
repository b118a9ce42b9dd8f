"""Database repository - all SQL queries."""

import logging
from datetime import date, datetime
from pathlib import Path
from typing import List

import aiosqlite

from daytracker.db.models import BlockStatus, HistoryRecord, Profile, TimeBlock

logger = logging.getLogger(__name__)


class Repository:
    """Database access layer."""

    def __init__(self, db_path: Path | str):
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Open database connection."""
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        logger.info(f"Connected to database at {self.db_path}")

    async def close(self) -> None:
        """Close database connection."""
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Database connection closed")

    @property
    def db(self) -> aiosqlite.Connection:
        """Get the database connection."""
        if self._db is None:
            raise RuntimeError("Database not connected")
        return self._db

    # Profile operations

    async def get_profile_by_telegram_id(self, telegram_id: int) -> Profile | None:
        """Get profile by Telegram ID."""
        async with self.db.execute(
            "SELECT * FROM profiles WHERE telegram_id = ?", (telegram_id,)
        ) as cursor:
            row = await cursor.fetchone()
            if row:
                return self._row_to_profile(row)
            return None

    async def get_all_profiles(self) -> List[Profile]:
        """Get every profile (startup recovery)."""
        async with self.db.execute("SELECT * FROM profiles ORDER BY id") as cursor:
            rows = await cursor.fetchall()
            return [self._row_to_profile(row) for row in rows]

    async def create_profile(self, profile: Profile) -> Profile:
        """Create a new profile."""
        async with self.db.execute(
            """
            INSERT INTO profiles (telegram_id, name, nickname, birthday)
            VALUES (?, ?, ?, ?)
            RETURNING *
            """,
            (profile.telegram_id, profile.name, profile.nickname, profile.birthday),
        ) as cursor:
            row = await cursor.fetchone()
            await self.db.commit()

            logger.info(f"Created profile for {profile.telegram_id}")
            return self._row_to_profile(row)

    # Block operations

    async def create_block(self, block: TimeBlock) -> TimeBlock:
        """Create a new time block."""
        async with self.db.execute(
            """
            INSERT INTO blocks (user_id, activity, start_time, end_time, day, status)
            VALUES (?, ?, ?, ?, ?, ?)
            RETURNING *
            """,
            (
                block.user_id,
                block.activity,
                block.start_time,
                block.end_time,
                block.day.isoformat(),
                block.status,
            ),
        ) as cursor:
            row = await cursor.fetchone()
            await self.db.commit()
            return self._row_to_block(row)

    async def get_block(self, block_id: int) -> TimeBlock | None:
        """Get a block by ID."""
        async with self.db.execute(
            "SELECT * FROM blocks WHERE id = ?", (block_id,)
        ) as cursor:
            row = await cursor.fetchone()
            if row:
                return self._row_to_block(row)
            return None

    async def get_blocks_for_day(self, user_id: int, day: date) -> List[TimeBlock]:
        """Get a user's blocks for one day, ordered by start time."""
        async with self.db.execute(
            """
            SELECT * FROM blocks
            WHERE user_id = ? AND day = ?
            ORDER BY start_time, id
            """,
            (user_id, day.isoformat()),
        ) as cursor:
            rows = await cursor.fetchall()
            return [self._row_to_block(row) for row in rows]

    async def get_unfinished_blocks_before(self, user_id: int, day: date) -> List[TimeBlock]:
        """Get a user's pending or active blocks from days before ``day``."""
        async with self.db.execute(
            """
            SELECT * FROM blocks
            WHERE user_id = ? AND day < ? AND status IN ('pending', 'active')
            ORDER BY day, start_time, id
            """,
            (user_id, day.isoformat()),
        ) as cursor:
            rows = await cursor.fetchall()
            return [self._row_to_block(row) for row in rows]

    async def count_blocks_for_day(self, user_id: int, day: date) -> int:
        """Count a user's blocks for one day."""
        async with self.db.execute(
            "SELECT COUNT(*) FROM blocks WHERE user_id = ? AND day = ?",
            (user_id, day.isoformat()),
        ) as cursor:
            row = await cursor.fetchone()
            return row[0]

    async def update_block_status(self, block_id: int, status: BlockStatus) -> bool:
        """Set a block's status. Returns False if the block doesn't exist."""
        cursor = await self.db.execute(
            """
            UPDATE blocks SET
                status = ?,
                updated_at = datetime('now', 'localtime')
            WHERE id = ?
            """,
            (status, block_id),
        )
        await self.db.commit()
        return cursor.rowcount == 1

    # History operations

    async def insert_history(self, record: HistoryRecord) -> bool:
        """Append a history record.

        Returns:
            False if the block already has a record (nothing written)
        """
        cursor = await self.db.execute(
            """
            INSERT OR IGNORE INTO history (
                block_id, user_id, activity, scheduled_start, scheduled_end,
                actual_end, outcome, duration_minutes
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.block_id,
                record.user_id,
                record.activity,
                record.scheduled_start,
                record.scheduled_end,
                record.actual_end.isoformat(),
                record.outcome,
                record.duration_minutes,
            ),
        )
        await self.db.commit()
        return cursor.rowcount == 1

    async def get_history(self, user_id: int, limit: int | None = None) -> List[HistoryRecord]:
        """Get a user's history, newest first."""
        query = "SELECT * FROM history WHERE user_id = ? ORDER BY actual_end DESC, id DESC"
        params: tuple = (user_id,)
        if limit is not None:
            query += " LIMIT ?"
            params = (user_id, limit)

        async with self.db.execute(query, params) as cursor:
            rows = await cursor.fetchall()
            return [self._row_to_history(row) for row in rows]

    async def get_history_for_block(self, block_id: int) -> HistoryRecord | None:
        """Get the history record for a block, if it was finished."""
        async with self.db.execute(
            "SELECT * FROM history WHERE block_id = ?", (block_id,)
        ) as cursor:
            row = await cursor.fetchone()
            if row:
                return self._row_to_history(row)
            return None

    # Reminder marker operations

    async def claim_reminder(self, block_id: int) -> bool:
        """Set the reminder marker for a block.

        Returns:
            True only if this call created the marker
        """
        cursor = await self.db.execute(
            "INSERT OR IGNORE INTO block_markers (block_id) VALUES (?)",
            (block_id,),
        )
        await self.db.commit()
        return cursor.rowcount == 1

    async def clear_reminder(self, block_id: int) -> None:
        """Remove the reminder marker for a block."""
        await self.db.execute("DELETE FROM block_markers WHERE block_id = ?", (block_id,))
        await self.db.commit()

    async def has_reminder(self, block_id: int) -> bool:
        """Check whether a reminder was already sent for a block."""
        async with self.db.execute(
            "SELECT 1 FROM block_markers WHERE block_id = ?", (block_id,)
        ) as cursor:
            return await cursor.fetchone() is not None

    # Helper methods

    def _row_to_profile(self, row: aiosqlite.Row) -> Profile:
        """Convert a database row to a Profile object."""
        return Profile(
            id=row["id"],
            telegram_id=row["telegram_id"],
            name=row["name"],
            nickname=row["nickname"],
            birthday=row["birthday"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def _row_to_block(self, row: aiosqlite.Row) -> TimeBlock:
        """Convert a database row to a TimeBlock object."""
        return TimeBlock(
            id=row["id"],
            user_id=row["user_id"],
            activity=row["activity"],
            start_time=row["start_time"],
            end_time=row["end_time"],
            day=date.fromisoformat(row["day"]),
            status=row["status"],  # type: ignore
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def _row_to_history(self, row: aiosqlite.Row) -> HistoryRecord:
        """Convert a database row to a HistoryRecord object."""
        return HistoryRecord(
            id=row["id"],
            block_id=row["block_id"],
            user_id=row["user_id"],
            activity=row["activity"],
            scheduled_start=row["scheduled_start"],
            scheduled_end=row["scheduled_end"],
            actual_end=datetime.fromisoformat(row["actual_end"]),
            outcome=row["outcome"],  # type: ignore
            duration_minutes=row["duration_minutes"],
        )
