"""Tests for the timing engine."""

import asyncio
from dataclasses import replace
from datetime import date, datetime
from typing import List

from daytracker.db.models import HistoryRecord, TimeBlock
from daytracker.engine.timing import AttentionState, TimingSettings
from daytracker.engine.timing_engine import TimingEngine
from daytracker.errors import NotFoundError, StoreWriteError

DAY = date(2026, 3, 2)


def at(hour: int, minute: int, second: int = 0) -> datetime:
    return datetime(2026, 3, 2, hour, minute, second)


def make_block(block_id: int, start: str, end: str, status: str = "active") -> TimeBlock:
    return TimeBlock(
        id=block_id,
        user_id=1,
        activity=f"Task {block_id}",
        start_time=start,
        end_time=end,
        day=DAY,
        status=status,  # type: ignore
    )


class FakeStore:
    """In-memory store with the same contract as ScheduleStore."""

    def __init__(self, blocks: List[TimeBlock]):
        self.user_id = 1
        self.blocks = {b.id: b for b in blocks}
        self.history: List[HistoryRecord] = []
        self.markers: set[int] = set()
        self.status_writes: list[tuple[int, str]] = []
        self.fail_history = False
        self.fail_status = False
        self.fail_claim = False
        self._subscribers = []

    def subscribe_blocks(self, callback):
        self._subscribers.append(callback)
        return lambda: self._subscribers.remove(callback)

    async def refresh(self):
        blocks = [replace(b) for b in sorted(self.blocks.values(), key=lambda b: b.start_time)]
        for callback in list(self._subscribers):
            callback(blocks)
        return blocks

    async def append_history(self, record: HistoryRecord) -> bool:
        await asyncio.sleep(0)
        if self.fail_history:
            raise StoreWriteError("history unavailable")
        if any(r.block_id == record.block_id for r in self.history):
            return False
        self.history.append(record)
        return True

    async def write_block_status(self, block_id: int, status: str) -> None:
        await asyncio.sleep(0)
        if self.fail_status:
            raise StoreWriteError("status unavailable")
        if block_id not in self.blocks:
            raise NotFoundError(f"Block {block_id} not found")
        self.blocks[block_id] = replace(self.blocks[block_id], status=status)
        self.status_writes.append((block_id, status))
        await self.refresh()

    async def claim_reminder(self, block_id: int) -> bool:
        if self.fail_claim:
            raise StoreWriteError("markers unavailable")
        if block_id in self.markers:
            return False
        self.markers.add(block_id)
        return True

    async def clear_reminder(self, block_id: int) -> None:
        self.markers.discard(block_id)


async def start_engine(store: FakeStore, settings: TimingSettings | None = None) -> TimingEngine:
    engine = TimingEngine(store, settings)  # type: ignore
    await engine.start()
    return engine


def test_engine_tracks_store_pushes():
    """Each push replaces the engine's view."""

    async def scenario():
        store = FakeStore([make_block(1, "09:00", "10:00")])
        engine = await start_engine(store)
        assert [b.id for b in engine.blocks] == [1]

        store.blocks[2] = make_block(2, "10:00", "11:00")
        await store.refresh()
        assert [b.id for b in engine.blocks] == [1, 2]

        snapshot = engine.get_attention_state(at(10, 30))
        assert snapshot.block.id == 2
        assert snapshot.attention_state is AttentionState.RUNNING

    asyncio.run(scenario())


def test_pending_block_becomes_active():
    """A pending block is marked active once it starts."""

    async def scenario():
        store = FakeStore([make_block(1, "09:00", "10:00", status="pending")])
        engine = await start_engine(store)

        engine.tick(at(8, 59, 59))
        await engine.drain()
        assert store.status_writes == []

        engine.tick(at(9, 0))
        await engine.drain()
        assert store.status_writes == [(1, "active")]

        engine.tick(at(9, 0, 1))
        await engine.drain()
        assert store.status_writes == [(1, "active")]

    asyncio.run(scenario())


def test_reminder_fires_exactly_once():
    """The reminder fires at the end time and never again."""

    async def scenario():
        store = FakeStore([make_block(1, "09:00", "10:00"), make_block(2, "10:30", "11:00")])
        engine = await start_engine(store)

        fired = []

        async def on_reminder(block, upcoming):
            fired.append((block.id, upcoming.id if upcoming else None))

        engine.on_reminder(on_reminder)

        counts = []
        for now in [at(9, 59, 59), at(10, 0, 0), at(10, 0, 1), at(10, 5, 0)]:
            engine.tick(now)
            await engine.drain()
            counts.append(len(fired))

        assert counts == [0, 1, 1, 1]
        assert fired == [(1, 2)]
        assert 1 in store.markers

    asyncio.run(scenario())


def test_reminder_not_repeated_after_restart():
    """A fresh engine over the same store doesn't notify again."""

    async def scenario():
        store = FakeStore([make_block(1, "09:00", "10:00")])
        first = await start_engine(store)
        fired = []

        async def on_reminder(block, upcoming):
            fired.append(block.id)

        first.on_reminder(on_reminder)
        first.tick(at(10, 0))
        await first.drain()
        first.close()

        second = await start_engine(store)
        second.on_reminder(on_reminder)
        second.tick(at(10, 0, 30))
        await second.drain()

        assert fired == [1]

    asyncio.run(scenario())


def test_reminder_callback_error_is_contained():
    """A failing reminder callback doesn't stop the others."""

    async def scenario():
        store = FakeStore([make_block(1, "09:00", "10:00")])
        engine = await start_engine(store)
        fired = []

        async def broken(block, upcoming):
            raise RuntimeError("telegram down")

        async def working(block, upcoming):
            fired.append(block.id)

        engine.on_reminder(broken)
        engine.on_reminder(working)

        engine.tick(at(10, 0))
        await engine.drain()

        assert fired == [1]

    asyncio.run(scenario())


def test_reminder_retried_after_failed_claim():
    """A failed marker write is retried on the next tick in the window."""

    async def scenario():
        store = FakeStore([make_block(1, "09:00", "10:00")])
        engine = await start_engine(store)
        fired = []

        async def on_reminder(block, upcoming):
            fired.append(block.id)

        engine.on_reminder(on_reminder)
        store.fail_claim = True

        engine.tick(at(10, 0, 0))
        await engine.drain()
        assert fired == []
        assert store.markers == set()

        store.fail_claim = False
        for now in [at(10, 0, 1), at(10, 0, 2), at(10, 0, 30)]:
            engine.tick(now)
            await engine.drain()

        assert fired == [1]
        assert store.markers == {1}

    asyncio.run(scenario())


def test_finish_on_time_within_grace():
    """Finishing before end + grace is on time."""

    async def scenario():
        store = FakeStore([make_block(1, "09:00", "10:00")])
        engine = await start_engine(store)
        store.markers.add(1)

        result = await engine.finish_block(1, at(10, 14, 59))

        assert result.ok
        assert result.outcome == "on-time"
        assert result.status_written
        assert store.blocks[1].status == "completed"
        assert len(store.history) == 1
        record = store.history[0]
        assert record.outcome == "on-time"
        assert record.actual_end == at(10, 14, 59)
        assert record.scheduled_start == "09:00"
        assert record.scheduled_end == "10:00"
        assert record.duration_minutes == 74
        # Reminder marker is cleared on finish
        assert 1 not in store.markers

    asyncio.run(scenario())


def test_finish_after_grace_is_overtime():
    async def scenario():
        store = FakeStore([make_block(1, "09:00", "10:00")])
        engine = await start_engine(store)

        result = await engine.finish_block(1, at(10, 15, 1))

        assert result.outcome == "overtime"
        assert store.blocks[1].status == "overtimed"
        assert store.history[0].outcome == "overtime"

    asyncio.run(scenario())


def test_finish_unknown_or_finished_block_is_noop():
    """Unknown ids and terminal blocks are ignored."""

    async def scenario():
        store = FakeStore([make_block(1, "09:00", "10:00", status="completed")])
        engine = await start_engine(store)

        assert await engine.finish_block(99, at(10, 0)) is None
        assert await engine.finish_block(1, at(10, 0)) is None
        assert store.history == []
        assert store.status_writes == []

    asyncio.run(scenario())


def test_finish_still_updates_status_when_history_fails():
    """A failed history append doesn't leave the block stuck."""

    async def scenario():
        store = FakeStore([make_block(1, "09:00", "10:00")])
        engine = await start_engine(store)
        store.fail_history = True

        result = await engine.finish_block(1, at(10, 5))

        assert not result.ok
        assert not result.history_appended
        assert result.status_written
        assert store.blocks[1].status == "completed"
        assert store.history == []

    asyncio.run(scenario())


def test_finish_status_failure_can_be_retried():
    """A failed status write is reported; retrying doesn't duplicate history."""

    async def scenario():
        store = FakeStore([make_block(1, "09:00", "10:00")])
        engine = await start_engine(store)
        store.fail_status = True

        result = await engine.finish_block(1, at(10, 5))

        assert result.history_appended
        assert not result.status_written
        assert store.blocks[1].status == "active"

        store.fail_status = False
        retry = await engine.finish_block(1, at(10, 6))

        assert retry.status_written
        assert not retry.history_appended
        assert len(store.history) == 1
        assert store.blocks[1].status == "completed"

    asyncio.run(scenario())


def test_auto_resolve_once_with_deterministic_end():
    """An unattended block is resolved as overtime exactly once."""

    async def scenario():
        store = FakeStore([make_block(1, "09:00", "10:00")])
        engine = await start_engine(store)

        engine.tick(at(10, 19, 59))
        await engine.drain()
        assert store.history == []

        for now in [at(10, 20, 0), at(10, 20, 1), at(10, 20, 2), at(10, 45)]:
            engine.tick(now)
            await engine.drain()

        assert store.blocks[1].status == "overtimed"
        assert len(store.history) == 1
        record = store.history[0]
        assert record.outcome == "overtime"
        assert record.actual_end == at(10, 20)
        assert record.duration_minutes == 80
        assert store.status_writes == [(1, "overtimed")]

    asyncio.run(scenario())


def test_auto_resolve_uses_deadline_when_tick_is_late():
    async def scenario():
        store = FakeStore([make_block(1, "09:00", "10:00")])
        engine = await start_engine(store)

        engine.tick(datetime(2026, 3, 2, 11, 3, 27, 500000))
        await engine.drain()

        assert store.history[0].actual_end == at(10, 20)

    asyncio.run(scenario())


def test_auto_resolve_retries_after_store_failure():
    """A failed auto-resolve is retried on the next tick."""

    async def scenario():
        store = FakeStore([make_block(1, "09:00", "10:00")])
        engine = await start_engine(store)
        store.fail_history = True

        engine.tick(at(10, 20))
        await engine.drain()
        assert store.history == []
        assert store.blocks[1].status == "active"

        store.fail_history = False
        engine.tick(at(10, 20, 1))
        await engine.drain()

        assert len(store.history) == 1
        assert store.history[0].actual_end == at(10, 20)
        assert store.blocks[1].status == "overtimed"

    asyncio.run(scenario())


def test_concurrent_finish_and_auto_resolve_write_one_record():
    """A manual finish racing the auto-resolve never duplicates history."""

    async def scenario():
        store = FakeStore([make_block(1, "09:00", "10:00")])
        engine = await start_engine(store)

        engine.tick(at(10, 20))
        await asyncio.gather(engine.finish_block(1, at(10, 20)), engine.drain())

        assert len(store.history) == 1
        assert store.blocks[1].status == "overtimed"

        engine.tick(at(10, 21))
        await engine.drain()
        assert len(store.history) == 1

    asyncio.run(scenario())


def test_tick_survives_bad_block():
    """One broken block doesn't stop the rest of the tick."""

    async def scenario():
        bad = make_block(1, "09:00", "10:00")
        bad.end_time = "nonsense"
        store = FakeStore([bad, make_block(2, "09:00", "10:00", status="pending")])
        engine = await start_engine(store)

        engine.tick(at(9, 30))
        await engine.drain()

        assert store.status_writes == [(2, "active")]

    asyncio.run(scenario())


def test_tick_skips_finished_blocks():
    async def scenario():
        store = FakeStore([make_block(1, "09:00", "10:00", status="overtimed")])
        engine = await start_engine(store)
        fired = []

        async def on_reminder(block, upcoming):
            fired.append(block.id)

        engine.on_reminder(on_reminder)
        engine.tick(at(10, 0))
        engine.tick(at(10, 30))
        await engine.drain()

        assert fired == []
        assert store.history == []

    asyncio.run(scenario())
