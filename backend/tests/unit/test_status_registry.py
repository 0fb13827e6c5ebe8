"""
Unit tests for the in-memory status registry.
"""

import asyncio

import pytest

from sandboxer.core.exceptions import DuplicateRecord, RecordNotFound
from sandboxer.domain.containers.entities import ContainerRecord, ContainerState


class TestInMemoryStatusRegistry:
    """Test keyed record storage."""

    async def test_put_and_get(self, status_registry):
        """Test a stored record can be read back."""
        await status_registry.put("abc123def456", ContainerRecord(short_id="abc123def456"))

        record = await status_registry.get("abc123def456")

        assert record.short_id == "abc123def456"
        assert "abc123def456" in status_registry
        assert len(status_registry) == 1

    async def test_put_duplicate(self, status_registry):
        """Test a short ID cannot be stored twice."""
        await status_registry.put("abc123def456", ContainerRecord(short_id="abc123def456"))

        with pytest.raises(DuplicateRecord):
            await status_registry.put("abc123def456", ContainerRecord(short_id="abc123def456"))

    async def test_get_missing(self, status_registry):
        """Test reading an unknown ID."""
        with pytest.raises(RecordNotFound):
            await status_registry.get("000000000000")

    async def test_get_returns_copy(self, status_registry, ready_record):
        """Test readers cannot mutate the stored record."""
        await status_registry.put(ready_record.short_id, ready_record)

        record = await status_registry.get(ready_record.short_id)
        record.message = "tampered"

        stored = await status_registry.get(ready_record.short_id)
        assert stored.message == "Container is ready"

    async def test_update_applies_mutator(self, status_registry):
        """Test update replaces the record with the mutated copy."""
        await status_registry.put("abc123def456", ContainerRecord(short_id="abc123def456"))

        updated = await status_registry.update(
            "abc123def456",
            lambda record: record.note_progress("Creating container"),
        )

        assert updated.message == "Creating container"
        assert (await status_registry.get("abc123def456")).message == "Creating container"

    async def test_update_missing(self, status_registry):
        """Test updating an unknown ID."""
        with pytest.raises(RecordNotFound):
            await status_registry.update("000000000000", lambda record: None)

    async def test_failed_mutator_leaves_record_unchanged(self, status_registry, ready_record):
        """Test a mutator that raises has no effect."""
        await status_registry.put(ready_record.short_id, ready_record)

        with pytest.raises(Exception):
            await status_registry.update(
                ready_record.short_id,
                lambda record: record.transition(ContainerState.FAILED, "late", error="boom"),
            )

        stored = await status_registry.get(ready_record.short_id)
        assert stored.state is ContainerState.READY
        assert stored.error is None

    async def test_concurrent_updates_serialize(self, status_registry):
        """Test interleaved writers never lose an update."""
        await status_registry.put("abc123def456", ContainerRecord(short_id="abc123def456"))

        async def append(n: int):
            await status_registry.update(
                "abc123def456",
                lambda record: record.note_progress(f"{record.message}|{n}"),
            )

        await asyncio.gather(*(append(n) for n in range(50)))

        record = await status_registry.get("abc123def456")
        assert len(record.message.split("|")) == 51

    async def test_delete(self, status_registry, ready_record):
        """Test unconditional delete."""
        await status_registry.put(ready_record.short_id, ready_record)

        assert await status_registry.delete(ready_record.short_id) is True
        assert await status_registry.delete(ready_record.short_id) is False
        assert ready_record.short_id not in status_registry

    async def test_delete_with_predicate(self, status_registry, failed_record):
        """Test a false predicate keeps the record."""
        await status_registry.put(failed_record.short_id, failed_record)

        deleted = await status_registry.delete(
            failed_record.short_id,
            predicate=lambda record: record.state is ContainerState.READY,
        )

        assert deleted is False
        assert failed_record.short_id in status_registry

    async def test_snapshot(self, status_registry, ready_record, failed_record):
        """Test snapshot returns every record."""
        await status_registry.put(ready_record.short_id, ready_record)
        await status_registry.put(failed_record.short_id, failed_record)

        records = await status_registry.snapshot()

        assert {r.short_id for r in records} == {ready_record.short_id, failed_record.short_id}

    async def test_delete_releases_key_lock(self, status_registry, ready_record):
        """Test no per-key lock is kept for a deleted record."""
        await status_registry.put(ready_record.short_id, ready_record)

        await status_registry.delete(ready_record.short_id)

        assert ready_record.short_id not in status_registry._locks

    async def test_waiting_writers_share_lock_across_delete(self, status_registry, ready_record):
        """Test writers queued behind a delete keep using the same lock."""
        short_id = ready_record.short_id
        await status_registry.put(short_id, ready_record)

        async with status_registry._locked(short_id):
            lock = status_registry._locks[short_id]
            deleter = asyncio.create_task(status_registry.delete(short_id))
            updater = asyncio.create_task(
                status_registry.update(short_id, lambda record: None)
            )
            putter = asyncio.create_task(
                status_registry.put(short_id, ContainerRecord(short_id=short_id))
            )
            await asyncio.sleep(0)

            # Every queued writer is waiting on the one lock
            assert status_registry._lock_users[short_id] == 4
            assert status_registry._locks[short_id] is lock

        assert await deleter is True
        with pytest.raises(RecordNotFound):
            await updater
        await putter

        record = await status_registry.get(short_id)
        assert record.state is ContainerState.INITIALIZING
        assert status_registry._locks[short_id] is lock
        assert short_id not in status_registry._lock_users
