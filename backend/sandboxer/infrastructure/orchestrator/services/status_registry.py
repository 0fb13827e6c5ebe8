"""
Status Registry - Concurrent store of provisioning job records

Writers (the orchestrator and the reconciler) serialize per key; readers
never wait on a writer and always receive a private copy of the record.
"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, List, Optional

import structlog

from sandboxer.core.exceptions import DuplicateRecord, RecordNotFound
from sandboxer.domain.containers.entities import ContainerRecord

logger = structlog.get_logger(__name__)


RecordMutator = Callable[[ContainerRecord], None]
RecordPredicate = Callable[[ContainerRecord], bool]


class StatusRegistry(ABC):
    """Keyed store of ContainerRecords, one per short ID."""

    @abstractmethod
    async def put(self, short_id: str, record: ContainerRecord) -> None:
        """Insert a new record. Raises DuplicateRecord if one exists."""

    @abstractmethod
    async def get(self, short_id: str) -> ContainerRecord:
        """Return a copy of a record. Raises RecordNotFound if absent."""

    @abstractmethod
    async def update(self, short_id: str, mutator: RecordMutator) -> ContainerRecord:
        """Atomically apply ``mutator`` to a record and return the result."""

    @abstractmethod
    async def delete(
        self,
        short_id: str,
        predicate: Optional[RecordPredicate] = None,
    ) -> bool:
        """Remove a record, optionally only if ``predicate`` holds."""

    @abstractmethod
    async def snapshot(self) -> List[ContainerRecord]:
        """Copies of all current records."""


class InMemoryStatusRegistry(StatusRegistry):
    """
    Process-local registry.

    Records are replaced, never mutated in place, so a reader that skips
    the lock sees either the old or the new version of a record.
    """

    def __init__(self):
        self._records: Dict[str, ContainerRecord] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def _locked(self, short_id: str) -> AsyncIterator[None]:
        """
        Hold the write lock for a key.

        A key's lock is dropped only once its record is gone and no writer
        holds or waits on it, so every writer of a key shares one lock.
        """
        lock = self._locks.get(short_id)
        if lock is None:
            lock = self._locks[short_id] = asyncio.Lock()
        self._lock_users[short_id] = self._lock_users.get(short_id, 0) + 1

        try:
            async with lock:
                yield
        finally:
            self._lock_users[short_id] -= 1
            if not self._lock_users[short_id]:
                del self._lock_users[short_id]
                if short_id not in self._records:
                    self._locks.pop(short_id, None)

    async def put(self, short_id: str, record: ContainerRecord) -> None:
        async with self._locked(short_id):
            if short_id in self._records:
                raise DuplicateRecord(f"record {short_id} already exists")
            self._records[short_id] = record.copy()

    async def get(self, short_id: str) -> ContainerRecord:
        record = self._records.get(short_id)
        if record is None:
            raise RecordNotFound(f"container {short_id} not found")
        return record.copy()

    async def update(self, short_id: str, mutator: RecordMutator) -> ContainerRecord:
        async with self._locked(short_id):
            current = self._records.get(short_id)
            if current is None:
                raise RecordNotFound(f"container {short_id} not found")

            updated = current.copy()
            mutator(updated)
            self._records[short_id] = updated
            return updated.copy()

    async def delete(
        self,
        short_id: str,
        predicate: Optional[RecordPredicate] = None,
    ) -> bool:
        async with self._locked(short_id):
            current = self._records.get(short_id)
            if current is None:
                return False
            if predicate is not None and not predicate(current):
                return False
            del self._records[short_id]
            return True

    async def snapshot(self) -> List[ContainerRecord]:
        return [record.copy() for record in list(self._records.values())]

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, short_id: object) -> bool:
        return short_id in self._records
