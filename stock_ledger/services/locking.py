from __future__ import annotations

import asyncio
import weakref
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Hashable, Iterable, List


def _sort_key(key: Hashable) -> tuple:
    if isinstance(key, tuple):
        return tuple(str(part) for part in key)
    return (str(key),)


@dataclass
class _Slot:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    # holders plus waiters; the slot leaves the table when this drops to 0
    users: int = 0


class KeyLockManager:
    """
    In-process per-key mutexes for balance writes.

    Keys are always acquired in sorted order, so two writers touching
    overlapping key sets cannot deadlock. Each event loop gets its own lock
    table because asyncio locks are bound to the loop that first waits on them.
    A key is only in the table while some task holds or waits for it.
    """

    def __init__(self) -> None:
        self._tables: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Dict[Hashable, _Slot]]" = (
            weakref.WeakKeyDictionary()
        )

    def _table(self) -> Dict[Hashable, _Slot]:
        loop = asyncio.get_running_loop()
        table = self._tables.get(loop)
        if table is None:
            table = {}
            self._tables[loop] = table
        return table

    def _checkout(self, key: Hashable) -> _Slot:
        table = self._table()
        slot = table.get(key)
        if slot is None:
            slot = table[key] = _Slot()
        slot.users += 1
        return slot

    def _checkin(self, key: Hashable, slot: _Slot) -> None:
        slot.users -= 1
        table = self._table()
        if slot.users == 0 and table.get(key) is slot:
            del table[key]

    # PUBLIC_INTERFACE
    @asynccontextmanager
    async def hold(self, keys: Iterable[Hashable], timeout: float) -> AsyncIterator[None]:
        """
        Acquire the locks for all `keys` (sorted, deduplicated) and release
        them on exit. Raises asyncio.TimeoutError when any single lock is not
        obtained within `timeout` seconds; locks already taken are released.
        """
        ordered = sorted(set(keys), key=_sort_key)
        checked_out: List[tuple] = []
        acquired: List[asyncio.Lock] = []
        try:
            for key in ordered:
                slot = self._checkout(key)
                checked_out.append((key, slot))
                await asyncio.wait_for(slot.lock.acquire(), timeout)
                acquired.append(slot.lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key, slot in reversed(checked_out):
                self._checkin(key, slot)

    def is_locked(self, key: Hashable) -> bool:
        slot = self._table().get(key)
        return slot is not None and slot.lock.locked()

    def tracked_keys(self) -> int:
        """Keys currently held or awaited on this loop."""
        return len(self._table())


# Singleton instance
balance_locks = KeyLockManager()
