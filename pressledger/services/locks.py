from __future__ import annotations

import asyncio
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from pressledger.core.errors import BusyError


class MaterialLocks:
    """
    In-process single-writer lock per material.

    Locks are created on demand and dropped once nobody holds a reference, so the registry
    only grows with the number of materials being written concurrently.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[UUID, asyncio.Lock] = weakref.WeakValueDictionary()

    def _get(self, material_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(material_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[material_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, material_id: UUID, *, timeout_sec: float) -> AsyncIterator[None]:
        lock = self._get(material_id)
        try:
            await asyncio.wait_for(lock.acquire(), timeout=timeout_sec)
        except asyncio.TimeoutError:
            raise BusyError(
                "material is being updated by another request, retry later",
                {"material_id": str(material_id), "timeout_sec": timeout_sec},
            ) from None
        try:
            yield
        finally:
            lock.release()


material_locks = MaterialLocks()
