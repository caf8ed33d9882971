"""
Single-tenant admission control.

One slot, guarded by an asyncio.Lock. The lock is only held while the slot
is read or written, never across stream I/O.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional


class AdmissionBusy(Exception):
    """Raised when the slot is already held by another connection."""
    pass


class Lease:
    """Proof of holding the slot. `session` is filled in once the handshake is done."""

    __slots__ = ("owner", "session", "released")

    def __init__(self, owner: Any):
        self.owner = owner
        self.session: Optional[Any] = None
        self.released = False


class AdmissionControl:

    __slots__ = ("_lock", "_lease")

    def __init__(self):
        self._lock = asyncio.Lock()
        self._lease: Optional[Lease] = None

    @property
    def occupied(self) -> bool:
        return self._lease is not None

    @property
    def active_session(self) -> Optional[Any]:
        lease = self._lease
        return lease.session if lease is not None else None

    async def try_acquire(self, owner: Any) -> Lease:
        async with self._lock:
            if self._lease is not None:
                raise AdmissionBusy("Another client is already connected")
            lease = Lease(owner)
            self._lease = lease
            return lease

    async def attach(self, lease: Lease, session: Any) -> None:
        async with self._lock:
            if self._lease is not lease:
                raise RuntimeError("Lease does not hold the admission slot")
            lease.session = session

    async def release(self, lease: Lease) -> None:
        """Idempotent; a stale lease never clears a newer holder."""
        async with self._lock:
            if lease.released:
                return
            lease.released = True
            lease.session = None
            if self._lease is lease:
                self._lease = None

    async def reset(self) -> None:
        async with self._lock:
            if self._lease is not None:
                self._lease.released = True
                self._lease.session = None
            self._lease = None

    @asynccontextmanager
    async def acquire(self, owner: Any) -> AsyncIterator[Lease]:
        """Hold the slot for the body of the `async with`, whatever way it exits."""
        lease = await self.try_acquire(owner)
        try:
            yield lease
        finally:
            await self.release(lease)
