"""Multi-account session pool.

Pattern: Exclusive Lease Pool
------------------------------
PSN rate-limits per account, so throughput comes from spreading requests over
several accounts.  The pool holds one ``SessionManager`` per account and lends
each one to exactly one caller at a time:

  - ``acquire()`` suspends the calling task until a manager is free.  Other
    tasks keep running, including ones that are busy refreshing a token on
    a different manager.
  - ``release()`` puts the manager back.  It is synchronous so that it cannot
    be interrupted by cancellation; ``lease()`` calls it from ``finally``.

The free set is an ``asyncio.Queue``: its getters are woken in FIFO order and
a cancelled waiter hands its wake-up on to the next one, so nobody starves.
Managers that leave rotation while idle stay in the queue and are skipped
when they come up; ``_idle`` is the authoritative free set.

With ``max_size`` set, accounts beyond the limit are kept as backups and
only enter rotation when an active account is retired.  ``pause()`` holds
every new ``acquire()`` until ``resume()``; leases already granted are not
affected.  Authentication is lazy; constructing the pool makes no network
calls.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import itertools
import logging
from typing import AsyncIterator, Iterable

from psn_session_pool.auth.credential import AccountSeed, Clock, TokenState, utc_now
from psn_session_pool.auth.session_manager import SessionManager, TokenSnapshot
from psn_session_pool.auth.token_authenticator import TokenAuthenticator
from psn_session_pool.errors import PoolExhausted, PoolTimeout

logger = logging.getLogger(__name__)

# Placed in the free queue on close; every waiter that receives it puts it back.
_CLOSED = object()


@dataclasses.dataclass(eq=False)
class SessionHandle:
    """Exclusive loan of one ``SessionManager``."""

    manager: SessionManager
    lease_id: int
    released: bool = False


class SessionPool:
    """Lends out per-account ``SessionManager``s one caller at a time."""

    def __init__(
        self,
        seeds: Iterable[str | AccountSeed],
        authenticator: TokenAuthenticator,
        *,
        max_size: int | None = None,
        acquire_timeout: float | None = None,
        refresh_margin: float = 0,
        retire_failed: bool = False,
        clock: Clock = utc_now,
    ) -> None:
        if max_size is not None and max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._authenticator = authenticator
        self._max_size = max_size
        self._acquire_timeout = acquire_timeout
        self._refresh_margin = refresh_margin
        self._retire_failed = retire_failed
        self._clock = clock
        self._managers: list[SessionManager] = []
        self._backups: list[SessionManager] = []
        self._free: asyncio.Queue = asyncio.Queue()
        self._idle: set[SessionManager] = set()
        self._lent: dict[int, SessionHandle] = {}
        self._lease_ids = itertools.count(1)
        self._running = asyncio.Event()
        self._running.set()
        self._closed = False

        self.add(seeds)
        if not self._managers:
            raise ValueError("A session pool needs at least one account seed")
        logger.info(
            "Session pool created with %d active and %d backup account(s)",
            len(self._managers),
            len(self._backups),
        )

    # -- introspection -------------------------------------------------------

    @property
    def size(self) -> int:
        """Number of accounts in rotation."""
        return len(self._managers)

    @property
    def backups(self) -> int:
        return len(self._backups)

    @property
    def max_size(self) -> int | None:
        return self._max_size

    @property
    def available(self) -> int:
        """Number of managers currently free to be acquired."""
        if self._closed:
            return 0
        return len(self._idle)

    @property
    def outstanding(self) -> int:
        return len(self._lent)

    @property
    def paused(self) -> bool:
        return not self._running.is_set()

    @property
    def closed(self) -> bool:
        return self._closed

    def get_inner(self) -> list[TokenSnapshot]:
        """Current tokens of every account, backups included, so callers can persist them."""
        return [manager.snapshot() for manager in self._managers + self._backups]

    # -- membership ----------------------------------------------------------

    def add(self, seeds: Iterable[str | AccountSeed]) -> list[SessionManager]:
        """Create a manager per seed.

        A seed for an account the pool already knows replaces that account's
        manager.  New accounts go into rotation while the pool is below
        ``max_size`` and become backups otherwise.
        """
        if self._closed:
            raise PoolExhausted("Cannot add accounts to a closed session pool")
        added = []
        for seed in seeds:
            manager = SessionManager(
                seed,
                self._authenticator,
                clock=self._clock,
                refresh_margin=self._refresh_margin,
            )
            self._place(manager)
            added.append(manager)
        return added

    def set_max_size(self, max_size: int | None) -> None:
        """Change how many accounts are in rotation.

        Growing promotes backups straight away.  Shrinking demotes idle
        accounts now and lent ones as they are released.
        """
        if max_size is not None and max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._max_size = max_size
        self._promote_backups()
        for manager in reversed(list(self._managers)):
            if not self._over_capacity():
                break
            if manager in self._idle:
                self._demote(manager)
        logger.info("Session pool max size set to %s", max_size)

    def clear_backups(self) -> int:
        """Drop every backup account and return how many were dropped."""
        dropped = len(self._backups)
        self._backups.clear()
        logger.info("Cleared %d backup account(s)", dropped)
        return dropped

    # -- leasing -------------------------------------------------------------

    async def acquire(self) -> SessionHandle:
        """Wait for a free manager and lend it to the caller exclusively.

        Raises ``PoolExhausted`` if the pool is closed before or during the
        wait and ``PoolTimeout`` if ``acquire_timeout`` elapses first.
        """
        if self._closed:
            raise PoolExhausted("Session pool is closed")

        try:
            async with asyncio.timeout(self._acquire_timeout):
                manager = await self._next_free()
        except TimeoutError as exc:
            raise PoolTimeout(
                f"No session became free within {self._acquire_timeout}s"
            ) from exc

        handle = SessionHandle(manager=manager, lease_id=next(self._lease_ids))
        self._lent[handle.lease_id] = handle
        logger.debug("Lease %d granted session %s", handle.lease_id, manager.uuid)
        return handle

    def release(self, handle: SessionHandle, *, retire: bool = False) -> None:
        """Return *handle*'s manager to the pool.  Releasing twice is a no-op.

        With ``retire=True`` the manager is removed from rotation instead.
        """
        if handle.released:
            return
        if self._lent.get(handle.lease_id) is not handle:
            raise ValueError(f"Lease {handle.lease_id} does not belong to this pool")

        del self._lent[handle.lease_id]
        handle.released = True
        manager = handle.manager

        if manager not in self._managers:
            logger.debug("Lease %d returned replaced session %s", handle.lease_id, manager.uuid)
            return
        if retire or (self._retire_failed and manager.state is TokenState.FAILED):
            self._retire(manager)
            return
        if self._closed:
            return
        if self._over_capacity():
            self._demote(manager)
            return
        self._make_idle(manager)
        logger.debug("Lease %d returned session %s", handle.lease_id, manager.uuid)

    @contextlib.asynccontextmanager
    async def lease(self) -> AsyncIterator[SessionHandle]:
        """Acquire a handle for the duration of the ``async with`` block."""
        handle = await self.acquire()
        try:
            yield handle
        finally:
            self.release(handle)

    def pause(self) -> None:
        """Hold new acquisitions until ``resume()``."""
        self._running.clear()
        logger.info("Session pool paused")

    def resume(self) -> None:
        self._running.set()
        logger.info("Session pool resumed")

    def close(self) -> None:
        """Tear the pool down.  Current and future waiters get ``PoolExhausted``."""
        if self._closed:
            return
        self._closed = True
        self._idle.clear()
        while not self._free.empty():
            self._free.get_nowait()
        self._free.put_nowait(_CLOSED)
        self._running.set()
        logger.info("Session pool closed with %d lease(s) outstanding", len(self._lent))

    # -- private helpers -----------------------------------------------------

    async def _next_free(self) -> SessionManager:
        while True:
            await self._running.wait()
            item = await self._free.get()
            if item is _CLOSED:
                self._free.put_nowait(_CLOSED)
                raise PoolExhausted("Session pool was closed while waiting for a session")
            if item not in self._idle:
                continue
            if self.paused:
                # Paused while this waiter was queued; hand the manager on.
                self._free.put_nowait(item)
                continue
            self._idle.discard(item)
            return item

    def _place(self, manager: SessionManager) -> None:
        key = manager.account_key
        for index, existing in enumerate(self._backups):
            if existing.account_key == key:
                self._backups[index] = manager
                logger.info("Backup account %s replaced", existing.uuid)
                return
        for index, existing in enumerate(self._managers):
            if existing.account_key == key:
                self._managers[index] = manager
                self._idle.discard(existing)
                self._make_idle(manager)
                logger.info("Session %s replaced by %s", existing.uuid, manager.uuid)
                return
        if self._max_size is not None and len(self._managers) >= self._max_size:
            self._backups.append(manager)
            return
        self._managers.append(manager)
        self._make_idle(manager)

    def _make_idle(self, manager: SessionManager) -> None:
        self._idle.add(manager)
        self._free.put_nowait(manager)

    def _over_capacity(self) -> bool:
        return self._max_size is not None and len(self._managers) > self._max_size

    def _demote(self, manager: SessionManager) -> None:
        self._managers.remove(manager)
        self._idle.discard(manager)
        self._backups.insert(0, manager)
        logger.info("Session %s moved to backups", manager.uuid)

    def _promote_backups(self) -> None:
        while self._backups and (
            self._max_size is None or len(self._managers) < self._max_size
        ):
            manager = self._backups.pop(0)
            self._managers.append(manager)
            self._make_idle(manager)
            logger.info("Backup session %s promoted into rotation", manager.uuid)

    def _retire(self, manager: SessionManager) -> None:
        self._managers.remove(manager)
        logger.warning(
            "Session %s retired from the pool (state=%s); %d remaining",
            manager.uuid,
            manager.state.value,
            len(self._managers),
        )
        self._promote_backups()
        if not self._managers:
            self.close()
