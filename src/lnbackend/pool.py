"""Bounded pools of httpx clients pointed at one node.

Each pool owns *capacity* slots. A slot is empty until the first caller that
takes it dials a client through the pool's *dialer*; released clients go back
to their slot and are handed out again LIFO.
"""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
from typing import Callable, Generic, TypeVar

import httpx

from .errors import PoolClosedError, PoolError, PoolExhaustedError, PoolUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T", httpx.Client, httpx.AsyncClient)


class _BaseConnection(Generic[T]):
    def __init__(self, transport: T) -> None:
        self.transport = transport
        self.unusable = False
        self._released = False

    @property
    def target(self) -> str:
        """Endpoint this connection talks to, for logs."""
        return str(self.transport.base_url)

    def mark_unusable(self) -> None:
        """Close the transport on release instead of reusing it."""
        self.unusable = True

    def _check_release(self) -> None:
        if self._released:
            raise PoolError(f"connection to {self.target} already released")
        self._released = True


# ---------------------------------------------------------------------------
# Sync pool
# ---------------------------------------------------------------------------

class Connection(_BaseConnection[httpx.Client]):
    """An httpx client leased from a :class:`ConnectionPool`."""

    def __init__(self, pool: ConnectionPool, transport: httpx.Client) -> None:
        super().__init__(transport)
        self._pool = pool

    def release(self) -> None:
        self._check_release()
        self._pool._reclaim(self)


class ConnectionPool:
    """Thread-safe pool of :class:`httpx.Client` instances.

    >>> pool = ConnectionPool(lambda: httpx.Client(base_url="https://node:8080"), 4, 5.0)
    >>> conn = pool.acquire()
    >>> conn.release()
    """

    def __init__(self, dialer: Callable[[], httpx.Client], capacity: int, dial_timeout: float) -> None:
        if capacity < 1:
            raise ValueError(f"pool capacity must be positive, got {capacity}")
        self._dialer = dialer
        self._capacity = capacity
        self._dial_timeout = dial_timeout
        self._slots: queue.LifoQueue[httpx.Client | None] = queue.LifoQueue(maxsize=capacity)
        for _ in range(capacity):
            self._slots.put_nowait(None)
        self._lock = threading.Lock()
        self._leased: set[httpx.Client] = set()
        self._in_use = 0
        self._closed = False

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def closed(self) -> bool:
        return self._closed

    def acquire(self, timeout: float | None = None) -> Connection:
        """Lease a connection, waiting at most *timeout* (default: the dial timeout)."""
        if self._closed:
            raise PoolClosedError()
        wait = max(self._dial_timeout if timeout is None else timeout, 0)
        try:
            transport = self._slots.get(timeout=wait)
        except queue.Empty:
            raise PoolUnavailableError(f"no connection available within {wait}s") from None

        with self._lock:
            if self._closed:
                self._slots.put_nowait(transport)
                raise PoolClosedError()
            self._in_use += 1

        if transport is None:
            try:
                transport = self._dialer()
            except Exception as err:
                self._give_back(None)
                raise PoolExhaustedError(f"dialing a new connection failed: {err}") from err
            logger.debug("Dialed new connection to %s", transport.base_url)
        with self._lock:
            self._leased.add(transport)
        return Connection(self, transport)

    def _reclaim(self, conn: Connection) -> None:
        # The slot goes back before the transport is closed, so a failing
        # close cannot cost the pool a slot.
        with self._lock:
            self._leased.discard(conn.transport)
        if conn.unusable or self._closed:
            self._give_back(None)
            conn.transport.close()
        else:
            self._give_back(conn.transport)

    def _give_back(self, transport: httpx.Client | None) -> None:
        with self._lock:
            self._in_use -= 1
            stale = transport if self._closed else None
            self._slots.put_nowait(None if self._closed else transport)
        if stale is not None:
            stale.close()

    def close(self) -> None:
        """Close every transport, idle or leased; leased ones fail their next read."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            leased = list(self._leased)
        while True:
            try:
                transport = self._slots.get_nowait()
            except queue.Empty:
                break
            if transport is not None:
                transport.close()
        for transport in leased:
            transport.close()

    def __enter__(self) -> ConnectionPool:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


# ---------------------------------------------------------------------------
# Async pool
# ---------------------------------------------------------------------------

class AsyncConnection(_BaseConnection[httpx.AsyncClient]):
    """An httpx client leased from an :class:`AsyncConnectionPool`."""

    def __init__(self, pool: AsyncConnectionPool, transport: httpx.AsyncClient) -> None:
        super().__init__(transport)
        self._pool = pool

    async def release(self) -> None:
        self._check_release()
        await self._pool._reclaim(self)


class AsyncConnectionPool:
    """asyncio pool of :class:`httpx.AsyncClient` instances.

    The dialer is a plain callable; building an ``AsyncClient`` does not
    touch the network.
    """

    def __init__(self, dialer: Callable[[], httpx.AsyncClient], capacity: int, dial_timeout: float) -> None:
        if capacity < 1:
            raise ValueError(f"pool capacity must be positive, got {capacity}")
        self._dialer = dialer
        self._capacity = capacity
        self._dial_timeout = dial_timeout
        self._slots: asyncio.LifoQueue[httpx.AsyncClient | None] = asyncio.LifoQueue(maxsize=capacity)
        for _ in range(capacity):
            self._slots.put_nowait(None)
        self._leased: set[httpx.AsyncClient] = set()
        self._in_use = 0
        self._closed = False

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def closed(self) -> bool:
        return self._closed

    async def acquire(self, timeout: float | None = None) -> AsyncConnection:
        """Lease a connection, waiting at most *timeout* (default: the dial timeout)."""
        if self._closed:
            raise PoolClosedError()
        wait = max(self._dial_timeout if timeout is None else timeout, 0)
        try:
            transport = await asyncio.wait_for(self._slots.get(), wait)
        except asyncio.TimeoutError:
            raise PoolUnavailableError(f"no connection available within {wait}s") from None

        if self._closed:
            self._slots.put_nowait(transport)
            raise PoolClosedError()
        self._in_use += 1

        if transport is None:
            try:
                transport = self._dialer()
            except Exception as err:
                self._give_back(None)
                raise PoolExhaustedError(f"dialing a new connection failed: {err}") from err
            logger.debug("Dialed new connection to %s", transport.base_url)
        self._leased.add(transport)
        return AsyncConnection(self, transport)

    async def _reclaim(self, conn: AsyncConnection) -> None:
        # The slot goes back before the first await, so cancelling the
        # release while the transport closes cannot leak it.
        self._leased.discard(conn.transport)
        if conn.unusable or self._closed:
            self._give_back(None)
            await conn.transport.aclose()
        else:
            self._give_back(conn.transport)

    def _give_back(self, transport: httpx.AsyncClient | None) -> None:
        self._in_use -= 1
        self._slots.put_nowait(transport)

    async def close(self) -> None:
        """Close every transport, idle or leased; leased ones fail their next read."""
        if self._closed:
            return
        self._closed = True
        closing = list(self._leased)
        while not self._slots.empty():
            transport = self._slots.get_nowait()
            if transport is not None:
                closing.append(transport)
        for transport in closing:
            await transport.aclose()

    async def __aenter__(self) -> AsyncConnectionPool:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
