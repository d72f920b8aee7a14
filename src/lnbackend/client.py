from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from typing import Any

import httpx

from .pool import AsyncConnection, Connection
from .rpc import AsyncLightningStub, LightningStub


# ---------------------------------------------------------------------------
# Sync facade
# ---------------------------------------------------------------------------

class Client:
    """A :class:`LightningStub` paired with the pooled connection it runs over.

    One client serves one operation (or one subscription) and is released
    exactly once, normally by leaving its ``with`` block:

    >>> with backend.client() as clt:
    ...     clt.wallet_balance()
    """

    def __init__(self, conn: Connection) -> None:
        self._conn = conn
        self._stub = LightningStub(conn.transport)
        self._released = False

    @property
    def target(self) -> str:
        return self._conn.target

    @property
    def released(self) -> bool:
        return self._released

    def _call(self, method: str, *args: Any, **kwargs: Any) -> Any:
        try:
            return getattr(self._stub, method)(*args, **kwargs)
        except httpx.TransportError:
            self._conn.mark_unusable()
            raise

    def wallet_balance(self, *, timeout: float | None = None) -> dict[str, Any]:
        return self._call("wallet_balance", timeout=timeout)

    def channel_balance(self, *, timeout: float | None = None) -> dict[str, Any]:
        return self._call("channel_balance", timeout=timeout)

    def list_channels(self, req: dict[str, Any], *, timeout: float | None = None) -> dict[str, Any]:
        return self._call("list_channels", req, timeout=timeout)

    def add_invoice(self, req: dict[str, Any], *, timeout: float | None = None) -> dict[str, Any]:
        return self._call("add_invoice", req, timeout=timeout)

    def lookup_invoice(self, r_hash_str: str, *, timeout: float | None = None) -> dict[str, Any]:
        return self._call("lookup_invoice", r_hash_str, timeout=timeout)

    def send_payment_sync(self, req: dict[str, Any], *, timeout: float | None = None) -> dict[str, Any]:
        return self._call("send_payment_sync", req, timeout=timeout)

    def decode_pay_req(self, pay_req: str, *, timeout: float | None = None) -> dict[str, Any]:
        return self._call("decode_pay_req", pay_req, timeout=timeout)

    def subscribe_invoices(self) -> Iterator[dict[str, Any]]:
        try:
            yield from self._stub.subscribe_invoices()
        except httpx.TransportError:
            self._conn.mark_unusable()
            raise

    def release(self) -> None:
        """Hand the connection back to the pool; later calls do nothing."""
        if self._released:
            return
        self._released = True
        self._conn.release()

    def __enter__(self) -> Client:
        return self

    def __exit__(self, *args: Any) -> None:
        self.release()


# ---------------------------------------------------------------------------
# Async facade
# ---------------------------------------------------------------------------

class AsyncClient:
    """An :class:`AsyncLightningStub` paired with its pooled connection.

    >>> async with await backend.client() as clt:
    ...     await clt.wallet_balance()
    """

    def __init__(self, conn: AsyncConnection) -> None:
        self._conn = conn
        self._stub = AsyncLightningStub(conn.transport)
        self._released = False

    @property
    def target(self) -> str:
        return self._conn.target

    @property
    def released(self) -> bool:
        return self._released

    async def _call(self, method: str, *args: Any, **kwargs: Any) -> Any:
        try:
            return await getattr(self._stub, method)(*args, **kwargs)
        except httpx.TransportError:
            self._conn.mark_unusable()
            raise

    async def wallet_balance(self, *, timeout: float | None = None) -> dict[str, Any]:
        return await self._call("wallet_balance", timeout=timeout)

    async def channel_balance(self, *, timeout: float | None = None) -> dict[str, Any]:
        return await self._call("channel_balance", timeout=timeout)

    async def list_channels(self, req: dict[str, Any], *, timeout: float | None = None) -> dict[str, Any]:
        return await self._call("list_channels", req, timeout=timeout)

    async def add_invoice(self, req: dict[str, Any], *, timeout: float | None = None) -> dict[str, Any]:
        return await self._call("add_invoice", req, timeout=timeout)

    async def lookup_invoice(self, r_hash_str: str, *, timeout: float | None = None) -> dict[str, Any]:
        return await self._call("lookup_invoice", r_hash_str, timeout=timeout)

    async def send_payment_sync(self, req: dict[str, Any], *, timeout: float | None = None) -> dict[str, Any]:
        return await self._call("send_payment_sync", req, timeout=timeout)

    async def decode_pay_req(self, pay_req: str, *, timeout: float | None = None) -> dict[str, Any]:
        return await self._call("decode_pay_req", pay_req, timeout=timeout)

    async def subscribe_invoices(self) -> AsyncIterator[dict[str, Any]]:
        stream = self._stub.subscribe_invoices()
        try:
            async for msg in stream:
                yield msg
        except httpx.TransportError:
            self._conn.mark_unusable()
            raise
        finally:
            await stream.aclose()

    async def release(self) -> None:
        """Hand the connection back to the pool; later calls do nothing."""
        if self._released:
            return
        self._released = True
        await self._conn.release()

    async def __aenter__(self) -> AsyncClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.release()
