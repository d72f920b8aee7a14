"""Domain-level operations against one LND node.

Every unary operation follows the same lifecycle: lease a client from the
pool, make exactly one remote call, translate the response and release the
client, whatever happens in between. The invoice subscription keeps its
client for as long as the stream lives.
"""

from __future__ import annotations

import asyncio
import logging
import queue
import ssl
import threading
import time
from collections.abc import Awaitable, Callable
from contextlib import aclosing, closing
from importlib.metadata import version as _pkg_version
from typing import Any, NoReturn, TypeVar

import httpx

from .client import AsyncClient, Client
from .config import NetworkConfig, load_macaroon
from .errors import CallError, RPCError, StreamCancelledError, StreamClosedError
from .logging_setup import NodeLogger
from .options import ChannelOption, new_channel_options
from .pool import AsyncConnectionPool, ConnectionPool
from .translators import (
    added_invoice_from_wire,
    channel_balance_from_wire,
    channels_from_wire,
    invoice_from_wire,
    pay_req_from_wire,
    payment_from_wire,
    wallet_balance_from_wire,
)
from .types import Channel, ChannelBalance, Invoice, PayReq, Payment, WalletBalance

_logger = logging.getLogger(__name__)

try:
    _VERSION = _pkg_version("lnbackend")
except Exception:
    _VERSION = "0.0.0"

_USER_AGENT = f"lnbackend-python/{_VERSION}"

# Failures of a remote call; pool errors and cancellation pass through untouched.
_CALL_ERRORS = (RPCError, httpx.HTTPError)

# Seconds between checks of a subscription's stop event while its queue is full.
_PUT_POLL_INTERVAL = 0.1

R = TypeVar("R")


def _transport_options(config: NetworkConfig) -> dict[str, Any]:
    headers = {"Accept": "application/json", "User-Agent": _USER_AGENT}
    if config.macaroon:
        headers["Grpc-Metadata-Macaroon"] = load_macaroon(config.macaroon)
    verify: ssl.SSLContext | bool = True
    if config.cert:
        verify = ssl.create_default_context(cafile=config.cert)
    return {
        "base_url": f"https://{config.address}",
        "headers": headers,
        "verify": verify,
        "timeout": httpx.Timeout(config.rpc_timeout, connect=config.conn_timeout),
    }


def _list_channels_request(opts: tuple[ChannelOption, ...]) -> dict[str, bool]:
    options = new_channel_options(*opts)
    return {
        "active_only": options.active,
        "inactive_only": options.inactive,
        "public_only": options.public,
        "private_only": options.private,
    }


def _add_invoice_request(amount: int, desc: str, expiry: int) -> dict[str, Any]:
    return {
        "value": amount,
        "memo": desc,
        "creation_date": int(time.time()),
        "expiry": expiry,
    }


# ---------------------------------------------------------------------------
# Sync backend
# ---------------------------------------------------------------------------

class Backend:
    """Synchronous backend for one LND node.

    >>> with Backend(load_config("lnbackend.yaml")) as node:
    ...     balance = node.get_wallet_balance()

    *transport* is handed to every httpx client the pool dials (tests pass an
    ``httpx.MockTransport``); *pool* replaces the pool altogether.
    """

    def __init__(
        self,
        config: NetworkConfig,
        logger: logging.Logger | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
        pool: ConnectionPool | None = None,
    ) -> None:
        self._config = config
        self._log = NodeLogger(logger or _logger, {"node": config.name})
        self._transport = transport
        self._pool = pool or ConnectionPool(self.new_transport, config.pool_capacity, config.conn_timeout)

    @property
    def pool(self) -> ConnectionPool:
        return self._pool

    def node_name(self) -> str:
        return self._config.name

    def new_transport(self) -> httpx.Client:
        """Dial a fresh client for the node; the pool's dialer."""
        return httpx.Client(transport=self._transport, **_transport_options(self._config))

    def client(self, timeout: float | None = None) -> Client:
        conn = self._pool.acquire(timeout)
        self._log.debug("Client connection retrieved", extra={"target": conn.target})
        return Client(conn)

    def _unary(self, operation: str, invoke: Callable[[Client], R], timeout: float | None, **context: Any) -> R:
        with self.client(timeout) as clt:
            try:
                return invoke(clt)
            except _CALL_ERRORS as err:
                raise CallError(operation, err, **context) from err

    def get_wallet_balance(self, *, timeout: float | None = None) -> WalletBalance:
        self._log.debug("Retrieve wallet balance...")
        resp = self._unary("wallet_balance", lambda clt: clt.wallet_balance(timeout=timeout), timeout)
        balance = wallet_balance_from_wire(resp)
        self._log.debug("Wallet balance retrieved", extra={"wallet": balance})
        return balance

    def get_channel_balance(self, *, timeout: float | None = None) -> ChannelBalance:
        self._log.debug("Retrieve channel balance...")
        resp = self._unary("channel_balance", lambda clt: clt.channel_balance(timeout=timeout), timeout)
        balance = channel_balance_from_wire(resp)
        self._log.debug("Channel balance retrieved", extra={"balance": balance})
        return balance

    def list_channels(self, *opts: ChannelOption, timeout: float | None = None) -> list[Channel]:
        self._log.debug("List channels")
        req = _list_channels_request(opts)
        resp = self._unary("list_channels", lambda clt: clt.list_channels(req, timeout=timeout), timeout, **req)
        channels = channels_from_wire(resp)
        self._log.debug("Channels retrieved", extra={"channels": channels})
        return channels

    def create_invoice(self, amount: int, desc: str, *, expiry: int | None = None, timeout: float | None = None) -> Invoice:
        """Create an invoice for *amount* sats, payable for *expiry* seconds."""
        self._log.debug("Create invoice...", extra={"amount": amount, "desc": desc})
        req = _add_invoice_request(amount, desc, self._config.invoice_expiry if expiry is None else expiry)
        resp = self._unary(
            "add_invoice", lambda clt: clt.add_invoice(req, timeout=timeout), timeout, amount=amount, desc=desc
        )
        invoice = added_invoice_from_wire(req, resp)
        self._log.debug("Invoice retrieved", extra={"invoice": invoice})
        return invoice

    def get_invoice(self, r_hash: str, *, timeout: float | None = None) -> Invoice:
        self._log.debug("Retrieve invoice...", extra={"r_hash": r_hash})
        resp = self._unary("lookup_invoice", lambda clt: clt.lookup_invoice(r_hash, timeout=timeout), timeout, r_hash=r_hash)
        invoice = invoice_from_wire(resp)
        self._log.debug("Invoice retrieved", extra={"invoice": invoice})
        return invoice

    def send_payment(self, pay_req: PayReq, *, timeout: float | None = None) -> Payment:
        """Pay *pay_req*; only its encoded string goes on the wire."""
        self._log.debug("Send payment...", extra={"destination": pay_req.destination, "amount": pay_req.amount})
        req = {"payment_request": pay_req.string}
        resp = self._unary(
            "send_payment_sync",
            lambda clt: clt.send_payment_sync(req, timeout=timeout),
            timeout,
            destination=pay_req.destination,
            amount=pay_req.amount,
        )
        payment = payment_from_wire(pay_req, resp)
        self._log.debug("Payment paid", extra={"payment": payment})
        return payment

    def decode_pay_req(self, pay_req: str, *, timeout: float | None = None) -> PayReq:
        self._log.info("decode payreq", extra={"payreq": pay_req})
        resp = self._unary("decode_pay_req", lambda clt: clt.decode_pay_req(pay_req, timeout=timeout), timeout, payreq=pay_req)
        return pay_req_from_wire(resp, pay_req)

    def subscribe_invoice(
        self, out: queue.Queue[Invoice], *, timeout: float | None = None, stop: threading.Event | None = None
    ) -> NoReturn:
        """Put every invoice update on *out* until the stream ends.

        Blocks for the stream's whole life, and on ``out.put`` while *out* is
        full. Always ends by raising: :class:`StreamClosedError` when the node
        closes the stream, :class:`CallError` when it fails,
        :class:`StreamCancelledError` once *stop* is set or the backend is
        closed. *stop* is checked between frames and while *out* is full;
        :meth:`close` also interrupts a read that is waiting on the node. The
        client is released on the way out; resubscribing is up to the caller.
        """
        with self.client(timeout) as clt:
            self._log.debug("Subscribe invoices", extra={"target": clt.target})
            with closing(clt.subscribe_invoices()) as stream:
                try:
                    for msg in stream:
                        if not self._deliver(out, invoice_from_wire(msg), stop):
                            break
                except _CALL_ERRORS as err:
                    if self._cancelled(stop):
                        self._log.debug("Invoice subscription cancelled")
                        raise StreamCancelledError() from err
                    self._log.debug("Invoice stream failed", extra={"error": str(err)})
                    raise CallError("subscribe_invoices", err) from err
        if self._cancelled(stop):
            self._log.debug("Invoice subscription cancelled")
            raise StreamCancelledError()
        self._log.debug("Invoice stream closed")
        raise StreamClosedError()

    def _cancelled(self, stop: threading.Event | None) -> bool:
        return self._pool.closed or (stop is not None and stop.is_set())

    def _deliver(self, out: queue.Queue[Invoice], invoice: Invoice, stop: threading.Event | None) -> bool:
        """Put *invoice* on *out*, waiting while it is full; False once cancelled."""
        while not self._cancelled(stop):
            try:
                out.put(invoice, timeout=_PUT_POLL_INTERVAL)
            except queue.Full:
                continue
            return True
        return False

    def close(self) -> None:
        """Close the connection pool, interrupting any running subscription."""
        self._pool.close()

    def __enter__(self) -> Backend:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


# ---------------------------------------------------------------------------
# Async backend
# ---------------------------------------------------------------------------

class AsyncBackend:
    """Asynchronous backend for one LND node.

    >>> async with AsyncBackend(load_config("lnbackend.yaml")) as node:
    ...     balance = await node.get_wallet_balance()

    Cancelling the task running an operation aborts it at acquisition, at the
    remote call or at ``out.put``; the client is released either way.
    """

    def __init__(
        self,
        config: NetworkConfig,
        logger: logging.Logger | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        pool: AsyncConnectionPool | None = None,
    ) -> None:
        self._config = config
        self._log = NodeLogger(logger or _logger, {"node": config.name})
        self._transport = transport
        self._pool = pool or AsyncConnectionPool(self.new_transport, config.pool_capacity, config.conn_timeout)

    @property
    def pool(self) -> AsyncConnectionPool:
        return self._pool

    def node_name(self) -> str:
        return self._config.name

    def new_transport(self) -> httpx.AsyncClient:
        """Dial a fresh client for the node; the pool's dialer."""
        return httpx.AsyncClient(transport=self._transport, **_transport_options(self._config))

    async def client(self, timeout: float | None = None) -> AsyncClient:
        conn = await self._pool.acquire(timeout)
        self._log.debug("Client connection retrieved", extra={"target": conn.target})
        return AsyncClient(conn)

    async def _unary(
        self, operation: str, invoke: Callable[[AsyncClient], Awaitable[R]], timeout: float | None, **context: Any
    ) -> R:
        async with await self.client(timeout) as clt:
            try:
                return await invoke(clt)
            except _CALL_ERRORS as err:
                raise CallError(operation, err, **context) from err

    async def get_wallet_balance(self, *, timeout: float | None = None) -> WalletBalance:
        self._log.debug("Retrieve wallet balance...")
        resp = await self._unary("wallet_balance", lambda clt: clt.wallet_balance(timeout=timeout), timeout)
        balance = wallet_balance_from_wire(resp)
        self._log.debug("Wallet balance retrieved", extra={"wallet": balance})
        return balance

    async def get_channel_balance(self, *, timeout: float | None = None) -> ChannelBalance:
        self._log.debug("Retrieve channel balance...")
        resp = await self._unary("channel_balance", lambda clt: clt.channel_balance(timeout=timeout), timeout)
        balance = channel_balance_from_wire(resp)
        self._log.debug("Channel balance retrieved", extra={"balance": balance})
        return balance

    async def list_channels(self, *opts: ChannelOption, timeout: float | None = None) -> list[Channel]:
        self._log.debug("List channels")
        req = _list_channels_request(opts)
        resp = await self._unary("list_channels", lambda clt: clt.list_channels(req, timeout=timeout), timeout, **req)
        channels = channels_from_wire(resp)
        self._log.debug("Channels retrieved", extra={"channels": channels})
        return channels

    async def create_invoice(
        self, amount: int, desc: str, *, expiry: int | None = None, timeout: float | None = None
    ) -> Invoice:
        """Create an invoice for *amount* sats, payable for *expiry* seconds."""
        self._log.debug("Create invoice...", extra={"amount": amount, "desc": desc})
        req = _add_invoice_request(amount, desc, self._config.invoice_expiry if expiry is None else expiry)
        resp = await self._unary(
            "add_invoice", lambda clt: clt.add_invoice(req, timeout=timeout), timeout, amount=amount, desc=desc
        )
        invoice = added_invoice_from_wire(req, resp)
        self._log.debug("Invoice retrieved", extra={"invoice": invoice})
        return invoice

    async def get_invoice(self, r_hash: str, *, timeout: float | None = None) -> Invoice:
        self._log.debug("Retrieve invoice...", extra={"r_hash": r_hash})
        resp = await self._unary(
            "lookup_invoice", lambda clt: clt.lookup_invoice(r_hash, timeout=timeout), timeout, r_hash=r_hash
        )
        invoice = invoice_from_wire(resp)
        self._log.debug("Invoice retrieved", extra={"invoice": invoice})
        return invoice

    async def send_payment(self, pay_req: PayReq, *, timeout: float | None = None) -> Payment:
        """Pay *pay_req*; only its encoded string goes on the wire."""
        self._log.debug("Send payment...", extra={"destination": pay_req.destination, "amount": pay_req.amount})
        req = {"payment_request": pay_req.string}
        resp = await self._unary(
            "send_payment_sync",
            lambda clt: clt.send_payment_sync(req, timeout=timeout),
            timeout,
            destination=pay_req.destination,
            amount=pay_req.amount,
        )
        payment = payment_from_wire(pay_req, resp)
        self._log.debug("Payment paid", extra={"payment": payment})
        return payment

    async def decode_pay_req(self, pay_req: str, *, timeout: float | None = None) -> PayReq:
        self._log.info("decode payreq", extra={"payreq": pay_req})
        resp = await self._unary(
            "decode_pay_req", lambda clt: clt.decode_pay_req(pay_req, timeout=timeout), timeout, payreq=pay_req
        )
        return pay_req_from_wire(resp, pay_req)

    async def subscribe_invoice(self, out: asyncio.Queue[Invoice], *, timeout: float | None = None) -> NoReturn:
        """Put every invoice update on *out* until the stream ends.

        Waits on ``out.put`` while *out* is full, which in turn stops reading
        from the node. Always ends by raising: :class:`StreamClosedError`
        when the node closes the stream, :class:`CallError` when it fails,
        ``asyncio.CancelledError`` when the task is cancelled and
        :class:`StreamCancelledError` when the backend is closed under it. The
        client is released on the way out; resubscribing is up to the caller.
        """
        async with await self.client(timeout) as clt:
            self._log.debug("Subscribe invoices", extra={"target": clt.target})
            async with aclosing(clt.subscribe_invoices()) as stream:
                try:
                    async for msg in stream:
                        await out.put(invoice_from_wire(msg))
                except _CALL_ERRORS as err:
                    if self._pool.closed:
                        self._log.debug("Invoice subscription cancelled")
                        raise StreamCancelledError() from err
                    self._log.debug("Invoice stream failed", extra={"error": str(err)})
                    raise CallError("subscribe_invoices", err) from err
        if self._pool.closed:
            self._log.debug("Invoice subscription cancelled")
            raise StreamCancelledError()
        self._log.debug("Invoice stream closed")
        raise StreamClosedError()

    async def close(self) -> None:
        """Close the connection pool, interrupting any running subscription."""
        await self._pool.close()

    async def __aenter__(self) -> AsyncBackend:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
