"""Tests for the invoice subscription loop, sync and async."""

from __future__ import annotations

import asyncio
import dataclasses
import queue
import threading
import time

import httpx
import pytest

from lnbackend.errors import (
    CallError,
    PoolUnavailableError,
    RPCError,
    StreamCancelledError,
    StreamClosedError,
    UnauthorizedError,
    UnavailableError,
)
from conftest import NODE, create_async_backend, create_backend, frame, invoice_msg


def _wait_until(predicate, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached")
        time.sleep(0.005)


def _drain(out) -> list:
    items = []
    while not out.empty():
        items.append(out.get_nowait())
    return items


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


class TestSubscribeInvoice:
    def test_delivers_in_order_then_closes(self):
        backend, node = create_backend(content=frame(invoice_msg(1)) + frame(invoice_msg(2)))
        out: queue.Queue = queue.Queue()
        with pytest.raises(StreamClosedError):
            backend.subscribe_invoice(out)
        assert [inv.index for inv in _drain(out)] == [1, 2]
        assert node.last.path == "/v1/invoices/subscribe"

    def test_error_frame_ends_subscription(self):
        body = frame(invoice_msg(1)) + frame(invoice_msg(2)) + frame(error={"http_code": 503, "message": "shutting down"})
        backend, _ = create_backend(content=body)
        out: queue.Queue = queue.Queue()
        with pytest.raises(CallError) as exc_info:
            backend.subscribe_invoice(out)
        assert [inv.index for inv in _drain(out)] == [1, 2]
        assert exc_info.value.operation == "subscribe_invoices"
        assert isinstance(exc_info.value.__cause__, UnavailableError)

    def test_http_error_before_first_message(self):
        backend, _ = create_backend(401, {"code": 16, "message": "verification failed"})
        out: queue.Queue = queue.Queue()
        with pytest.raises(CallError) as exc_info:
            backend.subscribe_invoice(out)
        assert isinstance(exc_info.value.cause, UnauthorizedError)
        assert out.empty()

    def test_garbled_frame_ends_subscription(self):
        backend, _ = create_backend(content=frame(invoice_msg(1)) + b"not json\n")
        out: queue.Queue = queue.Queue()
        with pytest.raises(CallError) as exc_info:
            backend.subscribe_invoice(out)
        assert isinstance(exc_info.value.cause, RPCError)
        assert [inv.index for inv in _drain(out)] == [1]
        assert backend.pool.in_use == 0

    def test_releases_client_when_stream_ends(self):
        backend, _ = create_backend(content=frame(invoice_msg(1)))
        with pytest.raises(StreamClosedError):
            backend.subscribe_invoice(queue.Queue())
        assert backend.pool.in_use == 0

    def test_releases_client_on_stream_failure(self):
        backend, _ = create_backend(raises=httpx.ReadError("reset by peer"))
        with pytest.raises(CallError):
            backend.subscribe_invoice(queue.Queue())
        assert backend.pool.in_use == 0

    def test_holds_client_while_streaming(self):
        gate = threading.Event()

        def body():
            yield frame(invoice_msg(1))
            gate.wait(2.0)

        backend, _ = create_backend(content=body)
        out: queue.Queue = queue.Queue()
        ended: list[BaseException] = []

        def run():
            try:
                backend.subscribe_invoice(out)
            except StreamClosedError as err:
                ended.append(err)

        t = threading.Thread(target=run, daemon=True)
        t.start()
        out.get(timeout=2.0)
        assert backend.pool.in_use == 1
        gate.set()
        t.join(timeout=2.0)
        assert backend.pool.in_use == 0
        assert len(ended) == 1

    def test_acquire_failure(self):
        backend, node = create_backend(config=dataclasses.replace(NODE, pool_capacity=1))
        held = backend.client()
        with pytest.raises(PoolUnavailableError):
            backend.subscribe_invoice(queue.Queue(), timeout=0.01)
        assert node.requests == []
        held.release()

    def test_blocks_when_queue_full(self):
        pulled: list[int] = []

        def body():
            for i in (1, 2, 3):
                pulled.append(i)
                yield frame(invoice_msg(i))

        backend, _ = create_backend(content=body)
        out: queue.Queue = queue.Queue(maxsize=1)
        ended: list[BaseException] = []

        def run():
            try:
                backend.subscribe_invoice(out)
            except StreamClosedError as err:
                ended.append(err)

        t = threading.Thread(target=run, daemon=True)
        t.start()
        _wait_until(lambda: len(pulled) == 2 and out.full())
        time.sleep(0.05)
        assert pulled == [1, 2]
        assert out.qsize() == 1

        received = [out.get(timeout=2.0).index for _ in range(3)]
        t.join(timeout=2.0)
        assert received == [1, 2, 3]
        assert ended and isinstance(ended[0], StreamClosedError)

    def _run_in_thread(self, backend, out, **kwargs):
        ended: list[BaseException] = []

        def run():
            try:
                backend.subscribe_invoice(out, **kwargs)
            except (StreamCancelledError, StreamClosedError, CallError) as err:
                ended.append(err)

        t = threading.Thread(target=run, daemon=True)
        t.start()
        return t, ended

    def test_stop_between_frames(self):
        gate = threading.Event()
        stop = threading.Event()

        def body():
            yield frame(invoice_msg(1))
            gate.wait(2.0)
            yield frame(invoice_msg(2))

        backend, _ = create_backend(content=body)
        out: queue.Queue = queue.Queue()
        t, ended = self._run_in_thread(backend, out, stop=stop)
        assert out.get(timeout=2.0).index == 1

        stop.set()
        gate.set()
        t.join(timeout=2.0)
        assert len(ended) == 1 and isinstance(ended[0], StreamCancelledError)
        assert out.empty()
        assert backend.pool.in_use == 0

    def test_stop_while_queue_full(self):
        backend, _ = create_backend(content=frame(invoice_msg(1)) + frame(invoice_msg(2)))
        out: queue.Queue = queue.Queue(maxsize=1)
        stop = threading.Event()
        t, ended = self._run_in_thread(backend, out, stop=stop)
        _wait_until(out.full)

        stop.set()
        t.join(timeout=2.0)
        assert len(ended) == 1 and isinstance(ended[0], StreamCancelledError)
        assert out.get_nowait().index == 1
        assert backend.pool.in_use == 0

    def test_close_interrupts_read(self):
        gate = threading.Event()

        def body():
            yield frame(invoice_msg(1))
            gate.wait(2.0)
            raise httpx.ReadError("connection closed")

        backend, _ = create_backend(content=body)
        out: queue.Queue = queue.Queue()
        t, ended = self._run_in_thread(backend, out)
        out.get(timeout=2.0)

        backend.close()
        gate.set()
        t.join(timeout=2.0)
        assert len(ended) == 1 and isinstance(ended[0], StreamCancelledError)
        assert isinstance(ended[0].__cause__, httpx.ReadError)
        assert backend.pool.in_use == 0

    def test_close_while_queue_full(self):
        backend, _ = create_backend(content=frame(invoice_msg(1)) + frame(invoice_msg(2)))
        out: queue.Queue = queue.Queue(maxsize=1)
        t, ended = self._run_in_thread(backend, out)
        _wait_until(out.full)

        backend.close()
        t.join(timeout=2.0)
        assert len(ended) == 1 and isinstance(ended[0], StreamCancelledError)
        assert backend.pool.in_use == 0


# ---------------------------------------------------------------------------
# Async
# ---------------------------------------------------------------------------


class TestAsyncSubscribeInvoice:
    @pytest.mark.asyncio
    async def test_delivers_in_order_then_closes(self):
        backend, _ = create_async_backend(content=frame(invoice_msg(1)) + frame(invoice_msg(2)))
        out: asyncio.Queue = asyncio.Queue()
        with pytest.raises(StreamClosedError):
            await backend.subscribe_invoice(out)
        assert [inv.index for inv in _drain(out)] == [1, 2]
        assert backend.pool.in_use == 0

    @pytest.mark.asyncio
    async def test_terminal_error_after_messages(self):
        body = frame(invoice_msg(1)) + frame(invoice_msg(2)) + frame(error={"http_code": 401, "message": "macaroon expired"})
        backend, _ = create_async_backend(content=body)
        out: asyncio.Queue = asyncio.Queue()
        with pytest.raises(CallError) as exc_info:
            await backend.subscribe_invoice(out)
        assert [inv.index for inv in _drain(out)] == [1, 2]
        assert isinstance(exc_info.value.cause, UnauthorizedError)
        assert backend.pool.in_use == 0

    @pytest.mark.asyncio
    async def test_backpressure(self):
        pulled: list[int] = []

        async def body():
            for i in (1, 2, 3):
                pulled.append(i)
                yield frame(invoice_msg(i))

        backend, _ = create_async_backend(content=body)
        out: asyncio.Queue = asyncio.Queue(maxsize=1)
        task = asyncio.create_task(backend.subscribe_invoice(out))
        await asyncio.sleep(0.05)

        assert pulled == [1, 2]
        assert out.qsize() == 1
        assert not task.done()

        received = [(await out.get()).index for _ in range(3)]
        assert received == [1, 2, 3]
        with pytest.raises(StreamClosedError):
            await task

    @pytest.mark.asyncio
    async def test_cancellation_releases_client(self):
        never = asyncio.Event()

        async def body():
            yield frame(invoice_msg(1))
            await never.wait()

        backend, _ = create_async_backend(content=body)
        out: asyncio.Queue = asyncio.Queue()
        task = asyncio.create_task(backend.subscribe_invoice(out))
        first = await asyncio.wait_for(out.get(), 2.0)
        assert first.index == 1
        assert backend.pool.in_use == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert backend.pool.in_use == 0

    @pytest.mark.asyncio
    async def test_cancel_while_blocked_on_put(self):
        backend, _ = create_async_backend(content=frame(invoice_msg(1)) + frame(invoice_msg(2)))
        out: asyncio.Queue = asyncio.Queue(maxsize=1)
        task = asyncio.create_task(backend.subscribe_invoice(out))
        await asyncio.sleep(0.05)
        assert out.full()

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert backend.pool.in_use == 0
        assert out.get_nowait().index == 1

    @pytest.mark.asyncio
    async def test_close_interrupts_read(self):
        resume = asyncio.Event()

        async def body():
            yield frame(invoice_msg(1))
            await resume.wait()
            raise httpx.ReadError("connection closed")

        backend, _ = create_async_backend(content=body)
        out: asyncio.Queue = asyncio.Queue()
        task = asyncio.create_task(backend.subscribe_invoice(out))
        assert (await asyncio.wait_for(out.get(), 2.0)).index == 1

        await backend.close()
        resume.set()
        with pytest.raises(StreamCancelledError):
            await task
        assert backend.pool.in_use == 0
