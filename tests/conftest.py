"""Shared test helpers for the lnbackend test suite."""

from __future__ import annotations

import base64
import json
from typing import Any, Callable

import httpx

from lnbackend import AsyncBackend, Backend, NetworkConfig

NODE = NetworkConfig(name="alice", address="alice.test:8080", pool_capacity=2, conn_timeout=1.0)

R_HASH_HEX = "ab" * 32
R_HASH_B64 = base64.b64encode(bytes.fromhex(R_HASH_HEX)).decode()
PREIMAGE_HEX = "cd" * 32
PREIMAGE_B64 = base64.b64encode(bytes.fromhex(PREIMAGE_HEX)).decode()


class CapturedRequest:
    """Stores details about an HTTP request the backend made."""

    def __init__(self, request: httpx.Request) -> None:
        self.method: str = request.method
        self.url: httpx.URL = request.url
        self.headers: httpx.Headers = request.headers
        self.content: bytes = request.content

    @property
    def path(self) -> str:
        return self.url.raw_path.decode().split("?")[0]

    @property
    def params(self) -> dict[str, str]:
        return dict(self.url.params)

    @property
    def json_body(self) -> Any:
        if self.content:
            return json.loads(self.content)
        return None


class MockNode:
    """Stands in for the node: records requests, answers with a fixed response.

    *content* may be raw bytes or a zero-argument callable returning a fresh
    (async) iterator of chunks per request; *raises* makes every request fail
    with that exception instead.
    """

    def __init__(
        self,
        status: int = 200,
        json_body: Any = None,
        *,
        content: bytes | Callable[[], Any] | None = None,
        raises: Exception | None = None,
    ) -> None:
        self.status = status
        self.json_body = json_body
        self.content = content
        self.raises = raises
        self.requests: list[CapturedRequest] = []

    @property
    def last(self) -> CapturedRequest:
        return self.requests[-1]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(CapturedRequest(request))
        if self.raises is not None:
            raise self.raises
        if callable(self.content):
            return httpx.Response(self.status, content=self.content())
        if self.content is not None:
            return httpx.Response(self.status, content=self.content)
        body = json.dumps(self.json_body).encode() if self.json_body is not None else b""
        return httpx.Response(self.status, content=body, headers={"content-type": "application/json"})


def create_backend(
    status: int = 200,
    json_body: Any = None,
    *,
    config: NetworkConfig = NODE,
    **kwargs: Any,
) -> tuple[Backend, MockNode]:
    """Create a Backend whose pooled clients all talk to a MockNode."""
    node = MockNode(status, json_body, **kwargs)
    return Backend(config, transport=httpx.MockTransport(node)), node


def create_async_backend(
    status: int = 200,
    json_body: Any = None,
    *,
    config: NetworkConfig = NODE,
    **kwargs: Any,
) -> tuple[AsyncBackend, MockNode]:
    """Create an AsyncBackend whose pooled clients all talk to a MockNode."""
    node = MockNode(status, json_body, **kwargs)
    return AsyncBackend(config, transport=httpx.MockTransport(node)), node


def frame(result: dict[str, Any] | None = None, *, error: dict[str, Any] | None = None) -> bytes:
    """One newline-delimited frame of a REST gateway server stream."""
    payload = {"error": error} if error is not None else {"result": result}
    return json.dumps(payload).encode() + b"\n"


def invoice_msg(index: int, **overrides: Any) -> dict[str, Any]:
    msg = {
        "memo": f"invoice {index}",
        "r_preimage": PREIMAGE_B64,
        "r_hash": R_HASH_B64,
        "value": str(1000 * index),
        "settled": False,
        "creation_date": "1700000000",
        "expiry": "3600",
        "payment_request": f"lnbc{index}",
        "add_index": str(index),
        "state": "OPEN",
    }
    msg.update(overrides)
    return msg
