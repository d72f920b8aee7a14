"""Call proxies for the ``lnrpc.Lightning`` service over LND's REST gateway."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Iterator
from typing import Any

import httpx

from .errors import RPCError, error_for_status

_ROUTES = {
    "wallet_balance": "/v1/balance/blockchain",
    "channel_balance": "/v1/balance/channels",
    "list_channels": "/v1/channels",
    "add_invoice": "/v1/invoices",
    "lookup_invoice": "/v1/invoice/{r_hash_str}",
    "send_payment_sync": "/v1/channels/transactions",
    "decode_pay_req": "/v1/payreq/{pay_req}",
    "subscribe_invoices": "/v1/invoices/subscribe",
}

_LIST_CHANNELS_FLAGS = ("active_only", "inactive_only", "public_only", "private_only")


def _raise_for_status(response: httpx.Response) -> None:
    if response.is_success:
        return
    raise error_for_status(response.status_code, response.text, response.reason_phrase or "Error")


def _json(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError as err:
        raise RPCError(f"malformed response from node: {err}", response.status_code, response.text) from err
    if not isinstance(data, dict):
        raise RPCError("malformed response from node: expected a JSON object", response.status_code, response.text)
    return data


def _timeout(timeout: float | None) -> Any:
    return httpx.USE_CLIENT_DEFAULT if timeout is None else timeout


def _stream_timeout(http: httpx.Client | httpx.AsyncClient) -> httpx.Timeout:
    # Invoice updates may be hours apart, only bound the connect phase.
    return httpx.Timeout(None, connect=http.timeout.connect)


def _flags(req: dict[str, Any]) -> dict[str, str]:
    return {flag: "true" if req.get(flag) else "false" for flag in _LIST_CHANNELS_FLAGS}


def _frame(line: str, status: int = 200) -> dict[str, Any] | None:
    """Decode one line of a gateway stream; ``None`` for keep-alive blanks."""
    line = line.strip()
    if not line:
        return None
    try:
        frame = json.loads(line)
    except ValueError as err:
        raise RPCError(f"malformed stream frame: {err}", status, line) from err
    if not isinstance(frame, dict):
        raise RPCError("malformed stream frame: expected a JSON object", status, line)
    if "error" in frame:
        err = frame["error"] or {}
        raise error_for_status(int(err.get("http_code") or 500), json.dumps(err), err.get("http_status") or "Error")
    return frame.get("result", frame)


# ---------------------------------------------------------------------------
# Sync stub
# ---------------------------------------------------------------------------

class LightningStub:
    """Sync call proxy; *http* carries base URL, TLS and macaroon."""

    def __init__(self, http: httpx.Client) -> None:
        self._http = http

    def _get(self, path: str, *, params: dict[str, Any] | None = None, timeout: float | None = None) -> Any:
        resp = self._http.get(path, params=params, timeout=_timeout(timeout))
        _raise_for_status(resp)
        return _json(resp)

    def _post(self, path: str, body: Any, *, timeout: float | None = None) -> Any:
        resp = self._http.post(path, json=body, timeout=_timeout(timeout))
        _raise_for_status(resp)
        return _json(resp)

    def wallet_balance(self, *, timeout: float | None = None) -> dict[str, Any]:
        return self._get(_ROUTES["wallet_balance"], timeout=timeout)

    def channel_balance(self, *, timeout: float | None = None) -> dict[str, Any]:
        return self._get(_ROUTES["channel_balance"], timeout=timeout)

    def list_channels(self, req: dict[str, Any], *, timeout: float | None = None) -> dict[str, Any]:
        return self._get(_ROUTES["list_channels"], params=_flags(req), timeout=timeout)

    def add_invoice(self, req: dict[str, Any], *, timeout: float | None = None) -> dict[str, Any]:
        return self._post(_ROUTES["add_invoice"], req, timeout=timeout)

    def lookup_invoice(self, r_hash_str: str, *, timeout: float | None = None) -> dict[str, Any]:
        return self._get(_ROUTES["lookup_invoice"].format(r_hash_str=r_hash_str), timeout=timeout)

    def send_payment_sync(self, req: dict[str, Any], *, timeout: float | None = None) -> dict[str, Any]:
        return self._post(_ROUTES["send_payment_sync"], req, timeout=timeout)

    def decode_pay_req(self, pay_req: str, *, timeout: float | None = None) -> dict[str, Any]:
        return self._get(_ROUTES["decode_pay_req"].format(pay_req=pay_req), timeout=timeout)

    def subscribe_invoices(self) -> Iterator[dict[str, Any]]:
        """Yield every invoice update until the node closes the stream.

        Raises :class:`RPCError` when the node sends an error frame.
        """
        with self._http.stream("GET", _ROUTES["subscribe_invoices"], timeout=_stream_timeout(self._http)) as resp:
            if not resp.is_success:
                resp.read()
            _raise_for_status(resp)
            for line in resp.iter_lines():
                msg = _frame(line, resp.status_code)
                if msg is not None:
                    yield msg


# ---------------------------------------------------------------------------
# Async stub
# ---------------------------------------------------------------------------

class AsyncLightningStub:
    """Async call proxy; *http* carries base URL, TLS and macaroon."""

    def __init__(self, http: httpx.AsyncClient) -> None:
        self._http = http

    async def _get(self, path: str, *, params: dict[str, Any] | None = None, timeout: float | None = None) -> Any:
        resp = await self._http.get(path, params=params, timeout=_timeout(timeout))
        _raise_for_status(resp)
        return _json(resp)

    async def _post(self, path: str, body: Any, *, timeout: float | None = None) -> Any:
        resp = await self._http.post(path, json=body, timeout=_timeout(timeout))
        _raise_for_status(resp)
        return _json(resp)

    async def wallet_balance(self, *, timeout: float | None = None) -> dict[str, Any]:
        return await self._get(_ROUTES["wallet_balance"], timeout=timeout)

    async def channel_balance(self, *, timeout: float | None = None) -> dict[str, Any]:
        return await self._get(_ROUTES["channel_balance"], timeout=timeout)

    async def list_channels(self, req: dict[str, Any], *, timeout: float | None = None) -> dict[str, Any]:
        return await self._get(_ROUTES["list_channels"], params=_flags(req), timeout=timeout)

    async def add_invoice(self, req: dict[str, Any], *, timeout: float | None = None) -> dict[str, Any]:
        return await self._post(_ROUTES["add_invoice"], req, timeout=timeout)

    async def lookup_invoice(self, r_hash_str: str, *, timeout: float | None = None) -> dict[str, Any]:
        return await self._get(_ROUTES["lookup_invoice"].format(r_hash_str=r_hash_str), timeout=timeout)

    async def send_payment_sync(self, req: dict[str, Any], *, timeout: float | None = None) -> dict[str, Any]:
        return await self._post(_ROUTES["send_payment_sync"], req, timeout=timeout)

    async def decode_pay_req(self, pay_req: str, *, timeout: float | None = None) -> dict[str, Any]:
        return await self._get(_ROUTES["decode_pay_req"].format(pay_req=pay_req), timeout=timeout)

    async def subscribe_invoices(self) -> AsyncIterator[dict[str, Any]]:
        """Yield every invoice update until the node closes the stream.

        Raises :class:`RPCError` when the node sends an error frame.
        """
        async with self._http.stream("GET", _ROUTES["subscribe_invoices"], timeout=_stream_timeout(self._http)) as resp:
            if not resp.is_success:
                await resp.aread()
            _raise_for_status(resp)
            async for line in resp.aiter_lines():
                msg = _frame(line, resp.status_code)
                if msg is not None:
                    yield msg
