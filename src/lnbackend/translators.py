"""Wire (REST gateway JSON) to domain model translation.

Every function here is pure: same input, equal output, no I/O. Fields the
node leaves out fall back to their zero value, int64 fields may arrive as
JSON strings, and ``bytes`` fields arrive base64 encoded and leave as hex.
"""

from __future__ import annotations

import base64
from typing import Any

from .types import (
    HTLC,
    Channel,
    ChannelBalance,
    Hop,
    Invoice,
    InvoiceState,
    PayReq,
    Payment,
    Route,
    WalletBalance,
)

_INVOICE_STATES: dict[str, InvoiceState] = {
    "OPEN": "open",
    "SETTLED": "settled",
    "CANCELED": "canceled",
    "ACCEPTED": "accepted",
}


def _int(value: Any) -> int:
    if value is None or value == "":
        return 0
    return int(value)


def _hex(value: Any) -> str:
    if not value:
        return ""
    return base64.b64decode(value).hex()


def _str(value: Any) -> str:
    return value or ""


# ---------------------------------------------------------------------------
# Balances
# ---------------------------------------------------------------------------

def wallet_balance_from_wire(msg: dict[str, Any]) -> WalletBalance:
    return WalletBalance(
        total_balance=_int(msg.get("total_balance")),
        confirmed_balance=_int(msg.get("confirmed_balance")),
        unconfirmed_balance=_int(msg.get("unconfirmed_balance")),
    )


def channel_balance_from_wire(msg: dict[str, Any]) -> ChannelBalance:
    return ChannelBalance(
        balance=_int(msg.get("balance")),
        pending_open_balance=_int(msg.get("pending_open_balance")),
    )


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------

def htlc_from_wire(msg: dict[str, Any]) -> HTLC:
    return HTLC(
        incoming=bool(msg.get("incoming", False)),
        amount=_int(msg.get("amount")),
        hashlock=_hex(msg.get("hash_lock")),
        expiration_height=_int(msg.get("expiration_height")),
    )


def channel_from_wire(msg: dict[str, Any]) -> Channel:
    return Channel(
        id=_int(msg.get("chan_id")),
        status="active" if msg.get("active") else "inactive",
        remote_pubkey=_str(msg.get("remote_pubkey")),
        channel_point=_str(msg.get("channel_point")),
        capacity=_int(msg.get("capacity")),
        local_balance=_int(msg.get("local_balance")),
        remote_balance=_int(msg.get("remote_balance")),
        commit_fee=_int(msg.get("commit_fee")),
        commit_weight=_int(msg.get("commit_weight")),
        fee_per_kw=_int(msg.get("fee_per_kw")),
        unsettled_balance=_int(msg.get("unsettled_balance")),
        total_amount_sent=_int(msg.get("total_satoshis_sent")),
        total_amount_received=_int(msg.get("total_satoshis_received")),
        updates_count=_int(msg.get("num_updates")),
        csv_delay=_int(msg.get("csv_delay")),
        private=bool(msg.get("private", False)),
        pending_htlcs=tuple(htlc_from_wire(h) for h in msg.get("pending_htlcs") or ()),
    )


def channels_from_wire(resp: dict[str, Any]) -> list[Channel]:
    return [channel_from_wire(c) for c in resp.get("channels") or ()]


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------

def invoice_from_wire(msg: dict[str, Any]) -> Invoice:
    """Translate a full invoice, as returned by lookups and the invoice stream."""
    return Invoice(
        index=_int(msg.get("add_index")),
        description=_str(msg.get("memo")),
        amount=_int(msg.get("value")),
        amount_paid=_int(msg.get("amt_paid_sat")),
        settled=bool(msg.get("settled", False)),
        settle_index=_int(msg.get("settle_index")),
        payment_request=_str(msg.get("payment_request")),
        description_hash=_hex(msg.get("description_hash")),
        r_preimage=_hex(msg.get("r_preimage")),
        r_hash=_hex(msg.get("r_hash")),
        creation_date=_int(msg.get("creation_date")),
        settle_date=_int(msg.get("settle_date")),
        expiry=_int(msg.get("expiry")),
        fallback_addr=_str(msg.get("fallback_addr")),
        cltv_expiry=_int(msg.get("cltv_expiry")),
        private=bool(msg.get("private", False)),
        state=_INVOICE_STATES.get(msg.get("state") or "OPEN", "open"),
    )


def added_invoice_from_wire(req: dict[str, Any], resp: dict[str, Any]) -> Invoice:
    """Combine an AddInvoice request with its response.

    The node only echoes the hash, the encoded request and the add index, so
    amount, memo, creation date and expiry come from *req*.
    """
    return Invoice(
        index=_int(resp.get("add_index")),
        description=_str(req.get("memo")),
        amount=_int(req.get("value")),
        amount_paid=0,
        settled=False,
        settle_index=0,
        payment_request=_str(resp.get("payment_request")),
        description_hash="",
        r_preimage="",
        r_hash=_hex(resp.get("r_hash")),
        creation_date=_int(req.get("creation_date")),
        settle_date=0,
        expiry=_int(req.get("expiry")),
        fallback_addr="",
        cltv_expiry=0,
        private=False,
    )


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

def pay_req_from_wire(msg: dict[str, Any], encoded: str) -> PayReq:
    return PayReq(
        destination=_str(msg.get("destination")),
        payment_hash=_str(msg.get("payment_hash")),
        amount=_int(msg.get("num_satoshis")),
        timestamp=_int(msg.get("timestamp")),
        expiry=_int(msg.get("expiry")),
        description=_str(msg.get("description")),
        description_hash=_str(msg.get("description_hash")),
        fallback_addr=_str(msg.get("fallback_addr")),
        cltv_expiry=_int(msg.get("cltv_expiry")),
        string=encoded,
    )


def hop_from_wire(msg: dict[str, Any]) -> Hop:
    return Hop(
        chan_id=_int(msg.get("chan_id")),
        chan_capacity=_int(msg.get("chan_capacity")),
        amt_to_forward=_int(msg.get("amt_to_forward")),
        fee=_int(msg.get("fee")),
        expiry=_int(msg.get("expiry")),
        pub_key=_str(msg.get("pub_key")),
    )


def route_from_wire(msg: dict[str, Any]) -> Route:
    return Route(
        time_lock=_int(msg.get("total_time_lock")),
        fee=_int(msg.get("total_fees")),
        amount=_int(msg.get("total_amt")),
        hops=tuple(hop_from_wire(h) for h in msg.get("hops") or ()),
    )


def payment_from_wire(pay_req: PayReq, resp: dict[str, Any]) -> Payment:
    """Combine the caller's payment request with a SendPaymentSync response.

    Destination and amount are taken from *pay_req*; the node does not echo
    them back.
    """
    route = resp.get("payment_route")
    return Payment(
        pay_req=pay_req,
        destination=pay_req.destination,
        amount=pay_req.amount,
        hash=_hex(resp.get("payment_hash")),
        preimage=_hex(resp.get("payment_preimage")),
        payment_error=_str(resp.get("payment_error")),
        route=route_from_wire(route) if route else None,
    )
