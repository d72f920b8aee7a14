from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

InvoiceState = Literal["open", "settled", "canceled", "accepted"]
ChannelStatus = Literal["active", "inactive"]


# ---------------------------------------------------------------------------
# Balances
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WalletBalance:
    total_balance: int
    confirmed_balance: int
    unconfirmed_balance: int


@dataclass(frozen=True)
class ChannelBalance:
    balance: int
    pending_open_balance: int


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HTLC:
    incoming: bool
    amount: int
    hashlock: str
    expiration_height: int


@dataclass(frozen=True)
class Channel:
    id: int
    status: ChannelStatus
    remote_pubkey: str
    channel_point: str
    capacity: int
    local_balance: int
    remote_balance: int
    commit_fee: int
    commit_weight: int
    fee_per_kw: int
    unsettled_balance: int
    total_amount_sent: int
    total_amount_received: int
    updates_count: int
    csv_delay: int
    private: bool
    pending_htlcs: tuple[HTLC, ...] = ()


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Invoice:
    index: int
    description: str
    amount: int
    amount_paid: int
    settled: bool
    settle_index: int
    payment_request: str
    description_hash: str
    r_preimage: str
    r_hash: str
    creation_date: int
    settle_date: int
    expiry: int
    fallback_addr: str
    cltv_expiry: int
    private: bool
    state: InvoiceState = "open"


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PayReq:
    """A decoded BOLT11 payment request; *string* is the encoded form."""

    destination: str
    payment_hash: str
    amount: int
    timestamp: int
    expiry: int
    description: str
    description_hash: str
    fallback_addr: str
    cltv_expiry: int
    string: str


@dataclass(frozen=True)
class Hop:
    chan_id: int
    chan_capacity: int
    amt_to_forward: int
    fee: int
    expiry: int
    pub_key: str


@dataclass(frozen=True)
class Route:
    time_lock: int
    fee: int
    amount: int
    hops: tuple[Hop, ...] = ()


@dataclass(frozen=True)
class Payment:
    pay_req: PayReq
    destination: str
    amount: int
    hash: str
    preimage: str
    payment_error: str = ""
    route: Route | None = None

    @property
    def succeeded(self) -> bool:
        return not self.payment_error
