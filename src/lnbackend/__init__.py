from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("lnbackend")
except PackageNotFoundError:
    __version__ = "0.0.0"

from .backend import AsyncBackend, Backend
from .client import AsyncClient, Client
from .config import DEFAULT_INVOICE_EXPIRY, DEFAULT_RPC_TIMEOUT, NetworkConfig, load_config, load_macaroon
from .errors import (
    BadRequestError,
    CallError,
    ConflictError,
    ForbiddenError,
    LnBackendError,
    NotFoundError,
    PoolClosedError,
    PoolError,
    PoolExhaustedError,
    PoolUnavailableError,
    RPCError,
    StreamCancelledError,
    StreamClosedError,
    UnauthorizedError,
    UnavailableError,
)
from .logging_setup import configure_logging
from .options import (
    ChannelOptions,
    active_only,
    inactive_only,
    new_channel_options,
    private_only,
    public_only,
)
from .pool import AsyncConnectionPool, ConnectionPool
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

__all__ = [
    "__version__",
    "Backend",
    "AsyncBackend",
    "Client",
    "AsyncClient",
    "ConnectionPool",
    "AsyncConnectionPool",
    "NetworkConfig",
    "DEFAULT_INVOICE_EXPIRY",
    "DEFAULT_RPC_TIMEOUT",
    "load_config",
    "load_macaroon",
    "configure_logging",
    "ChannelOptions",
    "new_channel_options",
    "active_only",
    "inactive_only",
    "public_only",
    "private_only",
    "LnBackendError",
    "PoolError",
    "PoolUnavailableError",
    "PoolExhaustedError",
    "PoolClosedError",
    "RPCError",
    "BadRequestError",
    "UnauthorizedError",
    "ForbiddenError",
    "NotFoundError",
    "ConflictError",
    "UnavailableError",
    "CallError",
    "StreamClosedError",
    "StreamCancelledError",
    "WalletBalance",
    "ChannelBalance",
    "Channel",
    "HTLC",
    "Invoice",
    "InvoiceState",
    "PayReq",
    "Payment",
    "Route",
    "Hop",
]
