from __future__ import annotations

import json
from typing import Any


class LnBackendError(Exception):
    """Base exception for everything raised by lnbackend."""


# ---------------------------------------------------------------------------
# Pool
# ---------------------------------------------------------------------------

class PoolError(LnBackendError):
    """Raised when the connection pool cannot hand out or take back a connection."""


class PoolUnavailableError(PoolError):
    """No connection became available before the deadline."""


class PoolExhaustedError(PoolError):
    """Every slot is taken or dialing a fresh connection failed."""


class PoolClosedError(PoolError):
    """The pool has been closed."""

    def __init__(self, message: str = "connection pool is closed") -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Remote calls
# ---------------------------------------------------------------------------

class RPCError(LnBackendError):
    """Error reported by the node's REST gateway."""

    def __init__(self, message: str, status: int, body: str) -> None:
        super().__init__(message)
        self.status = status
        self.body = body
        self.code = _extract_code(body)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status={self.status}, body={self.body!r})"


class BadRequestError(RPCError):
    """Raised for 400 Bad Request responses."""

    def __init__(self, body: str) -> None:
        super().__init__(_extract_message(body, "Bad Request"), 400, body)


class UnauthorizedError(RPCError):
    """Raised for 401 Unauthorized responses (missing or wrong macaroon)."""

    def __init__(self, body: str) -> None:
        super().__init__(_extract_message(body, "Unauthorized"), 401, body)


class ForbiddenError(RPCError):
    """Raised for 403 Forbidden responses."""

    def __init__(self, body: str) -> None:
        super().__init__(_extract_message(body, "Forbidden"), 403, body)


class NotFoundError(RPCError):
    """Raised for 404 Not Found responses."""

    def __init__(self, body: str) -> None:
        super().__init__(_extract_message(body, "Not Found"), 404, body)


class ConflictError(RPCError):
    """Raised for 409 Conflict responses."""

    def __init__(self, body: str) -> None:
        super().__init__(_extract_message(body, "Conflict"), 409, body)


class UnavailableError(RPCError):
    """Raised for 503 responses, usually a locked or still syncing node."""

    def __init__(self, body: str) -> None:
        super().__init__(_extract_message(body, "Service Unavailable"), 503, body)


def error_for_status(status: int, body: str, reason: str = "Error") -> RPCError:
    match status:
        case 400:
            return BadRequestError(body)
        case 401:
            return UnauthorizedError(body)
        case 403:
            return ForbiddenError(body)
        case 404:
            return NotFoundError(body)
        case 409:
            return ConflictError(body)
        case 503:
            return UnavailableError(body)
        case _:
            return RPCError(_extract_message(body, reason), status, body)


class CallError(LnBackendError):
    """A remote call failed; carries the operation and its key arguments.

    The original exception is chained as ``__cause__`` and exposed as
    :attr:`cause`.
    """

    def __init__(self, operation: str, cause: BaseException, **context: Any) -> None:
        detail = ", ".join(f"{k}={v!r}" for k, v in context.items())
        where = f"{operation}({detail})" if detail else operation
        super().__init__(f"{where}: {cause}")
        self.operation = operation
        self.context = context
        self.cause = cause


class StreamClosedError(LnBackendError):
    """The node closed a server stream without reporting an error."""

    def __init__(self, message: str = "stream closed by remote") -> None:
        super().__init__(message)


class StreamCancelledError(LnBackendError):
    """The caller stopped a server stream, or closed the backend under it."""

    def __init__(self, message: str = "stream cancelled") -> None:
        super().__init__(message)


def _extract_message(body: str, fallback: str) -> str:
    """Try to pull a human-readable message from a JSON error body."""
    try:
        data = json.loads(body)
        return data.get("message") or data.get("error") or fallback
    except (json.JSONDecodeError, TypeError, AttributeError):
        return fallback


def _extract_code(body: str) -> int | None:
    try:
        code = json.loads(body).get("code")
    except (json.JSONDecodeError, TypeError, AttributeError):
        return None
    return code if isinstance(code, int) else None
