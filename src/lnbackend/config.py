"""Node configuration: YAML file, env var interpolation, validation."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_INVOICE_EXPIRY = 3600
"""Seconds an invoice created by :meth:`Backend.create_invoice` stays payable."""

DEFAULT_RPC_TIMEOUT = 120.0
"""Read timeout of a unary call; ``send_payment`` waits until the payment settles."""

_ENV_VAR_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


@dataclass(frozen=True)
class NetworkConfig:
    name: str = "lnd"
    address: str = "127.0.0.1:8080"
    cert: str = ""
    macaroon: str = ""
    pool_capacity: int = 4
    conn_timeout: float = 5.0
    rpc_timeout: float = DEFAULT_RPC_TIMEOUT
    invoice_expiry: int = DEFAULT_INVOICE_EXPIRY


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


def _build_network(raw: dict[str, Any]) -> NetworkConfig:
    return NetworkConfig(
        name=str(raw.get("name", NetworkConfig.name)),
        address=str(raw.get("address", NetworkConfig.address)),
        cert=str(raw.get("cert") or ""),
        macaroon=str(raw.get("macaroon") or ""),
        pool_capacity=int(raw.get("pool_capacity", NetworkConfig.pool_capacity)),
        conn_timeout=float(raw.get("conn_timeout", NetworkConfig.conn_timeout)),
        rpc_timeout=float(raw.get("rpc_timeout", DEFAULT_RPC_TIMEOUT)),
        invoice_expiry=int(raw.get("invoice_expiry", DEFAULT_INVOICE_EXPIRY)),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path) -> NetworkConfig:
    """Load and validate the ``network`` section of a YAML config file.

    ``${VAR}`` references are resolved from the environment, after loading a
    ``.env`` file if one is present.
    """
    load_dotenv()

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)
    cfg = _build_network(raw.get("network") or {})

    validate(cfg)
    logger.info("Configuration for node %s loaded from %s", cfg.name, config_path)
    return cfg


def validate(cfg: NetworkConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.address:
        raise ValueError(f"Node '{cfg.name}' has no address")
    if cfg.pool_capacity < 1:
        raise ValueError(f"Node '{cfg.name}' pool_capacity must be at least 1")
    if cfg.conn_timeout <= 0:
        raise ValueError(f"Node '{cfg.name}' conn_timeout must be positive")
    if cfg.rpc_timeout <= 0:
        raise ValueError(f"Node '{cfg.name}' rpc_timeout must be positive")
    if cfg.invoice_expiry < 1:
        raise ValueError(f"Node '{cfg.name}' invoice_expiry must be at least 1 second")


def load_macaroon(path: str | Path) -> str:
    """Read a binary macaroon file and return its hex encoding."""
    with open(path, "rb") as f:
        return f.read().hex()
