"""Tests for config loading, env interpolation, and validation."""
from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest

from lnbackend.config import (
    DEFAULT_INVOICE_EXPIRY,
    DEFAULT_RPC_TIMEOUT,
    NetworkConfig,
    _interpolate_env,
    load_config,
    load_macaroon,
    validate,
)

FULL_YAML = """\
network:
  name: alice
  address: "alice.test:8080"
  cert: /etc/lnd/tls.cert
  macaroon: /etc/lnd/admin.macaroon
  pool_capacity: 8
  conn_timeout: 2.5
  rpc_timeout: 300
  invoice_expiry: 600
"""


def _write(tmp_path: Path, content: str) -> Path:
    cfg_file = tmp_path / "lnbackend.yaml"
    cfg_file.write_text(content)
    return cfg_file


class TestInterpolateEnv:
    def test_simple_substitution(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LND_HOST", "bob.test")
        assert _interpolate_env("${LND_HOST}:10009") == "bob.test:10009"

    def test_missing_var_becomes_empty(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NONEXISTENT_VAR_XYZ", raising=False)
        assert _interpolate_env("${NONEXISTENT_VAR_XYZ}") == ""

    def test_nested(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MAC", "/tmp/mac")
        assert _interpolate_env({"network": {"macaroon": "${MAC}", "hosts": ["${MAC}", 1]}}) == {
            "network": {"macaroon": "/tmp/mac", "hosts": ["/tmp/mac", 1]}
        }

    def test_non_string_passthrough(self) -> None:
        assert _interpolate_env(42) == 42
        assert _interpolate_env(None) is None


class TestLoadConfig:
    def test_loads_network_section(self, tmp_path: Path) -> None:
        cfg = load_config(_write(tmp_path, FULL_YAML))
        assert cfg == NetworkConfig(
            name="alice",
            address="alice.test:8080",
            cert="/etc/lnd/tls.cert",
            macaroon="/etc/lnd/admin.macaroon",
            pool_capacity=8,
            conn_timeout=2.5,
            rpc_timeout=300.0,
            invoice_expiry=600,
        )

    def test_defaults(self, tmp_path: Path) -> None:
        cfg = load_config(_write(tmp_path, "network:\n  address: localhost:8080\n"))
        assert cfg.name == "lnd"
        assert cfg.pool_capacity == 4
        assert cfg.conn_timeout == 5.0
        assert cfg.rpc_timeout == DEFAULT_RPC_TIMEOUT
        assert cfg.invoice_expiry == DEFAULT_INVOICE_EXPIRY == 3600

    def test_null_paths_become_empty(self, tmp_path: Path) -> None:
        cfg = load_config(_write(tmp_path, "network:\n  address: localhost:8080\n  cert:\n  macaroon:\n"))
        assert cfg.cert == ""
        assert cfg.macaroon == ""

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        assert load_config(_write(tmp_path, "")) == NetworkConfig()

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nonexistent.yaml")

    def test_env_interpolation_in_yaml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEST_LND_ADDRESS", "carol.test:8080")
        cfg = load_config(_write(tmp_path, 'network:\n  address: "${TEST_LND_ADDRESS}"\n'))
        assert cfg.address == "carol.test:8080"

    def test_invalid_values_raise(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="pool_capacity"):
            load_config(_write(tmp_path, "network:\n  pool_capacity: 0\n"))


class TestValidation:
    def test_default_is_valid(self) -> None:
        validate(NetworkConfig())

    @pytest.mark.parametrize(
        ("field", "value", "message"),
        [
            ("address", "", "no address"),
            ("pool_capacity", 0, "pool_capacity"),
            ("conn_timeout", 0, "conn_timeout"),
            ("conn_timeout", -1.0, "conn_timeout"),
            ("rpc_timeout", 0, "rpc_timeout"),
            ("invoice_expiry", 0, "invoice_expiry"),
        ],
    )
    def test_rejects(self, field: str, value: object, message: str) -> None:
        with pytest.raises(ValueError, match=message):
            validate(dataclasses.replace(NetworkConfig(), **{field: value}))


class TestLoadMacaroon:
    def test_hex_encodes_file(self, tmp_path: Path) -> None:
        mac = tmp_path / "admin.macaroon"
        mac.write_bytes(bytes([0x02, 0x01, 0x03, 0xFF]))
        assert load_macaroon(mac) == "020103ff"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_macaroon(tmp_path / "missing.macaroon")
