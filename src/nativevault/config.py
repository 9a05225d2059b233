# src/nativevault/config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from solders.pubkey import Pubkey

from nativevault.ledger.rent import DEFAULT_EXEMPTION_THRESHOLD, DEFAULT_LAMPORTS_PER_BYTE_YEAR

# Program id the vault is deployed under unless configured otherwise.
DEFAULT_PROGRAM_ID = "H9VvZ2SpJuh9quUEU1JyMTB8yjLJQSqiKGv2XG9WXVxg"


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)


def _as_float(v: Any, default: float) -> float:
    try:
        return float(v)
    except (TypeError, ValueError):
        return float(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


@dataclass(frozen=True)
class VaultConfig:
    program_id: str
    mode: str  # "dev" | "test" | "prod"

    # Empty means in-memory only.
    db_path: str

    lamports_per_byte_year: int
    exemption_threshold: float

    # Clock value a fresh ledger starts at.
    genesis_unix_timestamp: int

    log_level: str


_ALLOWED_MODES = {"dev", "test", "prod"}
_ALLOWED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def validate_vault_config(cfg: VaultConfig) -> None:
    """Fail-fast validation for operator config."""

    try:
        Pubkey.from_string(cfg.program_id)
    except Exception as e:
        raise ValueError(f"program_id must be a base58 32-byte address; got: {cfg.program_id!r}") from e

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if mode == "prod" and not str(cfg.db_path or "").strip():
        raise ValueError("db_path is required in prod mode")

    if int(cfg.lamports_per_byte_year) <= 0:
        raise ValueError(f"lamports_per_byte_year must be > 0; got: {cfg.lamports_per_byte_year}")

    if float(cfg.exemption_threshold) <= 0:
        raise ValueError(f"exemption_threshold must be > 0; got: {cfg.exemption_threshold}")

    if int(cfg.genesis_unix_timestamp) < 0:
        raise ValueError(f"genesis_unix_timestamp must be >= 0; got: {cfg.genesis_unix_timestamp}")

    if str(cfg.log_level or "").strip().upper() not in _ALLOWED_LOG_LEVELS:
        raise ValueError(f"log_level must be one of {_ALLOWED_LOG_LEVELS}; got: {cfg.log_level!r}")


def default_vault_config() -> VaultConfig:
    return VaultConfig(
        program_id=DEFAULT_PROGRAM_ID,
        mode="dev",
        db_path="",
        lamports_per_byte_year=DEFAULT_LAMPORTS_PER_BYTE_YEAR,
        exemption_threshold=DEFAULT_EXEMPTION_THRESHOLD,
        genesis_unix_timestamp=0,
        log_level="INFO",
    )


def read_vault_config_file(path: str) -> VaultConfig:
    p = Path(path)
    raw = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("vault config must be a JSON object")

    d = default_vault_config()

    cfg = VaultConfig(
        program_id=_as_str(raw.get("program_id"), d.program_id),
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        db_path=str(raw.get("db_path") or d.db_path),
        lamports_per_byte_year=_as_int(raw.get("lamports_per_byte_year"), d.lamports_per_byte_year),
        exemption_threshold=_as_float(raw.get("exemption_threshold"), d.exemption_threshold),
        genesis_unix_timestamp=_as_int(raw.get("genesis_unix_timestamp"), d.genesis_unix_timestamp),
        log_level=_as_str(raw.get("log_level"), d.log_level).strip().upper(),
    )

    validate_vault_config(cfg)
    return cfg


def load_vault_config(*, config_path: Optional[str] = None) -> VaultConfig:
    p = config_path or os.environ.get("NATIVEVAULT_CONFIG_PATH")
    if p:
        return read_vault_config_file(p)

    cfg = default_vault_config()
    validate_vault_config(cfg)
    return cfg
