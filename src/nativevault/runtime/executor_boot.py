# src/nativevault/runtime/executor_boot.py

from __future__ import annotations

import logging
from typing import Optional

from nativevault.config import VaultConfig, load_vault_config
from nativevault.env import load_dotenv_if_present
from nativevault.runtime.executor import VaultExecutor
from nativevault.runtime.structured_logging import configure_structured_logging, log_event

_log = logging.getLogger("nativevault.boot")


def build_executor(cfg: Optional[VaultConfig] = None) -> VaultExecutor:
    """
    Build a VaultExecutor from an explicit config or, if omitted, from
    NATIVEVAULT_CONFIG_PATH (after loading .env).

    Logging is configured at cfg.log_level before the ledger is opened.
    """
    load_dotenv_if_present()
    c = cfg or load_vault_config()

    configure_structured_logging(c.log_level)
    ex = VaultExecutor.from_config(c)
    log_event(
        _log,
        "executor_boot",
        program_id=c.program_id,
        mode=c.mode,
        persistent=bool(c.db_path.strip()),
        unix_timestamp=ex.clock.unix_timestamp,
    )
    return ex
